"""Cache commands -- the administrative surface of the page cache.

Commands registered on the root application:

* ``pagecache stats`` -- entries, size on disk and hit ratio.
* ``pagecache clear`` -- remove every cached page (throttled).
* ``pagecache purge PATH`` -- remove the cached variants of one path.
* ``pagecache init`` -- create the storage root and a default config file.
* ``pagecache teardown`` -- remove the storage root, optionally everything.

The storage root comes from ``--storage-dir`` on the root command, then
``$PAGECACHE_STORAGE_DIR``, then the config file, then the XDG cache dir.
"""

from __future__ import annotations

import getpass
import shutil
from pathlib import Path
from typing import Optional

import typer

from pagecache.exceptions import InvalidUsageError, PageCacheError, RateLimitError, StorageError
from pagecache.output import debug, error, format_response, info, success, warning

CLEAR_ACTION = "clear_cache"


def _storage_dir(ctx: typer.Context) -> Path:
    from pagecache.config import get_storage_dir, resolve_config

    cli_dir = ctx.obj.get("storage_dir") if ctx.obj else None
    storage_dir = get_storage_dir(resolve_config(cli_storage_dir=cli_dir))
    debug(f"Using storage root {storage_dir}")
    return storage_dir


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (OSError, KeyError):
        return "unknown"


def format_size(size: int) -> str:
    """Render a byte count the way the stats report shows it (``0 B``, ``1.5 KB``, ...)."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def _fail(exc: PageCacheError) -> typer.Exit:
    error(str(exc))
    return typer.Exit(code=exc.exit_code)


# ------------------------------------------------------------------ #
# Operations (raise PageCacheError; commands translate to exit codes)
# ------------------------------------------------------------------ #


def collect_stats(storage_dir: Path) -> dict[str, object]:
    """Gather the numbers shown by ``pagecache stats``."""
    from pagecache.cache import PageStore, open_stats
    from pagecache.cache.pipeline import pages_dir

    stats = open_stats(storage_dir)
    try:
        store = PageStore(pages_dir(storage_dir), stats=stats)
        snapshot = stats.snapshot()
        size = store.size_bytes()
        return {
            "storage_dir": str(storage_dir),
            "entries": len(store),
            "size_bytes": size,
            "size": format_size(size),
            "hits": snapshot.hits,
            "misses": snapshot.misses,
            "hit_ratio": f"{snapshot.percent}%",
        }
    finally:
        stats.close()


def clear_cache(storage_dir: Path, subject: str, cooldown_seconds: int) -> int:
    """Remove every cached page unless *subject* cleared within the cooldown.

    Raises:
        RateLimitError: If the previous clear by *subject* is too recent.
    """
    from pagecache.cache import PageStore, open_rate_limiter, open_stats
    from pagecache.cache.pipeline import pages_dir

    limiter = open_rate_limiter(storage_dir)
    try:
        if not limiter.allow(CLEAR_ACTION, subject, cooldown_seconds):
            wait = int(limiter.retry_after(CLEAR_ACTION, subject)) + 1
            raise RateLimitError(
                f"Too many requests; please wait {wait}s before clearing the cache again"
            )
    finally:
        limiter.close()

    stats = open_stats(storage_dir)
    try:
        return PageStore(pages_dir(storage_dir), stats=stats).delete_all()
    finally:
        stats.close()


def initialize_storage(storage_dir: Path) -> Path:
    """Create the page directory and its access marker.

    Raises:
        StorageError: If the directory cannot be created or written.
    """
    from pagecache.cache import PageStore
    from pagecache.cache.pipeline import pages_dir

    store = PageStore(pages_dir(storage_dir))
    if not store.initialize():
        raise StorageError(f"Cache storage at {store.root} is not writable")
    return store.root


# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #


def stats_command(ctx: typer.Context) -> None:
    """Show cached page count, size on disk, and hit ratio.

    Example::

        pagecache stats
        pagecache --json stats
    """
    format_response(collect_stats(_storage_dir(ctx)))


def clear_command(
    ctx: typer.Context,
    user: Optional[str] = typer.Option(
        None, "--user", help="Who is clearing (defaults to the current OS user)."
    ),
) -> None:
    """Clear every cached page and reset the hit/miss counters.

    Repeated clears by the same user are throttled by
    ``clear_cooldown_seconds`` from the config.

    Example::

        pagecache clear
    """
    from pagecache.config import get_storage_dir, resolve_config

    cli_dir = ctx.obj.get("storage_dir") if ctx.obj else None
    config = resolve_config(cli_storage_dir=cli_dir)
    try:
        cleared = clear_cache(
            get_storage_dir(config),
            user or _current_user(),
            config.clear_cooldown_seconds,
        )
    except PageCacheError as exc:
        raise _fail(exc) from None
    success(f"Cache cleared successfully ({cleared} files cleared)")


def purge_command(
    ctx: typer.Context,
    path: str = typer.Argument(help="Request path whose cached copies to remove, e.g. /about/."),
    query: str = typer.Option("", "--query", help="Query string of the cached URL."),
    home: bool = typer.Option(
        False, "--home/--no-home", help="Also purge the home/listing view."
    ),
) -> None:
    """Remove the cached variants of a single page.

    Example::

        pagecache purge /about/
        pagecache purge /shop/ --query "page=2" --home
    """
    from pagecache.cache import InvalidationCoordinator, PageStore
    from pagecache.cache.pipeline import pages_dir
    from pagecache.config import get_storage_dir, resolve_config
    from pagecache.host import MappingContentResolver, StaticConfigProvider

    if not path.startswith("/"):
        raise _fail(InvalidUsageError(f"Path must start with '/', got: {path}"))

    cli_dir = ctx.obj.get("storage_dir") if ctx.obj else None
    config = resolve_config(cli_storage_dir=cli_dir)
    store = PageStore(pages_dir(get_storage_dir(config)))
    coordinator = InvalidationCoordinator(
        store,
        MappingContentResolver(),
        StaticConfigProvider(config.cache),
        home_path=config.home_path,
    )
    removed = coordinator.invalidate_path(path, query)
    if home:
        removed += coordinator.invalidate_path(config.home_path)
    success(f"Purged {removed} cached pages")


def init_command(ctx: typer.Context) -> None:
    """Create the cache storage root and a default config file.

    Existing configuration is left untouched.

    Example::

        pagecache init
        pagecache --storage-dir /var/www/uploads/pagecache init
    """
    from pagecache.config import global_config_path, load_global_config, save_global_config

    config_path = global_config_path()
    if not config_path.is_file():
        save_global_config(load_global_config())
        info(f"Wrote default config to {config_path}")

    try:
        root = initialize_storage(_storage_dir(ctx))
    except PageCacheError as exc:
        raise _fail(exc) from None
    success(f"Cache storage ready at {root}")


def teardown_command(
    ctx: typer.Context,
    uninstall: bool = typer.Option(
        False, "--uninstall", help="Also delete counters and the config file."
    ),
) -> None:
    """Remove all cached pages and the storage directory.

    With ``--uninstall`` the hit/miss counters, throttle state and config
    file are deleted as well.  Asks for confirmation unless ``--force``.

    Example::

        pagecache --force teardown --uninstall
    """
    from pagecache.cache import PageStore
    from pagecache.cache.pipeline import pages_dir, state_dir
    from pagecache.config import global_config_path

    storage_dir = _storage_dir(ctx)
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm(f"Remove cache storage at {storage_dir}?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    removed = PageStore(pages_dir(storage_dir)).destroy()
    info(f"Removed {removed} files from {pages_dir(storage_dir)}")

    if uninstall:
        shutil.rmtree(state_dir(storage_dir), ignore_errors=True)
        config_path = global_config_path()
        if config_path.is_file():
            config_path.unlink()
        else:
            warning(f"No config file at {config_path}")
    success("Cache storage removed.")
