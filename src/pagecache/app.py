"""``pagecache`` command-line entry point.

Site operators use this tool next to the running site to look at cache
statistics, empty the cache (the scripted "Clear Cache" button), purge the
variants of a single page, and prepare or remove the storage directory.
The ``config`` group edits the shared configuration file that the request
pipeline re-reads on every request.

:func:`main` is what the ``pagecache`` console script runs. Known
:class:`~pagecache.exceptions.PageCacheError` failures exit with their own
code; anything else leaves a traceback under ``<data dir>/logs``.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from pagecache import __version__
from pagecache.commands.cache import (
    clear_command,
    init_command,
    purge_command,
    stats_command,
    teardown_command,
)
from pagecache.commands.config import config_app
from pagecache.exit_codes import EXIT_GENERIC_FAILURE

EXIT_INTERRUPTED = 130

app = typer.Typer(
    name="pagecache",
    help="Inspect and manage the full-page response cache.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

for _name, _command in (
    ("stats", stats_command),
    ("clear", clear_command),
    ("purge", purge_command),
    ("init", init_command),
    ("teardown", teardown_command),
):
    app.command(_name)(_command)
app.add_typer(config_app, name="config", help="Read and edit the cache configuration file.")


def _show_version(requested: bool) -> None:
    if requested:
        typer.echo(f"pagecache {__version__}")
        raise typer.Exit()


def _install_log_handler(verbose: bool, console: Console) -> None:
    """Send ``pagecache.*`` log records to stderr through Rich.

    Store, lock and invalidation code log lock contention and storage
    failures at WARNING; ``--verbose`` lowers the threshold to DEBUG.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=verbose)],
        force=True,
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", callback=_show_version, is_eager=True, help="Print the version."
    ),
    storage_dir: Optional[str] = typer.Option(
        None, "--storage-dir", "-d", help="Cache storage root (overrides config)."
    ),
    json_output: bool = typer.Option(False, "--json", help="Emit reports as JSON."),
    plain_output: bool = typer.Option(
        False, "--plain", help="Emit reports as tab-separated lines."
    ),
    no_color: bool = typer.Option(False, "--no-color", help="Never use colour."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Only print warnings, errors and reports."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print debug messages."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Do not ask before destructive commands."
    ),
) -> None:
    """Set up output and logging, then share global flags with sub-commands."""
    from pagecache.output import OutputFormat, OutputManager, set_output

    if json_output:
        report_format = OutputFormat.JSON
    elif plain_output:
        report_format = OutputFormat.PLAIN
    else:
        report_format = OutputFormat.AUTO

    manager = OutputManager(report_format, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(manager)
    _install_log_handler(verbose, manager.stderr_console)

    ctx.ensure_object(dict)
    ctx.obj.update(storage_dir=storage_dir, force=force, verbose=verbose)


def _setup_signal_handlers() -> None:
    def _on_sigint(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)

    signal.signal(signal.SIGINT, _on_sigint)


def _write_crash_log(exc: Exception) -> str:
    """Save the active traceback as ``crash-<timestamp>.log`` and return its path."""
    from pagecache.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / f"crash-{datetime.now():%Y%m%d-%H%M%S}.log"
    log_path.write_text(f"{type(exc).__name__}: {exc}\n\n{traceback.format_exc()}")
    return str(log_path)


def main() -> None:
    """Run the CLI and turn uncaught failures into exit codes.

    Raises:
        SystemExit: On every path; Typer raises it on normal completion.
    """
    from pagecache.exceptions import PageCacheError
    from pagecache.output import error

    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except PageCacheError as exc:
        error(str(exc))
        sys.exit(exc.exit_code)
    except Exception as exc:
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Traceback saved to {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
