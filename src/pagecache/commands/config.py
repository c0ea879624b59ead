"""``pagecache config``: read and edit the shared configuration file.

Edits are validated through :class:`~pagecache.models.GlobalConfig` before
they are saved, so a TTL of 5000 is stored as 999 and non-numeric
exclusion IDs are dropped, exactly as when the site loads the file itself.
"""

from __future__ import annotations

from typing import Any

import typer
from pydantic import ValidationError

from pagecache.exit_codes import EXIT_INVALID_USAGE
from pagecache.output import error, format_response, info, success

config_app = typer.Typer(no_args_is_help=True)

_TRUE_WORDS = ("true", "1", "yes", "on")


def _reject(message: str) -> typer.Exit:
    error(message)
    return typer.Exit(code=EXIT_INVALID_USAGE)


def _locate(data: dict[str, Any], dotted: str) -> tuple[dict[str, Any], str]:
    """Return the section holding *dotted* and the field name inside it."""
    *sections, field = dotted.split(".")
    section = data
    for name in sections:
        child = section.get(name)
        if not isinstance(child, dict):
            raise _reject(f"Invalid config key: {dotted}")
        section = child
    if field not in section:
        raise _reject(f"Unknown config key: {dotted}")
    return section, field


def _coerce(current: Any, raw: str, dotted: str) -> Any:
    """Convert *raw* to the type of the value it replaces.

    Exclusion lists and nullable strings pass through as text; the model
    validators parse them.
    """
    if isinstance(current, bool):
        return raw.strip().lower() in _TRUE_WORDS
    if isinstance(current, int):
        try:
            return int(raw)
        except ValueError:
            raise _reject(f"Expected integer for {dotted}, got: {raw}") from None
    return raw


@config_app.command("show")
def config_show() -> None:
    """Print the configuration file location and its effective contents."""
    from pagecache.config import global_config_path, load_global_config

    info(f"Config file: {global_config_path()}")
    format_response(load_global_config().model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Dotted setting name, e.g. 'cache.ttl_hours'."),
    value: str = typer.Argument(help="New value; lists are comma separated."),
) -> None:
    """Change one setting.

    Running sites pick the change up on their next request.

    Example::

        pagecache config set cache.ttl_hours 6
        pagecache config set cache.exclude 12,40,97
    """
    from pagecache.config import load_global_config, save_global_config
    from pagecache.models import GlobalConfig

    data = load_global_config().model_dump(mode="json")
    section, field = _locate(data, key)
    section[field] = _coerce(section[field], value, key)

    try:
        updated = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise _reject(f"Validation error: {exc}") from None

    save_global_config(updated)
    stored, stored_field = _locate(updated.model_dump(mode="json"), key)
    success(f"Set {key} = {stored[stored_field]}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Overwrite the configuration file with default settings."""
    from pagecache.config import save_global_config
    from pagecache.models import GlobalConfig

    force = bool(ctx.obj and ctx.obj.get("force"))
    if not force and not typer.confirm("Reset all config to defaults?"):
        info("Cancelled.")
        raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
