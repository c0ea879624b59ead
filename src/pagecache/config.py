"""Where pagecache keeps its files, and how its configuration is resolved.

The configuration file is shared by two readers: the ``pagecache`` CLI
and the request pipeline embedded in the site. The pipeline goes through
:class:`FileConfigProvider`, which re-reads the file for every request, so
``pagecache config set`` takes effect on the next page view.

Directories follow XDG on Linux and the BSDs and collapse into a single
``~/.pagecache/`` tree elsewhere. Settings resolve as CLI flag, then
``PAGECACHE_*`` environment variable, then config file, then model default
(:func:`resolve_config`). The file is always replaced atomically, so a
request reading it mid-save sees either the old or the new settings.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from pagecache.exceptions import ConfigError
from pagecache.host import ConfigProvider
from pagecache.models import CacheConfig, GlobalConfig

_APP_NAME = "pagecache"
_CONFIG_FILENAME = "config.json"

ENV_CONFIG_FILE = "PAGECACHE_CONFIG"
ENV_STORAGE_DIR = "PAGECACHE_STORAGE_DIR"
ENV_DISABLED = "PAGECACHE_DISABLED"

_TRUTHY = ("1", "true", "yes", "on")

# kind -> (XDG variable, default under $HOME, subdirectory of ~/.pagecache)
_DIR_LAYOUT = {
    "config": ("XDG_CONFIG_HOME", (".config",), ""),
    "cache": ("XDG_CACHE_HOME", (".cache",), "cache"),
    "data": ("XDG_DATA_HOME", (".local", "share"), "data"),
}


# --- Directories ---


def _is_xdg_platform() -> bool:
    """True on Linux and the BSDs, where the XDG base directories apply."""
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _app_dir(kind: str) -> Path:
    env_var, home_segments, fallback_sub = _DIR_LAYOUT[kind]
    if _is_xdg_platform():
        override = os.environ.get(env_var)
        base = Path(override) if override else Path.home().joinpath(*home_segments)
        path = base / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
        if fallback_sub:
            path = path / fallback_sub
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Directory holding ``config.json`` (``~/.config/pagecache`` by default)."""
    return _app_dir("config")


def get_cache_dir() -> Path:
    """Default storage root for cached pages and counters.

    Used when neither ``--storage-dir``, ``PAGECACHE_STORAGE_DIR`` nor the
    ``storage_dir`` setting names one. Its contents are disposable.
    """
    return _app_dir("cache")


def get_data_dir() -> Path:
    """Data directory; crash logs go in its ``logs`` subdirectory."""
    return _app_dir("data")


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Replace *path* with *data* without exposing a half-written file.

    The temporary file lives beside *path* so that ``os.replace`` is a
    same-filesystem rename. It is removed again if anything fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        mode="w",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
        encoding="utf-8",
    )
    try:
        with handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(handle.name, path)
    except BaseException:
        Path(handle.name).unlink(missing_ok=True)
        raise


# --- Global config ---


def global_config_path() -> Path:
    """Path to the global config file.

    ``$PAGECACHE_CONFIG`` points at an explicit file; otherwise the file
    lives in :func:`get_config_dir`.
    """
    explicit = os.environ.get(ENV_CONFIG_FILE)
    if explicit:
        return Path(explicit).expanduser()
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config(path: Optional[Path] = None) -> GlobalConfig:
    """Load the global configuration.

    Args:
        path: Explicit file to read.  Defaults to :func:`global_config_path`.

    Returns:
        The deserialised :class:`~pagecache.models.GlobalConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but cannot be read, contains invalid
            JSON, or fails Pydantic validation.
    """
    path = path or global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return GlobalConfig.model_validate(data)
    except OSError as exc:
        raise ConfigError(f"Cannot read config at {path}: {exc}") from exc
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig, path: Optional[Path] = None) -> Path:
    """Persist the global configuration atomically to disk.

    Args:
        config: The configuration to save.
        path: Explicit destination.  Defaults to :func:`global_config_path`.

    Returns:
        The path that was written.
    """
    path = path or global_config_path()
    data = config.model_dump(mode="json")
    _atomic_write(path, json.dumps(data, indent=2) + "\n")
    return path


# --- Precedence resolution ---


def _env_flag(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None or value == "":
        return None
    return value.strip().lower() in _TRUTHY


def apply_env_overrides(config: GlobalConfig) -> GlobalConfig:
    """Return a copy of *config* with ``PAGECACHE_*`` environment overrides applied."""
    updated = config.model_copy(deep=True)
    storage_dir = os.environ.get(ENV_STORAGE_DIR)
    if storage_dir:
        updated.storage_dir = storage_dir
    disabled = _env_flag(ENV_DISABLED)
    if disabled is not None:
        updated.cache.cache_disabled = disabled
    return updated


def resolve_config(cli_storage_dir: Optional[str] = None) -> GlobalConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_storage_dir``)
        2. Environment variables (``PAGECACHE_STORAGE_DIR``, ``PAGECACHE_DISABLED``)
        3. Config file (``~/.config/pagecache/config.json`` or ``$PAGECACHE_CONFIG``)
        4. Defaults

    Returns:
        The effective :class:`~pagecache.models.GlobalConfig`.
    """
    # 4 + 3. Load the file (fills in defaults automatically)
    config = load_global_config()
    # 2. Environment
    config = apply_env_overrides(config)
    # 1. CLI flag (highest precedence)
    if cli_storage_dir is not None:
        config.storage_dir = cli_storage_dir
    return config


def get_storage_dir(config: GlobalConfig) -> Path:
    """Return the storage root selected by *config*, falling back to :func:`get_cache_dir`."""
    if config.storage_dir:
        return Path(config.storage_dir).expanduser()
    return get_cache_dir()


class FileConfigProvider(ConfigProvider):
    """Per-request :class:`~pagecache.host.ConfigProvider` backed by the config file.

    The file is re-read on every call so that settings saved by
    ``pagecache config set`` apply to the next request without a restart.
    Read failures propagate as :class:`~pagecache.exceptions.ConfigError`;
    the pipeline turns them into "caching disabled" for that request.

    Args:
        path: Explicit config file.  Defaults to :func:`global_config_path`
            evaluated at each call.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path

    def get_config(self) -> CacheConfig:
        config = apply_env_overrides(load_global_config(self._path))
        return config.cache
