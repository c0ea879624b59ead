"""Shared test fixtures for pagecache.

Provides reusable fixtures for isolated config environments, a controllable
clock, wired cache components, output state, and running CLI commands.
These fixtures are automatically discovered by pytest and available to
all test modules without explicit imports.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
from rich.logging import RichHandler

from pagecache.cache import PageStore, RegenerationLockManager, StatsCounter
from pagecache.cache.pipeline import PageCache
from pagecache.host import MappingContentResolver, StaticConfigProvider
from pagecache.models import CacheConfig
from pagecache.output import reset_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.  The RichHandler installed by the root
    callback is bound to the same streams, so it is removed as well.
    """
    yield
    reset_output()
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced epoch clock for TTL and lock-staleness tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Cache component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def stats(tmp_path: Path):
    """Hit/miss counters in a throwaway directory."""
    counter = StatsCounter(tmp_path / "state" / "stats")
    yield counter
    counter.close()


@pytest.fixture
def store(tmp_path: Path, stats: StatsCounter, clock: FakeClock) -> PageStore:
    """An initialised page store driven by the fake clock."""
    s = PageStore(tmp_path / "pages", stats=stats, clock=clock)
    assert s.initialize()
    return s


@pytest.fixture
def locks(tmp_path: Path, clock: FakeClock) -> RegenerationLockManager:
    return RegenerationLockManager(tmp_path / "pages", clock=clock)


@pytest.fixture
def config_provider() -> StaticConfigProvider:
    return StaticConfigProvider(CacheConfig())


@pytest.fixture
def resolver() -> MappingContentResolver:
    return MappingContentResolver({42: "https://example.com/about/", 7: "/shop/?page=2"})


@pytest.fixture
def page_cache(
    store: PageStore,
    locks: RegenerationLockManager,
    stats: StatsCounter,
    config_provider: StaticConfigProvider,
    resolver: MappingContentResolver,
) -> PageCache:
    """A fully wired PageCache sharing the component fixtures above."""
    return PageCache(store, locks, stats, config_provider, resolver)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path so that tests never touch real user
    config. Clears all PAGECACHE_* environment variables and changes
    the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("pagecache.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "PAGECACHE_CONFIG",
        "PAGECACHE_STORAGE_DIR",
        "PAGECACHE_DISABLED",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner.

    Returns a CliRunner instance that captures stdout/stderr and
    provides a consistent interface for invoking Typer apps in tests.
    """
    from typer.testing import CliRunner

    return CliRunner()
