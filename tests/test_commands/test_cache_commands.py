"""Tests for the cache administration commands (stats, clear, purge, init, teardown)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from pagecache.app import app
from pagecache.cache.keys import derive_key
from pagecache.cache.pipeline import open_stats, pages_dir
from pagecache.cache.store import PageStore
from pagecache.commands.cache import clear_cache, collect_stats, format_size
from pagecache.config import global_config_path, save_global_config
from pagecache.exceptions import RateLimitError
from pagecache.exit_codes import EXIT_RATE_LIMITED
from pagecache.models import GlobalConfig


@pytest.fixture
def storage(isolated_config: Path) -> Path:
    """Storage root with two cached variants of /about/ and one hit/miss each."""
    root = isolated_config / "storage"
    store = PageStore(pages_dir(root))
    store.initialize()
    store.put(derive_key("/about/", "", "mobile", False), b"<html>m</html>")
    store.put(derive_key("/about/", "", "desktop", False), b"<html>desktop</html>")
    stats = open_stats(root)
    stats.record_hit()
    stats.record_miss()
    stats.close()
    return root


def _invoke(cli_runner, storage: Path, *args: str):
    return cli_runner.invoke(app, ["--no-color", "--storage-dir", str(storage), *args])


class TestFormatSize:
    @pytest.mark.parametrize(
        ("size", "expected"),
        [(0, "0 B"), (512, "512 B"), (1536, "1.5 KB"), (5 * 1024 * 1024, "5.0 MB")],
    )
    def test_units(self, size: int, expected: str) -> None:
        assert format_size(size) == expected


class TestStats:
    def test_collect(self, storage: Path) -> None:
        report = collect_stats(storage)
        assert report["entries"] == 2
        assert report["size_bytes"] == len(b"<html>m</html>") + len(b"<html>desktop</html>")
        assert report["hits"] == 1
        assert report["misses"] == 1
        assert report["hit_ratio"] == "50.0%"

    def test_json_output(self, cli_runner, storage: Path) -> None:
        result = cli_runner.invoke(app, ["--json", "--storage-dir", str(storage), "stats"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["entries"] == 2
        assert data["hit_ratio"] == "50.0%"

    def test_plain_output(self, cli_runner, storage: Path) -> None:
        result = _invoke(cli_runner, storage, "stats")
        assert result.exit_code == 0, result.output
        assert "entries\t2" in result.output

    def test_empty_storage(self, cli_runner, isolated_config: Path) -> None:
        result = _invoke(cli_runner, isolated_config / "empty", "stats")
        assert result.exit_code == 0, result.output
        assert "entries\t0" in result.output
        assert "hit_ratio\t0.0%" in result.output


class TestClear:
    def test_clears_and_resets_counters(self, cli_runner, storage: Path) -> None:
        result = _invoke(cli_runner, storage, "clear", "--user", "alice")
        assert result.exit_code == 0, result.output
        assert "Cache cleared successfully (2 files cleared)" in result.output
        report = collect_stats(storage)
        assert report["entries"] == 0
        assert (report["hits"], report["misses"]) == (0, 0)

    def test_repeated_clear_is_throttled(self, cli_runner, storage: Path) -> None:
        _invoke(cli_runner, storage, "clear", "--user", "alice")
        result = _invoke(cli_runner, storage, "clear", "--user", "alice")
        assert result.exit_code == EXIT_RATE_LIMITED
        assert "Too many requests" in result.output

    def test_other_user_not_throttled(self, cli_runner, storage: Path) -> None:
        _invoke(cli_runner, storage, "clear", "--user", "alice")
        result = _invoke(cli_runner, storage, "clear", "--user", "bob")
        assert result.exit_code == 0, result.output

    def test_zero_cooldown_from_config(self, cli_runner, storage: Path) -> None:
        save_global_config(GlobalConfig(clear_cooldown_seconds=0))
        for _ in range(3):
            result = _invoke(cli_runner, storage, "clear", "--user", "alice")
            assert result.exit_code == 0, result.output

    def test_operation_raises_rate_limit_error(self, storage: Path) -> None:
        clear_cache(storage, "carol", 60)
        with pytest.raises(RateLimitError) as exc_info:
            clear_cache(storage, "carol", 60)
        assert exc_info.value.exit_code == EXIT_RATE_LIMITED


class TestPurge:
    def test_purges_both_variants(self, cli_runner, storage: Path) -> None:
        result = _invoke(cli_runner, storage, "purge", "/about/")
        assert result.exit_code == 0, result.output
        assert "Purged 2 cached pages" in result.output
        assert PageStore(pages_dir(storage)).keys() == []

    def test_unknown_path(self, cli_runner, storage: Path) -> None:
        result = _invoke(cli_runner, storage, "purge", "/nothing/")
        assert result.exit_code == 0, result.output
        assert "Purged 0 cached pages" in result.output

    def test_relative_path_rejected(self, cli_runner, storage: Path) -> None:
        result = _invoke(cli_runner, storage, "purge", "about/")
        assert result.exit_code == 2
        assert "must start with" in result.output
        assert len(PageStore(pages_dir(storage))) == 2

    def test_home_flag(self, cli_runner, storage: Path) -> None:
        store = PageStore(pages_dir(storage))
        store.put(derive_key("/", "", "desktop", False), b"home")
        result = _invoke(cli_runner, storage, "purge", "/about/", "--home")
        assert "Purged 3 cached pages" in result.output
        assert store.keys() == []


class TestInit:
    def test_creates_storage_and_config(self, cli_runner, isolated_config: Path) -> None:
        root = isolated_config / "fresh"
        result = _invoke(cli_runner, root, "init")
        assert result.exit_code == 0, result.output
        assert (pages_dir(root) / ".htaccess").is_file()
        assert global_config_path().is_file()
        assert "Cache storage ready" in result.output

    def test_keeps_existing_config(self, cli_runner, isolated_config: Path) -> None:
        save_global_config(GlobalConfig(home_path="/blog/"))
        _invoke(cli_runner, isolated_config / "fresh", "init")
        data = json.loads(global_config_path().read_text())
        assert data["home_path"] == "/blog/"

    def test_unwritable_storage(self, cli_runner, isolated_config: Path) -> None:
        blocker = isolated_config / "blocker"
        blocker.write_text("file")
        result = _invoke(cli_runner, blocker, "init")
        assert result.exit_code == 5
        assert "not writable" in result.output


class TestTeardown:
    def test_removes_pages(self, cli_runner, storage: Path) -> None:
        result = cli_runner.invoke(
            app, ["--no-color", "--force", "--storage-dir", str(storage), "teardown"]
        )
        assert result.exit_code == 0, result.output
        assert not pages_dir(storage).exists()
        assert (storage / "state").exists()

    def test_uninstall_removes_state_and_config(self, cli_runner, storage: Path) -> None:
        save_global_config(GlobalConfig())
        result = cli_runner.invoke(
            app,
            ["--no-color", "--force", "--storage-dir", str(storage), "teardown", "--uninstall"],
        )
        assert result.exit_code == 0, result.output
        assert not (storage / "state").exists()
        assert not global_config_path().exists()

    def test_declined_confirmation(self, cli_runner, storage: Path) -> None:
        result = cli_runner.invoke(
            app, ["--no-color", "--storage-dir", str(storage), "teardown"], input="n\n"
        )
        assert result.exit_code == 0
        assert "Cancelled." in result.output
        assert pages_dir(storage).is_dir()


class TestRoot:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "pagecache 0.1.0" in result.output

    def test_main_maps_error_to_exit_code(self, isolated_config: Path, monkeypatch) -> None:
        from pagecache import app as app_module
        from pagecache.exceptions import StorageError

        def _raise() -> None:
            raise StorageError("storage gone")

        monkeypatch.setattr(app_module, "_setup_signal_handlers", lambda: None)
        monkeypatch.setattr(app_module, "app", _raise)
        with pytest.raises(SystemExit) as exc_info:
            app_module.main()
        assert exc_info.value.code == 5

    def test_main_writes_crash_log(self, isolated_config: Path, monkeypatch) -> None:
        from pagecache import app as app_module

        def _raise() -> None:
            raise RuntimeError("unexpected")

        monkeypatch.setattr(app_module, "_setup_signal_handlers", lambda: None)
        monkeypatch.setattr(app_module, "app", _raise)
        with pytest.raises(SystemExit) as exc_info:
            app_module.main()
        assert exc_info.value.code == 1
        logs = list((isolated_config / "data" / "pagecache" / "logs").glob("crash-*.log"))
        assert len(logs) == 1
        assert "RuntimeError" in logs[0].read_text()

    def test_crash_log_location_without_xdg(self, isolated_config: Path, monkeypatch) -> None:
        from pagecache import app as app_module

        def _raise() -> None:
            raise RuntimeError("unexpected")

        monkeypatch.setattr("pagecache.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr("pathlib.Path.home", lambda: isolated_config / "home")
        monkeypatch.setattr(app_module, "_setup_signal_handlers", lambda: None)
        monkeypatch.setattr(app_module, "app", _raise)
        with pytest.raises(SystemExit):
            app_module.main()
        base = isolated_config / "home" / ".pagecache"
        assert len(list((base / "data" / "logs").glob("crash-*.log"))) == 1
        assert not (base / "logs").exists()
