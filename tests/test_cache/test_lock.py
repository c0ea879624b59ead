"""Tests for per-key regeneration locks."""

from __future__ import annotations

import errno
import threading
from pathlib import Path

import pytest

from pagecache.cache.lock import RegenerationLockManager
from pagecache.models import LockResult

KEY = "a" * 64


class TestAcquireRelease:
    def test_first_caller_locks(self, locks: RegenerationLockManager) -> None:
        assert locks.try_acquire(KEY) is LockResult.LOCKED
        assert locks.path_for(KEY).name == f"{KEY}.html.lock"
        assert locks.is_locked(KEY)

    def test_second_caller_sees_lock(self, locks: RegenerationLockManager) -> None:
        locks.try_acquire(KEY)
        assert locks.try_acquire(KEY) is LockResult.ALREADY_LOCKED

    def test_release_allows_reacquire(self, locks: RegenerationLockManager) -> None:
        locks.try_acquire(KEY)
        locks.release(KEY)
        assert not locks.is_locked(KEY)
        assert locks.try_acquire(KEY) is LockResult.LOCKED

    def test_release_unheld_is_noop(self, locks: RegenerationLockManager) -> None:
        locks.release(KEY)
        locks.release(KEY)
        assert not locks.path_for(KEY).exists()

    def test_keys_are_independent(self, locks: RegenerationLockManager) -> None:
        assert locks.try_acquire(KEY) is LockResult.LOCKED
        assert locks.try_acquire("b" * 64) is LockResult.LOCKED

    def test_creates_missing_root(self, tmp_path: Path) -> None:
        manager = RegenerationLockManager(tmp_path / "new" / "pages")
        assert manager.try_acquire(KEY) is LockResult.LOCKED


class TestStaleness:
    def test_fresh_lock_not_recovered(self, locks: RegenerationLockManager, clock) -> None:
        locks.try_acquire(KEY)
        clock.advance(29)
        assert locks.try_acquire(KEY) is LockResult.ALREADY_LOCKED

    def test_stale_lock_recovered(self, locks: RegenerationLockManager, clock) -> None:
        locks.try_acquire(KEY)
        clock.advance(31)
        assert not locks.is_locked(KEY)
        assert locks.try_acquire(KEY) is LockResult.LOCKED
        clock.advance(1)
        assert locks.is_locked(KEY)

    def test_custom_window(self, tmp_path: Path, clock) -> None:
        manager = RegenerationLockManager(tmp_path, stale_after=5, clock=clock)
        manager.try_acquire(KEY)
        clock.advance(5)
        assert manager.try_acquire(KEY) is LockResult.LOCKED


class TestHold:
    def test_releases_on_exit(self, locks: RegenerationLockManager) -> None:
        with locks.hold(KEY) as acquired:
            assert acquired is True
            assert locks.is_locked(KEY)
        assert not locks.is_locked(KEY)

    def test_releases_on_exception(self, locks: RegenerationLockManager) -> None:
        with pytest.raises(RuntimeError):
            with locks.hold(KEY):
                raise RuntimeError("render failed")
        assert not locks.path_for(KEY).exists()

    def test_foreign_lock_left_alone(self, locks: RegenerationLockManager) -> None:
        locks.try_acquire(KEY)
        with locks.hold(KEY) as acquired:
            assert acquired is False
        assert locks.is_locked(KEY)


class TestStorageFailures:
    def test_failed_marker_write_is_cleaned_up(
        self, locks: RegenerationLockManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def _disk_full(fd: int, data: bytes) -> int:
            raise OSError(errno.ENOSPC, "No space left on device")

        monkeypatch.setattr("pagecache.cache.lock.os.write", _disk_full)
        assert locks.try_acquire(KEY) is LockResult.ALREADY_LOCKED
        assert not locks.path_for(KEY).exists()

        monkeypatch.undo()
        assert locks.try_acquire(KEY) is LockResult.LOCKED

    def test_unreadable_marker_counts_as_held(
        self, locks: RegenerationLockManager, clock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        locks.try_acquire(KEY)
        clock.advance(3600)

        def _denied(self, *args, **kwargs):
            raise PermissionError(errno.EACCES, "Permission denied")

        monkeypatch.setattr(Path, "stat", _denied)
        assert locks._is_stale(locks.path_for(KEY)) is False


class TestConcurrency:
    def test_exactly_one_thread_wins(self, tmp_path: Path) -> None:
        """Many simultaneous misses on one key produce a single lock holder."""
        manager = RegenerationLockManager(tmp_path)
        workers = 16
        barrier = threading.Barrier(workers)
        results: list[LockResult] = []
        results_lock = threading.Lock()

        def _worker() -> None:
            barrier.wait()
            result = manager.try_acquire(KEY)
            with results_lock:
                results.append(result)

        threads = [threading.Thread(target=_worker) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(LockResult.LOCKED) == 1
        assert results.count(LockResult.ALREADY_LOCKED) == workers - 1
