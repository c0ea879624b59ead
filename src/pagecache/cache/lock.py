"""Per-key regeneration locks for cache stampede control.

When many requests miss on the same key at once, only the first one should
write the freshly rendered page back to the store.  The lock is a marker
file, ``<key>.html.lock``, beside the body it protects:

* Creation uses ``O_CREAT | O_EXCL``, so among concurrent callers exactly
  one succeeds, across threads and processes alike.
* The marker's mtime is its acquisition time.  A marker older than the
  staleness window (30 seconds) belongs to a regeneration that crashed or
  hung; it is removed and acquisition is retried once.
* The lock gates *write eligibility only*.  A caller that finds the key
  locked still renders and serves its own page, it just does not store it.
  Nobody waits on a lock.

Two callers can both clear the same stale marker in a narrow race and both
end up writing.  That is tolerated: store writes are atomic and the last
writer wins.
"""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Callable, Iterator

from pagecache.cache.store import BODY_SUFFIX
from pagecache.models import LockResult

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"

STALE_AFTER_SECONDS = 30.0
"""Age after which a regeneration marker is considered abandoned."""


class RegenerationLockManager:
    """Create, check and release regeneration markers under *root*.

    Args:
        root: Directory holding the markers; normally the page store root.
        stale_after: Seconds after which an existing marker is ignored.
        clock: Source of "now" in epoch seconds.
    """

    def __init__(
        self,
        root: str | Path,
        stale_after: float = STALE_AFTER_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._root = Path(root)
        self._stale_after = stale_after
        self._clock = clock

    def path_for(self, key: str) -> Path:
        """Return the marker path for *key*."""
        return self._root / f"{key}{BODY_SUFFIX}{LOCK_SUFFIX}"

    def try_acquire(self, key: str) -> LockResult:
        """Try to become the single writer for *key*.

        Returns:
            :attr:`LockResult.LOCKED` if this caller now holds the lock,
            :attr:`LockResult.ALREADY_LOCKED` if a fresh marker exists or the
            marker could not be created.
        """
        path = self.path_for(key)
        if self._create(path):
            return LockResult.LOCKED
        if not self._is_stale(path):
            return LockResult.ALREADY_LOCKED

        logger.info("Recovering stale regeneration lock for %s", key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not clear stale lock %s: %s", path, exc)
            return LockResult.ALREADY_LOCKED
        if self._create(path):
            return LockResult.LOCKED
        return LockResult.ALREADY_LOCKED

    def release(self, key: str) -> None:
        """Remove the marker for *key*.  Releasing an unheld lock is a no-op."""
        try:
            self.path_for(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not release lock for %s: %s", key, exc)

    def is_locked(self, key: str) -> bool:
        """Return ``True`` if a marker for *key* exists and is not stale."""
        path = self.path_for(key)
        return path.exists() and not self._is_stale(path)

    @contextmanager
    def hold(self, key: str) -> Iterator[bool]:
        """Acquire the lock for the duration of a ``with`` block.

        Yields whether the lock was acquired.  A lock acquired here is
        released on every exit path, including exceptions raised inside the
        block; a lock owned by someone else is never touched.

        Example::

            with locks.hold(key) as acquired:
                body = render()
                if acquired:
                    store.put(key, body)
        """
        acquired = self.try_acquire(key) is LockResult.LOCKED
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _create(self, path: Path) -> bool:
        """Atomically create the marker; ``False`` if it already exists or creation failed."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        except OSError as exc:
            logger.warning("Could not create lock %s: %s", path, exc)
            return False
        now = self._clock()
        try:
            try:
                os.write(fd, f"{now:.6f} {os.getpid()}\n".encode("ascii"))
            finally:
                os.close(fd)
        except OSError as exc:
            logger.warning("Could not write lock %s: %s", path, exc)
            with suppress(OSError):
                path.unlink()
            return False
        try:
            os.utime(path, (now, now))
        except OSError:
            # The marker exists; it only ages on the wall clock instead.
            pass
        return True

    def _is_stale(self, path: Path) -> bool:
        try:
            acquired_at = path.stat().st_mtime
        except FileNotFoundError:
            # Released between our create attempt and now; treat as free.
            return True
        except OSError as exc:
            logger.warning("Could not inspect lock %s: %s", path, exc)
            return False
        return self._clock() - acquired_at >= self._stale_after
