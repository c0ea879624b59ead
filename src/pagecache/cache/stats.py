"""Hit/miss counters shared by every worker on the host.

Counters live in a :class:`diskcache.Cache` so that ``incr`` is atomic
across processes (diskcache serialises writers through SQLite).  They are
read by the admin ``stats`` command and reset only by a bulk clear.

Counting is best-effort: a failed increment is logged and the request
carries on.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import diskcache

from pagecache.models import StatsSnapshot

logger = logging.getLogger(__name__)

HITS = "hits"
MISSES = "misses"

_COUNTER_ERRORS = (sqlite3.Error, diskcache.Timeout, OSError)


class StatsCounter:
    """Monotonic hit/miss counters persisted under *directory*.

    Args:
        directory: Directory for the backing :class:`diskcache.Cache`.

    Example::

        stats = StatsCounter("/var/cache/pagecache/state/stats")
        stats.record_hit()
        stats.snapshot().percent   # -> 100.0
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)
        self._cache = diskcache.Cache(str(self._directory))

    @property
    def directory(self) -> Path:
        return self._directory

    def record_hit(self) -> int:
        """Count one cache hit and return the new total."""
        return self._incr(HITS)

    def record_miss(self) -> int:
        """Count one cache miss and return the new total."""
        return self._incr(MISSES)

    def snapshot(self) -> StatsSnapshot:
        """Return the current counters."""
        return StatsSnapshot(
            hits=self._cache.get(HITS, default=0),
            misses=self._cache.get(MISSES, default=0),
        )

    def reset(self) -> None:
        """Zero both counters."""
        with self._cache.transact():
            self._cache.set(HITS, 0)
            self._cache.set(MISSES, 0)

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache` and release resources."""
        self._cache.close()

    def _incr(self, name: str) -> int:
        try:
            return self._cache.incr(name, default=0)
        except _COUNTER_ERRORS as exc:
            logger.warning("Could not update %s counter: %s", name, exc)
            return 0
