"""Full-page cache core.

This package holds the components a host drives on every request:

* :mod:`~pagecache.cache.keys` -- deterministic cache key derivation.
* :mod:`~pagecache.cache.policy` -- the cacheability decision.
* :mod:`~pagecache.cache.store` -- filesystem page store with TTL.
* :mod:`~pagecache.cache.lock` -- per-key regeneration locks.
* :mod:`~pagecache.cache.invalidation` -- content change handling.
* :mod:`~pagecache.cache.stats` -- hit/miss counters.
* :mod:`~pagecache.cache.ratelimit` -- throttle for admin actions.
* :mod:`~pagecache.cache.pipeline` -- :class:`PageCache`, the per-request
  facade that ties them together.
"""

from pagecache.cache.invalidation import InvalidationCoordinator
from pagecache.cache.keys import derive_key, guest_variant_keys, key_for_request
from pagecache.cache.lock import RegenerationLockManager
from pagecache.cache.pipeline import (
    Capture,
    PageCache,
    RequestScope,
    open_page_cache,
    open_rate_limiter,
    open_stats,
)
from pagecache.cache.policy import decide
from pagecache.cache.ratelimit import RateLimiter
from pagecache.cache.stats import StatsCounter
from pagecache.cache.store import PageStore

__all__ = [
    "Capture",
    "InvalidationCoordinator",
    "PageCache",
    "PageStore",
    "RateLimiter",
    "RegenerationLockManager",
    "RequestScope",
    "StatsCounter",
    "decide",
    "derive_key",
    "guest_variant_keys",
    "key_for_request",
    "open_page_cache",
    "open_rate_limiter",
    "open_stats",
]
