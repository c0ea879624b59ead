"""Per-request caching pipeline: decide, look up, render, capture, store.

:class:`PageCache` ties the components together for one inbound request:

1. A :class:`RequestScope` reads the configuration once and memoizes the
   policy decision and cache key for the rest of the request.
2. Bypassed requests are rendered live.
3. Cacheable requests consult the :class:`~pagecache.cache.store.PageStore`.
   A hit is served from disk and counted.
4. A miss is counted, then the request tries to take the regeneration lock
   for its key.  The page is rendered and sent to the client either way;
   only the lock holder writes the captured body back to the store.

The lock is released exactly once on every exit path, including a render
that raises, because the capture stage is a ``with`` block rather than a
completion callback.

Example::

    cache = open_page_cache("/var/cache/pagecache", FileConfigProvider(), resolver)
    result = cache.serve(RequestContext.from_url("/about/"), render_about_page)
    send(result.body)
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from functools import cached_property
from pathlib import Path
from typing import Callable, Iterator, Optional

from pydantic import ValidationError

from pagecache.cache.invalidation import InvalidationCoordinator
from pagecache.cache.keys import key_for_request
from pagecache.cache.lock import RegenerationLockManager
from pagecache.cache.policy import decide
from pagecache.cache.ratelimit import RateLimiter
from pagecache.cache.stats import StatsCounter
from pagecache.cache.store import PageStore
from pagecache.exceptions import PageCacheError
from pagecache.host import ConfigProvider, ContentResolver, RequestContext, SiteState
from pagecache.models import (
    BypassReason,
    CacheConfig,
    Decision,
    ServeOutcome,
    ServeResult,
)

logger = logging.getLogger(__name__)

PAGES_DIR = "pages"
STATE_DIR = "state"

Renderer = Callable[[], "bytes | str"]


class RequestScope:
    """Request-lifetime view of the configuration, decision and key.

    Each property is computed on first access and then fixed for the rest
    of the request, so the decision cannot change halfway through even if
    the configuration file is edited meanwhile.
    """

    def __init__(
        self,
        request: RequestContext,
        config_provider: ConfigProvider,
        resolver: Optional[ContentResolver] = None,
    ) -> None:
        self.request = request
        self._config_provider = config_provider
        self._resolver = resolver

    @cached_property
    def config(self) -> CacheConfig:
        """The configuration for this request; caching is disabled if it cannot be read."""
        try:
            return self._config_provider.get_config()
        except (PageCacheError, OSError, ValidationError) as exc:
            logger.warning("Cache config unavailable, serving live: %s", exc)
            return CacheConfig(cache_disabled=True)

    @cached_property
    def site(self) -> SiteState:
        if self._resolver is None:
            return SiteState(
                content_id=self.request.content_id,
                transactional_view=self.request.transactional_view,
            )
        return self._resolver.site_state(self.request)

    @cached_property
    def decision(self) -> Decision:
        decision = decide(self.request, self.site, self.config)
        if not decision.allowed:
            logger.debug("Bypassing cache for %s: %s", self.request.path, decision.reason.value)
        return decision

    @cached_property
    def key(self) -> Optional[str]:
        """Cache key for the request, or ``None`` when the request is bypassed."""
        if not self.decision.allowed:
            return None
        return key_for_request(self.request, self.config)


class Capture:
    """Collects the rendered body of one request for the store.

    Yielded by :meth:`PageCache.capture`.  The host checks :attr:`hit`
    first; if it is not ``None`` the stored body is sent as-is.  Otherwise
    the host renders the page, sends it to the client, and feeds the same
    bytes through :meth:`write`.

    Attributes:
        key: Cache key, or ``None`` for a bypassed request.
        outcome: HIT, MISS or BYPASS.
        reason: Bypass reason, if bypassed.
        hit: Stored body on a cache hit.
        acquired: Whether this request holds the regeneration lock and
            will write its body on completion.
        stored: Set after the ``with`` block ends, when the body was written.
    """

    def __init__(self, key: Optional[str], outcome: ServeOutcome, reason: Optional[BypassReason] = None) -> None:
        self.key = key
        self.outcome = outcome
        self.reason = reason
        self.hit: Optional[bytes] = None
        self.acquired = False
        self.stored = False
        self._chunks: list[bytes] = []
        self._discarded = False

    def write(self, chunk: bytes | str) -> None:
        """Append a chunk of the rendered response."""
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        self._chunks.append(chunk)

    def discard(self) -> None:
        """Do not store this response (e.g. the host ended up sending an error page)."""
        self._discarded = True

    @property
    def discarded(self) -> bool:
        return self._discarded

    @property
    def body(self) -> bytes:
        """Everything written so far, or the stored body on a hit."""
        if self.hit is not None:
            return self.hit
        return b"".join(self._chunks)


class PageCache:
    """Full-page cache facade used by the host for every request.

    Args:
        store: Where rendered bodies live.
        locks: Regeneration lock manager, normally rooted beside the store.
        stats: Hit/miss counters.
        config_provider: Read once per request.
        resolver: Optional content resolver; without one the content ID and
            transactional flag come straight from the request.
    """

    def __init__(
        self,
        store: PageStore,
        locks: RegenerationLockManager,
        stats: StatsCounter,
        config_provider: ConfigProvider,
        resolver: Optional[ContentResolver] = None,
    ) -> None:
        self.store = store
        self.locks = locks
        self.stats = stats
        self.config_provider = config_provider
        self.resolver = resolver

    def scope(self, request: RequestContext) -> RequestScope:
        """Create the memoizing scope for *request*."""
        return RequestScope(request, self.config_provider, self.resolver)

    @contextmanager
    def capture(self, request: RequestContext) -> Iterator[Capture]:
        """Run one request through the cache.

        Yields a :class:`Capture`.  On a miss with the lock held, the
        captured body is stored when the block exits normally; an exception
        inside the block skips the write.  The lock is released in every case.
        """
        scope = self.scope(request)
        key = scope.key
        if key is None:
            yield Capture(None, ServeOutcome.BYPASS, scope.decision.reason)
            return
        if not self.store.initialize():
            yield Capture(None, ServeOutcome.BYPASS, BypassReason.STORAGE_UNAVAILABLE)
            return

        cached = self.store.get(key, scope.config.ttl_seconds)
        if cached is not None:
            self.stats.record_hit()
            capture = Capture(key, ServeOutcome.HIT)
            capture.hit = cached
            yield capture
            return

        self.stats.record_miss()
        capture = Capture(key, ServeOutcome.MISS)
        with self.locks.hold(key) as acquired:
            capture.acquired = acquired
            if not acquired:
                logger.debug("Regeneration of %s already in progress; serving live", key)
            yield capture
            if acquired and not capture.discarded:
                capture.stored = self.store.put(key, capture.body)

    def serve(self, request: RequestContext, render: Renderer) -> ServeResult:
        """Return the response body for *request*, rendering only when needed.

        Args:
            request: The inbound request.
            render: Produces the page body; called on misses and bypasses.
                Exceptions propagate after the lock has been released.

        Returns:
            A :class:`~pagecache.models.ServeResult` with the body to send.
        """
        with self.capture(request) as capture:
            if capture.hit is None:
                capture.write(render())
        return ServeResult(
            body=capture.body,
            outcome=capture.outcome,
            key=capture.key,
            reason=capture.reason,
            stored=capture.stored,
        )

    def invalidation(self, resolver: Optional[ContentResolver] = None, home_path: str = "/") -> InvalidationCoordinator:
        """Build an :class:`InvalidationCoordinator` over this cache's store.

        Raises:
            ValueError: If no resolver is given and none was configured.
        """
        resolver = resolver or self.resolver
        if resolver is None:
            raise ValueError("A ContentResolver is required for invalidation")
        return InvalidationCoordinator(self.store, resolver, self.config_provider, home_path)

    def close(self) -> None:
        """Release the diskcache handles held by the stats counter."""
        self.stats.close()


def pages_dir(storage_dir: str | Path) -> Path:
    """Directory holding page bodies, lock markers and the access marker."""
    return Path(storage_dir) / PAGES_DIR


def state_dir(storage_dir: str | Path) -> Path:
    """Directory holding the diskcache-backed counters; never web-served."""
    return Path(storage_dir) / STATE_DIR


def open_stats(storage_dir: str | Path) -> StatsCounter:
    return StatsCounter(state_dir(storage_dir) / "stats")


def open_rate_limiter(storage_dir: str | Path) -> RateLimiter:
    return RateLimiter(state_dir(storage_dir) / "ratelimit")


def open_page_cache(
    storage_dir: str | Path,
    config_provider: ConfigProvider,
    resolver: Optional[ContentResolver] = None,
    clock: Callable[[], float] = time.time,
) -> PageCache:
    """Wire a :class:`PageCache` from a single storage root.

    Layout::

        <storage_dir>/pages/<key>.html        cached bodies
        <storage_dir>/pages/<key>.html.lock   regeneration markers
        <storage_dir>/pages/.htaccess         access-control marker
        <storage_dir>/state/stats/            hit/miss counters
    """
    stats = open_stats(storage_dir)
    store = PageStore(pages_dir(storage_dir), stats=stats, clock=clock)
    locks = RegenerationLockManager(pages_dir(storage_dir), clock=clock)
    return PageCache(store, locks, stats, config_provider, resolver)
