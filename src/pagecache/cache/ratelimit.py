"""Throttle for administrative actions such as a manual cache clear.

A throttled action is recorded as a diskcache key that expires after the
action's window.  :meth:`diskcache.Cache.add` only succeeds when the key
is absent, which makes "first caller in the window wins" a single atomic
step shared by every process on the host.  Nothing is coordinated across
hosts; the throttle is best-effort protection against repeated clicks,
not a security boundary.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

import diskcache

logger = logging.getLogger(__name__)


class RateLimiter:
    """Allow an ``(action, subject)`` pair at most once per window.

    Args:
        directory: Directory for the backing :class:`diskcache.Cache`.

    Example::

        limiter = RateLimiter("/var/cache/pagecache/state/ratelimit")
        if limiter.allow("clear_cache", "admin", window_seconds=60):
            store.delete_all()
    """

    def __init__(self, directory: str | Path) -> None:
        self._cache = diskcache.Cache(str(directory))

    @staticmethod
    def _key(action: str, subject: str) -> str:
        return f"{action}:{subject}"

    def allow(self, action: str, subject: str, window_seconds: float) -> bool:
        """Record an attempt and report whether it is allowed.

        Args:
            action: Name of the throttled action (e.g. ``"clear_cache"``).
            subject: Who is acting (user name, account ID, ...).
            window_seconds: Cooldown after an allowed attempt.  ``0`` or
                less disables throttling.

        Returns:
            ``True`` for the first attempt in a window, ``False`` for every
            later attempt until the window expires.
        """
        if window_seconds <= 0:
            return True
        allowed = self._cache.add(
            self._key(action, subject), time.time(), expire=window_seconds
        )
        if not allowed:
            logger.info("Rate limited %s for %s", action, subject)
        return bool(allowed)

    def retry_after(self, action: str, subject: str) -> float:
        """Seconds until *subject* may perform *action* again (``0.0`` if allowed now)."""
        _, expire_time = self._cache.get(
            self._key(action, subject), default=None, expire_time=True
        )
        if expire_time is None:
            return 0.0
        return max(0.0, expire_time - time.time())

    def reset(self, action: str, subject: str) -> None:
        """Forget the last attempt so the next one is allowed."""
        self._cache.delete(self._key(action, subject))

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache`."""
        self._cache.close()
