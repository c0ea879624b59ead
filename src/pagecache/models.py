"""Canonical Pydantic models shared across all pagecache modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory
and read (never written) by the per-request pipeline:
    :class:`CacheConfig` and :class:`GlobalConfig`.

**Runtime models** -- produced by the cache components and consumed by the
host or the admin CLI:
    :class:`BypassReason`, :class:`Decision`, :class:`LockResult`,
    :class:`ServeOutcome`, :class:`ContentEvent`, :class:`CacheEntry`,
    :class:`StatsSnapshot`, and :class:`ServeResult`.

All models use Pydantic v2.  Request-scoped inputs supplied by the host
(:class:`~pagecache.host.RequestContext` and
:class:`~pagecache.host.SiteState`) live in :mod:`pagecache.host` because
the host owns them.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

HOUR_IN_SECONDS = 3600

MAX_TTL_HOURS = 999
"""Upper bound for :attr:`CacheConfig.ttl_hours`; larger values are clamped."""


# --- Configuration models ---


class CacheConfig(BaseModel):
    """Cache behaviour settings read by the pipeline on every request.

    Values are sanitised rather than rejected, so a config file edited by
    hand with out-of-range numbers or stray lines in the exclusion list still
    loads:

    * ``ttl_hours`` is clamped into ``0..999``.
    * ``exclude`` accepts a list of IDs or a newline/comma separated string;
      entries that are not positive integers are dropped.

    Example::

        CacheConfig(ttl_hours=0, exclude="12\\n40\\nabc", cache_mobile=False)
        # -> ttl never expires, exclude == {12, 40}
    """

    ttl_hours: int = Field(
        default=1,
        description="Hours before a cached page expires (0 = never expire)",
    )
    exclude: set[int] = Field(
        default_factory=set,
        description="Content IDs that must never be cached",
    )
    cache_mobile: bool = Field(
        default=True,
        description="Keep separate cached copies for mobile and desktop visitors",
    )
    cache_disabled: bool = Field(
        default=False,
        description="Turn off all caching (useful for troubleshooting)",
    )

    @field_validator("ttl_hours", mode="before")
    @classmethod
    def _clamp_ttl(cls, value: Any) -> int:
        try:
            hours = int(value)
        except (TypeError, ValueError):
            raise ValueError(f"ttl_hours must be an integer, got {value!r}") from None
        return min(max(hours, 0), MAX_TTL_HOURS)

    @field_validator("exclude", mode="before")
    @classmethod
    def _parse_exclude(cls, value: Any) -> set[int]:
        if value is None:
            return set()
        if isinstance(value, str):
            items: list[Any] = value.replace(",", "\n").splitlines()
        else:
            items = list(value)
        ids: set[int] = set()
        for item in items:
            if isinstance(item, bool):
                continue
            text = str(item).strip()
            if not text.isdigit():
                continue
            content_id = int(text)
            if content_id > 0:
                ids.add(content_id)
        return ids

    @field_serializer("exclude")
    def _serialize_exclude(self, value: set[int]) -> list[int]:
        return sorted(value)

    @property
    def ttl_seconds(self) -> int:
        """TTL in seconds; ``0`` means entries never expire."""
        return self.ttl_hours * HOUR_IN_SECONDS


class GlobalConfig(BaseModel):
    """Site-wide configuration persisted at ``~/.config/pagecache/config.json``.

    Loaded and saved by :func:`~pagecache.config.load_global_config` and
    :func:`~pagecache.config.save_global_config`.  Fields here have the
    lowest precedence and can be overridden by environment variables or CLI
    flags.  See :func:`~pagecache.config.resolve_config` for the chain.
    """

    storage_dir: Optional[str] = Field(
        default=None,
        description="Cache storage root (default: the XDG cache directory)",
    )
    home_path: str = Field(
        default="/",
        description="Path of the home/listing view invalidated on every content change",
    )
    clear_cooldown_seconds: int = Field(
        default=60,
        ge=0,
        description="Minimum seconds between two manual cache clears",
    )
    cache: CacheConfig = Field(default_factory=CacheConfig)


# --- Runtime models ---


class BypassReason(str, enum.Enum):
    """Why a request was served live instead of through the cache.

    Members are listed roughly in the order the policy engine checks them;
    ``STORAGE_UNAVAILABLE`` is produced by the pipeline, not the policy.
    """

    DISABLED = "disabled"
    AUTHENTICATED = "authenticated"
    ADMIN = "admin"
    NOT_FOUND = "not_found"
    SEARCH = "search"
    PREVIEW = "preview"
    INTERNAL = "internal"
    AUTH_FLOW = "auth_flow"
    METHOD = "method"
    API_PATH = "api_path"
    NOCACHE_PARAM = "nocache_param"
    TRANSACTIONAL = "transactional"
    EXCLUDED = "excluded"
    STORAGE_UNAVAILABLE = "storage_unavailable"


class Decision(BaseModel):
    """Outcome of the cacheability policy for one request."""

    model_config = {"frozen": True}

    allowed: bool
    reason: Optional[BypassReason] = None

    @classmethod
    def allow(cls) -> Decision:
        return cls(allowed=True)

    @classmethod
    def bypass(cls, reason: BypassReason) -> Decision:
        return cls(allowed=False, reason=reason)


class LockResult(str, enum.Enum):
    """Result of :meth:`~pagecache.cache.lock.RegenerationLockManager.try_acquire`."""

    LOCKED = "locked"
    ALREADY_LOCKED = "already_locked"


class ServeOutcome(str, enum.Enum):
    """How the pipeline produced the body returned to the client."""

    HIT = "hit"
    MISS = "miss"
    BYPASS = "bypass"


class ContentEvent(str, enum.Enum):
    """Content lifecycle events that invalidate cached pages."""

    SAVED = "saved"
    TRASHED = "trashed"
    DELETED = "deleted"
    COMMENT_POSTED = "comment_posted"
    COMMENT_STATUS = "comment_status"


class CacheEntry(BaseModel):
    """A stored page as seen by the admin surface.

    Attributes:
        key: The cache key (SHA-256 hex digest).
        path: Absolute path of the ``<key>.html`` body file.
        size: Body size in bytes.
        created_at: When the body was written (timezone-aware, UTC).
    """

    key: str
    path: str
    size: int
    created_at: datetime


class StatsSnapshot(BaseModel):
    """Point-in-time copy of the hit/miss counters."""

    hits: int = 0
    misses: int = 0

    @property
    def total(self) -> int:
        return self.hits + self.misses

    @property
    def ratio(self) -> float:
        """Hits over total lookups, ``0.0`` when nothing has been counted yet."""
        if self.total == 0:
            return 0.0
        return self.hits / self.total

    @property
    def percent(self) -> float:
        """Hit ratio as a percentage rounded to one decimal place."""
        return round(self.ratio * 100, 1)


class ServeResult(BaseModel):
    """What :meth:`~pagecache.cache.PageCache.serve` hands back to the host.

    ``body`` is always the bytes to send to the client, whichever path
    produced them.  ``key`` is ``None`` for bypassed requests.
    """

    body: bytes
    outcome: ServeOutcome
    key: Optional[str] = None
    reason: Optional[BypassReason] = None
    stored: bool = False
