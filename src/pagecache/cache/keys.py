"""Deterministic cache key derivation.

A key is the SHA-256 hex digest of the request dimensions joined with
``|`` in a fixed order::

    path | query | device tag (only when mobile caching is on) | auth tag

Invalidation recomputes keys with the same function, so any change to the
ordering or separator here silently orphans every stored page.
"""

from __future__ import annotations

import hashlib
from typing import Optional

from pagecache.host import RequestContext
from pagecache.models import CacheConfig

SEPARATOR = "|"

MOBILE = "mobile"
DESKTOP = "desktop"
LOGGED_IN = "logged_in"
GUEST = "guest"


def derive_key(
    path: str,
    query_string: str,
    device_class: Optional[str],
    authenticated: bool,
) -> str:
    """Return the cache key for one request variant.

    Args:
        path: Request path without the query string.
        query_string: Raw query string (may be empty).
        device_class: ``"mobile"`` or ``"desktop"`` when device variants are
            enabled, ``None`` to leave the device out of the key.
        authenticated: Whether the requester is logged in.

    Returns:
        A 64-character lowercase hex digest.
    """
    parts = [path, query_string]
    if device_class is not None:
        parts.append(device_class)
    parts.append(LOGGED_IN if authenticated else GUEST)
    raw = SEPARATOR.join(parts)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def device_class_for(request: RequestContext, config: CacheConfig) -> Optional[str]:
    """Device tag for *request*, or ``None`` when mobile caching is off."""
    if not config.cache_mobile:
        return None
    return MOBILE if request.mobile else DESKTOP


def key_for_request(request: RequestContext, config: CacheConfig) -> str:
    """Derive the key a lookup for *request* would use under *config*."""
    return derive_key(
        request.path,
        request.query_string,
        device_class_for(request, config),
        request.authenticated,
    )


def guest_variant_keys(path: str, query_string: str, config: CacheConfig) -> list[str]:
    """Every guest-class key that could hold a cached copy of ``path?query``.

    Logged-in requests are never cached, so only guest keys are returned:
    one per device class when mobile caching is on, otherwise one.
    """
    if config.cache_mobile:
        return [
            derive_key(path, query_string, MOBILE, False),
            derive_key(path, query_string, DESKTOP, False),
        ]
    return [derive_key(path, query_string, None, False)]
