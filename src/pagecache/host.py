"""Collaborator contracts implemented by the host application.

The cache core never talks to the CMS directly.  Everything it needs from
the host arrives through the types in this module:

* :class:`RequestContext` -- one inbound request: path, query string,
  method, who is asking, and which special view is being rendered.
* :class:`SiteState` -- facts about the current view that only the content
  layer knows (resolved content ID, transactional e-commerce views).
* :class:`ConfigProvider` -- read-only access to
  :class:`~pagecache.models.CacheConfig`, consulted once per request.
* :class:`ContentResolver` -- maps content IDs to canonical URLs for
  invalidation and identifies the content behind a view.

Hosts subclass the abstract bases; :class:`StaticConfigProvider` and
:class:`MappingContentResolver` cover tests and simple deployments.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Mapping, Optional
from urllib.parse import parse_qsl, urlsplit

from pagecache.models import CacheConfig


@dataclass(frozen=True)
class RequestContext:
    """Everything the policy engine and key deriver know about a request.

    The host fills this in once per request.  Flags default to the values of
    a plain anonymous page view so tests and simple hosts only set what
    differs.

    Attributes:
        path: Request path without the query string (e.g. ``/about/``).
        query_string: Raw query string without the leading ``?``.
        method: HTTP method, compared case-insensitively.
        authenticated: Whether the requester is logged in.
        mobile: Whether the requester was classified as a mobile device.
        script_name: Entry script handling the request (``wp-login.php``
            for the login screen), if the host knows it.
        is_admin: Administrative screen.
        is_search: Search results view.
        is_not_found: The view resolved to a 404.
        is_preview: Unpublished content preview.
        is_background: Scheduled/background job execution.
        is_cli: Command-line execution.
        is_api: Machine-readable API request context.
        is_ajax: Asynchronous admin request.
        is_singular: The view shows one content item (post or page).
        transactional_view: Cart, checkout, account or other transactional
            e-commerce view.
        content_id: ID of the content item behind a singular view.
    """

    path: str = "/"
    query_string: str = ""
    method: str = "GET"
    authenticated: bool = False
    mobile: bool = False
    script_name: Optional[str] = None
    is_admin: bool = False
    is_search: bool = False
    is_not_found: bool = False
    is_preview: bool = False
    is_background: bool = False
    is_cli: bool = False
    is_api: bool = False
    is_ajax: bool = False
    is_singular: bool = False
    transactional_view: bool = False
    content_id: Optional[int] = None
    query_params: Mapping[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # First value wins for repeated keys; blank values are kept so that
        # a bare ``?nocache`` is still visible.
        params: dict[str, str] = {}
        for name, value in parse_qsl(self.query_string, keep_blank_values=True):
            params.setdefault(name, value)
        object.__setattr__(self, "query_params", params)

    @classmethod
    def from_url(cls, url: str, **flags: object) -> RequestContext:
        """Build a context from a URL or request URI plus keyword flags.

        Example::

            RequestContext.from_url("/shop/?nocache=1", mobile=True)
        """
        parts = urlsplit(url)
        return cls(path=parts.path or "/", query_string=parts.query, **flags)  # type: ignore[arg-type]


@dataclass(frozen=True)
class SiteState:
    """Content-layer facts about the current view, resolved by the host."""

    content_id: Optional[int] = None
    transactional_view: bool = False


class ConfigProvider(abc.ABC):
    """Read-only source of :class:`~pagecache.models.CacheConfig`.

    Called once per request.  Implementations may raise
    :class:`~pagecache.exceptions.ConfigError` (or ``OSError``); the
    pipeline treats any failure as "caching disabled" for that request.
    """

    @abc.abstractmethod
    def get_config(self) -> CacheConfig:
        """Return the configuration in effect for the current request."""


class StaticConfigProvider(ConfigProvider):
    """Serve one fixed configuration, optionally swapped at runtime."""

    def __init__(self, config: Optional[CacheConfig] = None) -> None:
        self._config = config or CacheConfig()

    def get_config(self) -> CacheConfig:
        return self._config

    def set_config(self, config: CacheConfig) -> None:
        self._config = config


class ContentResolver(abc.ABC):
    """Bridge to the host's content model.

    Only :meth:`canonical_url` is mandatory.  The view-level helpers default
    to the flags already present on the :class:`RequestContext`, which is
    what a host that resolves the content ID up front will want.
    """

    @abc.abstractmethod
    def canonical_url(self, content_id: int) -> Optional[str]:
        """Return the canonical URL (or path) of *content_id*, or ``None`` if unknown."""

    def current_content_id(self, request: RequestContext) -> Optional[int]:
        """Return the content ID rendered by *request*, if any."""
        return request.content_id

    def is_transactional_view(self, request: RequestContext) -> bool:
        """Return ``True`` for cart, checkout, account and similar views."""
        return request.transactional_view

    def site_state(self, request: RequestContext) -> SiteState:
        """Collect the per-view facts the policy engine needs."""
        return SiteState(
            content_id=self.current_content_id(request),
            transactional_view=self.is_transactional_view(request),
        )


class MappingContentResolver(ContentResolver):
    """Resolve content IDs from an in-memory ``{id: url}`` mapping."""

    def __init__(self, urls: Optional[Mapping[int, str]] = None) -> None:
        self._urls: dict[int, str] = dict(urls or {})

    def canonical_url(self, content_id: int) -> Optional[str]:
        return self._urls.get(content_id)

    def register(self, content_id: int, url: str) -> None:
        self._urls[content_id] = url

    def forget(self, content_id: int) -> None:
        self._urls.pop(content_id, None)
