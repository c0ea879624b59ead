"""Cacheability policy: decide whether a request may be served from cache.

:func:`decide` is a pure function of the request, the view state and the
configuration.  Checks run in a fixed priority order and the first match
short-circuits the rest, so the returned :class:`~pagecache.models.Decision`
always carries the most significant bypass reason.

Priority order:

1. Caching disabled in configuration.
2. Personalised or internal requests: logged-in users, admin screens,
   not-found, search and preview views, background/CLI/API/ajax execution.
3. Authentication flow (login, logout, registration, password reset).
4. Any method other than GET.
5. Machine-readable API paths.
6. An explicit ``nocache`` query parameter.
7. Transactional e-commerce views (cart, checkout, account).
8. Singular content whose ID is on the exclusion list.

The pipeline evaluates the policy once per request and memoizes the result
on its :class:`~pagecache.cache.pipeline.RequestScope`.
"""

from __future__ import annotations

from pagecache.host import RequestContext, SiteState
from pagecache.models import BypassReason, CacheConfig, Decision

LOGIN_SCRIPT = "wp-login.php"

AUTH_FLOW_ACTIONS = frozenset(
    {"login", "logout", "register", "lostpassword", "resetpass", "rp", "postpass"}
)
"""Values of the ``action`` query parameter that belong to the login flow."""

API_PATH_MARKERS = ("/wp-json",)

BYPASS_PARAM = "nocache"


def _personal_or_internal(request: RequestContext) -> BypassReason | None:
    if request.authenticated:
        return BypassReason.AUTHENTICATED
    if request.is_admin:
        return BypassReason.ADMIN
    if request.is_not_found:
        return BypassReason.NOT_FOUND
    if request.is_search:
        return BypassReason.SEARCH
    if request.is_preview:
        return BypassReason.PREVIEW
    if request.is_background or request.is_cli or request.is_api or request.is_ajax:
        return BypassReason.INTERNAL
    return None


def is_auth_flow(request: RequestContext) -> bool:
    """Return ``True`` when *request* targets a login/logout/registration endpoint."""
    if request.script_name == LOGIN_SCRIPT:
        return True
    if request.query_params.get("action") in AUTH_FLOW_ACTIONS:
        return True
    path = request.path
    if "wp-login" in path:
        return True
    # Static assets under wp-content may legitimately contain "login".
    return "login" in path and "wp-content" not in path


def is_api_path(path: str) -> bool:
    return any(marker in path for marker in API_PATH_MARKERS)


def decide(request: RequestContext, site: SiteState, config: CacheConfig) -> Decision:
    """Return whether *request* may be cached, or the first reason it may not.

    Args:
        request: The inbound request as described by the host.
        site: Content-layer facts about the current view.
        config: The cache configuration in effect for this request.

    Returns:
        ``Decision(allowed=True)`` or ``Decision(allowed=False, reason=...)``.
    """
    if config.cache_disabled:
        return Decision.bypass(BypassReason.DISABLED)

    reason = _personal_or_internal(request)
    if reason is not None:
        return Decision.bypass(reason)

    if is_auth_flow(request):
        return Decision.bypass(BypassReason.AUTH_FLOW)

    if request.method.upper() != "GET":
        return Decision.bypass(BypassReason.METHOD)

    if is_api_path(request.path):
        return Decision.bypass(BypassReason.API_PATH)

    if BYPASS_PARAM in request.query_params:
        return Decision.bypass(BypassReason.NOCACHE_PARAM)

    if site.transactional_view:
        return Decision.bypass(BypassReason.TRANSACTIONAL)

    if request.is_singular and site.content_id and site.content_id in config.exclude:
        return Decision.bypass(BypassReason.EXCLUDED)

    return Decision.allow()
