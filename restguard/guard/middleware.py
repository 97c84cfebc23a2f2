"""Method override guard for API requests.

Mitigates a cache-poisoning attack on the host's API: a client sends
``GET /wp-json/...`` with ``X-HTTP-Method-Override: HEAD``, the host's router
serves it as HEAD (empty body), and an edge cache stores the empty body under
the GET key, breaking the API for every unauthenticated visitor.

CachePoisoningGuard holds the three callbacks:

  - strip_method_override_headers(): request phase. Removes the override
    headers from ``scope["headers"]`` before the host's router sees them.
  - add_api_headers():               response phase. Host-wide no-cache set on
    every API response (response-set values win).
  - filter_response_headers():       response phase. Merges the override header
    names into Vary; forbids edge caching for unauthenticated requesters.

MethodOverrideGuardMiddleware runs them around the host app. Register it with
install_guard() AFTER any middleware that honours method overrides, so that it
is outermost and strips the headers first (Starlette: last added runs first).
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Scope

from restguard.config import Config, load_config
from restguard.constants import (
    API_REQUEST_SCOPE_KEY,
    LOG_TAG,
    NOCACHE_HEADERS,
    PRAGMA_NO_CACHE,
    UNAUTHENTICATED_CACHE_CONTROL,
    UNKNOWN,
)
from restguard.guard.headers import (
    StrippedHeader,
    client_ip,
    is_api_request,
    merge_vary,
    request_uri,
    sanitize_text,
    strip_override_headers,
)
from restguard.utils.logger import get_logger

logger = get_logger(__name__)

AuthCheck = Callable[[Request], bool]


def default_is_authenticated(request: Request) -> bool:
    """True only if an authentication layer put an authenticated user in scope.

    Follows Starlette's AuthenticationMiddleware convention (``scope["user"]``).
    No user in scope means unauthenticated.
    """
    user = request.scope.get("user")
    return bool(getattr(user, "is_authenticated", False))


class CachePoisoningGuard:
    """Stateless guard; one instance serves every request."""

    def __init__(
        self,
        config: Optional[Config] = None,
        is_authenticated: Optional[AuthCheck] = None,
    ) -> None:
        self.config = config or Config.defaults()
        self.is_authenticated = is_authenticated or default_is_authenticated

    def is_api_request(self, scope: Scope) -> bool:
        return is_api_request(
            scope.get("path", ""),
            scope.get("query_string", b""),
            prefix=self.config.api.effective_prefix,
            flagged=bool(scope.get(API_REQUEST_SCOPE_KEY)),
        )

    # ── Request phase ─────────────────────────────────────────────────────────

    def strip_method_override_headers(self, scope: Scope) -> list[StrippedHeader]:
        """Remove override headers from an API request's scope in place.

        Returns:
            The headers that were removed (empty for non-API requests).
        """
        if scope.get("type") != "http" or not self.is_api_request(scope):
            return []

        kept, stripped = strip_override_headers(scope.get("headers") or [])
        if not stripped:
            return []

        for header in stripped:
            self.log_override_attempt(header, scope)

        scope["headers"] = kept
        return stripped

    def log_override_attempt(self, header: StrippedHeader, scope: Scope) -> None:
        """Log a blocked attempt; no-op unless debug is on."""
        if not self.config.debug:
            return

        client = scope.get("client")
        ip = client_ip(Headers(scope=scope), client[0] if client else None)
        path = scope.get("path")
        uri = sanitize_text(request_uri(path, scope.get("query_string"))) if path else UNKNOWN
        value = sanitize_text(header.value)

        logger.warning(
            f"{LOG_TAG} Blocked method override attempt - "
            f"Header: {header.environ_key}, Value: {value}, IP: {ip}, URI: {uri}",
            header=header.name,
            value=value,
            client_ip=ip,
            uri=uri,
        )

    # ── Response phase ────────────────────────────────────────────────────────

    def add_api_headers(self, response: Any) -> Any:
        """Apply the host no-cache set to an API response.

        Values the endpoint set itself are kept; the unauthenticated override in
        filter_response_headers() still wins for anonymous requesters.
        """
        if not isinstance(response, Response) or not self.config.api.send_nocache_headers:
            return response

        for name, value in NOCACHE_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    def filter_response_headers(self, response: Any, request: Request) -> Any:
        """Merge override names into Vary; forbid edge caching for anonymous users.

        Anything that is not a Starlette Response is returned unchanged.
        """
        if not isinstance(response, Response):
            return response

        response.headers["Vary"] = merge_vary(response.headers.getlist("vary"))

        if not self.is_authenticated(request):
            response.headers["Cache-Control"] = UNAUTHENTICATED_CACHE_CONTROL
            response.headers["Pragma"] = PRAGMA_NO_CACHE

        return response


class MethodOverrideGuardMiddleware(BaseHTTPMiddleware):
    """Starlette middleware wiring CachePoisoningGuard into the request cycle.

    Non-API requests pass through untouched, override headers included.
    """

    def __init__(self, app: ASGIApp, guard: Optional[CachePoisoningGuard] = None) -> None:
        super().__init__(app)
        self.guard = guard or CachePoisoningGuard()

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        if not self.guard.is_api_request(request.scope):
            return await call_next(request)

        # BaseHTTPMiddleware hands this same scope dict to the inner app.
        self.guard.strip_method_override_headers(request.scope)

        response = await call_next(request)
        response = self.guard.add_api_headers(response)
        return self.guard.filter_response_headers(response, request)


def install_guard(
    app: Any,
    config: Optional[Config] = None,
    is_authenticated: Optional[AuthCheck] = None,
) -> CachePoisoningGuard:
    """Register the guard on a Starlette/FastAPI app.

    Call after adding any middleware that honours method overrides so the guard
    is outermost. The guard is also exposed as ``app.state.restguard``.

    Args:
        app:              Starlette or FastAPI application (not yet started).
        config:           Guard configuration; load_config() when omitted.
        is_authenticated: Requester check; default_is_authenticated when omitted.
    """
    guard = CachePoisoningGuard(config or load_config(), is_authenticated)
    app.add_middleware(MethodOverrideGuardMiddleware, guard=guard)
    app.state.restguard = guard

    logger.info(
        "Method override guard installed",
        api_prefix=guard.config.api.effective_prefix,
        send_nocache_headers=guard.config.api.send_nocache_headers,
        debug=guard.config.debug,
    )
    return guard
