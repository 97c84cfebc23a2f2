"""RestGuard method override guard package.

Public API:
  - CachePoisoningGuard           : request/response callbacks (strip, no-cache, Vary)
  - MethodOverrideGuardMiddleware : Starlette middleware running the callbacks
  - install_guard()               : registers the middleware on a host app
  - default_is_authenticated()    : scope["user"] based requester check
  - merge_vary()                  : case-insensitive Vary merge
  - strip_override_headers()      : removes override headers from ASGI raw headers
"""

from __future__ import annotations

from restguard.guard.headers import (
    StrippedHeader,
    client_ip,
    is_api_request,
    merge_vary,
    sanitize_text,
    strip_override_headers,
)
from restguard.guard.middleware import (
    CachePoisoningGuard,
    MethodOverrideGuardMiddleware,
    default_is_authenticated,
    install_guard,
)

__all__ = [
    "CachePoisoningGuard",
    "MethodOverrideGuardMiddleware",
    "StrippedHeader",
    "client_ip",
    "default_is_authenticated",
    "install_guard",
    "is_api_request",
    "merge_vary",
    "sanitize_text",
    "strip_override_headers",
]
