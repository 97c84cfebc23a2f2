"""Shared constants for RestGuard.

Header names, cache directives and the default API namespace live here.
No magic strings in other modules: import from here.
"""

from __future__ import annotations

from dataclasses import dataclass

# ─── Method override headers ──────────────────────────────────────────────────


@dataclass(frozen=True)
class OverrideHeader:
    """A method override header in each of its transport representations.

    name:        Canonical header name, as written in ``Vary``.
    environ_key: CGI / WSGI environ form (``HTTP_`` + upper snake case).
    wire_name:   ASGI form: lowercase bytes, as found in ``scope["headers"]``.
    """

    name: str
    environ_key: str
    wire_name: bytes

    @classmethod
    def from_name(cls, name: str) -> "OverrideHeader":
        return cls(
            name=name,
            environ_key="HTTP_" + name.upper().replace("-", "_"),
            wire_name=name.lower().encode("latin-1"),
        )


# Headers that let a client simulate an HTTP verb other than the one sent.
# Order matters: it is the order appended to Vary.
OVERRIDE_HEADERS: tuple[OverrideHeader, ...] = (
    OverrideHeader.from_name("X-HTTP-Method-Override"),
    OverrideHeader.from_name("X-HTTP-Method"),
    OverrideHeader.from_name("X-Method-Override"),
)

OVERRIDE_WIRE_NAMES: frozenset[bytes] = frozenset(h.wire_name for h in OVERRIDE_HEADERS)

VARY_HEADERS: tuple[str, ...] = tuple(h.name for h in OVERRIDE_HEADERS)

# ─── API namespace ────────────────────────────────────────────────────────────

# Used when api.prefix is empty or blank.
DEFAULT_API_PREFIX: str = "wp-json"

# Scope key a host may set to mark a request as an API request regardless of path.
API_REQUEST_SCOPE_KEY: str = "restguard.api_request"

# ─── Response cache directives ────────────────────────────────────────────────

# Applied to unauthenticated API responses: forbids edge/CDN caching.
UNAUTHENTICATED_CACHE_CONTROL: str = "no-cache, must-revalidate, max-age=0"
PRAGMA_NO_CACHE: str = "no-cache"

# Host-wide no-cache set sent on every API response when send_nocache_headers is on.
NOCACHE_HEADERS: dict[str, str] = {
    "Expires": "Wed, 11 Jan 1984 05:00:00 GMT",
    "Cache-Control": "no-cache, must-revalidate, max-age=0, no-store, private",
}

# ─── Diagnostics ──────────────────────────────────────────────────────────────

LOG_TAG: str = "[RestGuard]"

# Header values are attacker-controlled; cap what reaches the log.
MAX_LOGGED_VALUE_CHARS: int = 256

# Client IP sources, most specific first. The ASGI client host is the last resort.
CLIENT_IP_HEADERS: tuple[str, ...] = (
    "cf-connecting-ip",  # Cloudflare
    "x-forwarded-for",   # Proxy / load balancer
    "x-real-ip",         # Nginx proxy
)

UNKNOWN: str = "unknown"
