"""HTTP header processing for RestGuard.

Pure helpers used by the guard middleware:

  - is_api_request():          decides whether a request targets the API namespace.
  - strip_override_headers():  removes method override headers from ASGI raw headers.
  - merge_vary():              appends the override header names to a Vary value,
                               deduplicating case-insensitively.
  - client_ip():               best-effort client address for diagnostics.
  - sanitize_text():           makes attacker-controlled text safe to log.

Header constants are imported from restguard.constants: no duplication here.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Union

from restguard.constants import (
    CLIENT_IP_HEADERS,
    DEFAULT_API_PREFIX,
    MAX_LOGGED_VALUE_CHARS,
    OVERRIDE_HEADERS,
    OVERRIDE_WIRE_NAMES,
    UNKNOWN,
    VARY_HEADERS,
    OverrideHeader,
)

RawHeaders = list[tuple[bytes, bytes]]

_BY_WIRE_NAME: dict[bytes, OverrideHeader] = {h.wire_name: h for h in OVERRIDE_HEADERS}

_TAG_RE = re.compile(r"<[^>]*>")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class StrippedHeader:
    """One override header removed from a request."""

    name: str
    environ_key: str
    value: str


# ─── Request side ─────────────────────────────────────────────────────────────


def request_uri(path: str, query_string: Union[bytes, str, None] = None) -> str:
    """Rebuild the request URI (path plus ``?query`` when present)."""
    if isinstance(query_string, bytes):
        query_string = query_string.decode("latin-1")
    if query_string:
        return f"{path}?{query_string}"
    return path


def is_api_request(
    path: str,
    query_string: Union[bytes, str, None] = None,
    prefix: Optional[str] = DEFAULT_API_PREFIX,
    flagged: bool = False,
) -> bool:
    """Return True when the request targets the API namespace.

    A host may mark a request explicitly (``flagged``); otherwise the request URI
    is matched against ``/<prefix>`` anywhere in it, so ``/blog/wp-json/...`` for a
    site installed in a subdirectory counts too.

    Args:
        path:         ASGI ``scope["path"]``.
        query_string: ASGI ``scope["query_string"]``.
        prefix:       API prefix; blank values fall back to DEFAULT_API_PREFIX.
        flagged:      Host marker that this is an API request.
    """
    if flagged:
        return True

    prefix = (prefix or "").strip().strip("/") or DEFAULT_API_PREFIX
    return f"/{prefix}" in request_uri(path, query_string)


def strip_override_headers(raw_headers: Iterable[tuple[bytes, bytes]]) -> tuple[RawHeaders, list[StrippedHeader]]:
    """Split ASGI raw headers into (kept, stripped).

    Matching is case-insensitive; every occurrence of every override header is
    removed and the remaining headers keep their order.

    Returns:
        ``(kept, stripped)``: the header list to hand to the host, and a record
        of each removed header in the order it appeared.
    """
    kept: RawHeaders = []
    stripped: list[StrippedHeader] = []

    for name, value in raw_headers:
        lower_name = name.lower()
        if lower_name in OVERRIDE_WIRE_NAMES:
            header = _BY_WIRE_NAME[lower_name]
            stripped.append(
                StrippedHeader(
                    name=header.name,
                    environ_key=header.environ_key,
                    value=value.decode("latin-1"),
                )
            )
            continue
        kept.append((name, value))

    return kept, stripped


# ─── Response side ────────────────────────────────────────────────────────────


def merge_vary(
    existing: Union[str, Iterable[str], None],
    additions: Iterable[str] = VARY_HEADERS,
) -> str:
    """Merge ``additions`` into an existing Vary value.

    ``existing`` may be a single header value or several header lines. Each value
    is split on commas and trimmed; empty tokens are dropped. Duplicates are
    removed case-insensitively and the first spelling wins, existing values first.

    >>> merge_vary("Accept")
    'Accept, X-HTTP-Method-Override, X-HTTP-Method, X-Method-Override'
    """
    if existing is None:
        lines: list[str] = []
    elif isinstance(existing, str):
        lines = [existing]
    else:
        lines = list(existing)

    merged: list[str] = []
    seen: set[str] = set()
    for line in [*lines, *additions]:
        for token in line.split(","):
            token = token.strip()
            if not token or token.lower() in seen:
                continue
            seen.add(token.lower())
            merged.append(token)

    return ", ".join(merged)


# ─── Diagnostics ──────────────────────────────────────────────────────────────


def sanitize_text(value: str) -> str:
    """Make an attacker-controlled string safe to write to a log line.

    Strips tags, drops control characters (CR/LF included, so no log injection),
    collapses whitespace and caps the length at MAX_LOGGED_VALUE_CHARS.
    """
    value = _TAG_RE.sub("", value)
    value = _CONTROL_RE.sub(" ", value)
    value = _WHITESPACE_RE.sub(" ", value).strip()
    return value[:MAX_LOGGED_VALUE_CHARS]


def client_ip(headers: Mapping[str, str], client_host: Optional[str] = None) -> str:
    """Return the first valid client IP from the known sources, or ``"unknown"``.

    Sources, in order: CF-Connecting-IP, X-Forwarded-For (first entry), X-Real-IP,
    then the ASGI client host. Values that do not parse as IPv4/IPv6 are skipped.

    Args:
        headers:     Case-insensitive request headers (Starlette ``Headers``) or
                     any mapping with lowercase keys.
        client_host: ``request.client.host`` if known.
    """
    candidates = [headers.get(name) for name in CLIENT_IP_HEADERS]
    candidates.append(client_host)

    for candidate in candidates:
        if not candidate:
            continue
        ip = sanitize_text(candidate).split(",")[0].strip()
        try:
            ipaddress.ip_address(ip)
        except ValueError:
            continue
        return ip

    return UNKNOWN
