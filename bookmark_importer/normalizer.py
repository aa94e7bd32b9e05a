"""Clean and validate bookmark URLs and titles before they are stored."""

from __future__ import annotations

import logging
import re
from urllib.parse import quote, urlsplit, urlunsplit

from .config import MAX_TITLE_LENGTH, UNSAFE_URL_PREFIXES

LOGGER = logging.getLogger(__name__)

_HTTP_PREFIX = re.compile(r"^https?://", re.IGNORECASE)
_FORBIDDEN_HOST_CHARS = frozenset(" \t\n\r<>\"{}|\\^`#?/@")

_PATH_SAFE = "/%:@!$&'()*+,;=-._~"
_QUERY_SAFE = _PATH_SAFE + "?"


def validate_url(raw: str) -> str | None:
    """Return the canonical absolute form of ``raw``, or None when it cannot be imported.

    Unsafe schemes are rejected outright. Anything without an ``http(s)://`` prefix
    is treated as a bare address and gets ``https://`` prepended. Never raises.
    """
    if not isinstance(raw, str):
        return None
    candidate = raw.strip()
    lowered = candidate.lower()
    if any(lowered.startswith(prefix) for prefix in UNSAFE_URL_PREFIXES):
        LOGGER.debug("Rejecting URL with unsafe scheme: %.80s", candidate)
        return None
    if not _HTTP_PREFIX.match(candidate):
        candidate = f"https://{candidate}"

    try:
        return _canonicalise(candidate)
    except (ValueError, UnicodeError) as exc:
        LOGGER.debug("Rejecting unparseable URL %.80s: %s", candidate, exc)
        return None


def _canonicalise(url: str) -> str | None:
    parts = urlsplit(url)
    host = parts.hostname
    if not host or any(ch in _FORBIDDEN_HOST_CHARS for ch in host):
        return None

    if ":" in host:
        # IPv6 literal
        netloc_host = f"[{host}]"
    else:
        netloc_host = host.encode("idna").decode("ascii").lower()

    port = parts.port  # raises ValueError for out-of-range or non-numeric ports
    scheme = parts.scheme.lower()
    netloc = netloc_host
    if port is not None and port != _default_port(scheme):
        netloc = f"{netloc}:{port}"
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"

    path = quote(parts.path, safe=_PATH_SAFE) or "/"
    query = quote(parts.query, safe=_QUERY_SAFE)
    fragment = quote(parts.fragment, safe=_QUERY_SAFE)
    return urlunsplit((scheme, netloc, path, query, fragment))


def _default_port(scheme: str) -> int:
    return 443 if scheme == "https" else 80


def clean_title(raw: str) -> str:
    """Trim, collapse whitespace runs and cap the title length."""
    return " ".join(raw.split())[:MAX_TITLE_LENGTH]
