"""
URL Normalization

Every dedup comparison goes through :func:`normalize_url` so that textually
different spellings of the same page collapse to one key.

Rules
-----
- surrounding whitespace is stripped
- scheme and host are lower-cased (paths stay case-sensitive)
- default ports (80 for http, 443 for https) are dropped
- the fragment is removed
- trailing slashes of the path are removed
- the query string is kept verbatim
"""

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

from ..core.errors import InvalidURLError


DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(url: str) -> str:
    """
    Return the canonical dedup key for ``url``.

    Raises
    ------
    InvalidURLError
        If the URL has no scheme or no host, or carries an invalid port.
    """
    raw = (url or "").strip()
    parts = urlsplit(raw)

    scheme = parts.scheme.lower()
    host = parts.hostname or ""
    if not scheme or not host:
        raise InvalidURLError(f"Not an absolute URL: {url!r}")

    try:
        port = parts.port
    except ValueError as exc:
        raise InvalidURLError(f"Invalid port in URL: {url!r}") from exc

    if ":" in host:
        host = f"[{host}]"

    netloc = host
    if parts.username:
        userinfo = parts.username
        if parts.password:
            userinfo += f":{parts.password}"
        netloc = f"{userinfo}@{host}"

    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        netloc += f":{port}"

    path = parts.path.rstrip("/")

    return urlunsplit((scheme, netloc, path, parts.query, ""))
