"""URL validation and domain extraction.

The domain is the cache key, so it must be derived the same way from every
spelling of a URL: lowercase, IDNA punycode, no trailing dot, no port or
userinfo.
"""

from __future__ import annotations

import ipaddress
from urllib.parse import urlparse

from .errors import ValidationError
from .models import ReputationQuery

MAX_URL_LENGTH = 2048
ALLOWED_SCHEMES = ("http", "https")


def _to_punycode(host: str) -> str:
    """Convert unicode hostname to punycode (idna)."""
    try:
        return host.encode("idna").decode("ascii")
    except UnicodeError as e:
        raise ValidationError(f"Invalid hostname: {host}") from e


def normalize_host(host: str) -> str:
    host = host.strip().rstrip(".").lower()
    if not host:
        raise ValidationError("Invalid URL format (missing host)")

    try:
        return ipaddress.ip_address(host).compressed
    except ValueError:
        pass

    return _to_punycode(host)


def extract_domain(url: str, *, max_length: int = MAX_URL_LENGTH) -> str:
    """Return the normalized hostname of an absolute http(s) URL.

    Raises ValidationError for anything else.
    """
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("Missing required field: url")

    raw = url.strip()
    if len(raw) > max_length:
        raise ValidationError(f"URL too long (max {max_length} characters)")
    if any(c.isspace() for c in raw):
        raise ValidationError("Invalid URL format")

    try:
        parsed = urlparse(raw)
    except ValueError as e:
        raise ValidationError("Invalid URL format") from e
    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise ValidationError("Invalid URL scheme (must be http or https)")
    if not parsed.netloc:
        raise ValidationError("Invalid URL format (missing host)")

    try:
        # Accessing .port validates it.
        parsed.port
    except ValueError as e:
        raise ValidationError(f"Invalid URL port: {e}") from e

    return normalize_host(parsed.hostname or "")


def to_query(url: str, *, max_length: int = MAX_URL_LENGTH) -> ReputationQuery:
    return ReputationQuery(input=url, domain=extract_domain(url, max_length=max_length))
