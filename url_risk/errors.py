"""Error taxonomy for url-risk.

Two families live here:

- Request-level errors surfaced to callers of the public entrypoint
  (validation, ingress rate limit, upstream outage).
- Source-level errors raised by provider adapters. Every source error carries
  an explicit `ErrorKind`, so retry decisions never depend on message text or
  on open-ended isinstance checks.
"""

from __future__ import annotations

import asyncio
import enum
from typing import Optional


class ErrorKind(str, enum.Enum):
    RATE_LIMIT = "rate_limit"
    TRANSIENT = "transient"
    TIMEOUT = "timeout"
    AUTH = "auth"
    FATAL = "fatal"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.TRANSIENT, ErrorKind.TIMEOUT)


class UrlRiskError(Exception):
    """Base class for all url-risk errors."""


class ValidationError(UrlRiskError):
    """Input is not a well-formed absolute http(s) URL."""


class CacheError(UrlRiskError):
    """Cache backend failure. Always recovered locally."""


class IngressRateLimitError(UrlRiskError):
    """This service's own limiter rejected the caller."""

    def __init__(self, client_key: str, limit: int, retry_after_seconds: float, reset_at: float):
        super().__init__(f"Rate limit exceeded for {client_key}: retry in {retry_after_seconds:.0f}s")
        self.client_key = client_key
        self.limit = limit
        self.remaining = 0
        self.retry_after_seconds = retry_after_seconds
        self.reset_at = reset_at


class UpstreamUnavailableError(UrlRiskError):
    """Every reputation source failed."""

    def __init__(self, domain: str, failures: Optional[dict[str, str]] = None):
        self.domain = domain
        self.failures = dict(failures or {})
        detail = ", ".join(f"{k}: {v}" for k, v in self.failures.items()) or "no sources configured"
        super().__init__(f"All reputation sources failed for {domain} ({detail})")


class SourceError(UrlRiskError):
    """A single provider call failed."""

    kind: ErrorKind = ErrorKind.FATAL

    def __init__(self, message: str = "", *, source: str = "", kind: Optional[ErrorKind] = None):
        super().__init__(message or self.kind.value)
        self.source = source
        if kind is not None:
            self.kind = kind


class UpstreamRateLimitError(SourceError):
    kind = ErrorKind.RATE_LIMIT

    def __init__(
        self,
        message: str = "API rate limit exceeded",
        *,
        source: str = "",
        retry_after_seconds: Optional[float] = None,
    ):
        super().__init__(message, source=source)
        self.retry_after_seconds = retry_after_seconds


class TransientNetworkError(SourceError):
    kind = ErrorKind.TRANSIENT


class SourceTimeoutError(SourceError):
    kind = ErrorKind.TIMEOUT


class SourceAuthError(SourceError):
    kind = ErrorKind.AUTH


class FatalSourceError(SourceError):
    kind = ErrorKind.FATAL


def classify_error(err: BaseException) -> ErrorKind:
    """Map any exception raised by a provider call onto an ErrorKind."""
    if isinstance(err, SourceError):
        return err.kind
    if isinstance(err, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(err, (ConnectionError, OSError)):
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL
