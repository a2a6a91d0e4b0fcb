"""Upstream rate limit header parsing.

Providers answer 429 with a mix of `Retry-After` and `X-RateLimit-*` /
`RateLimit-*` headers. We normalize them so a source rate-limit error can tell
the caller how long to back off.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

_LIMIT_KEYS = ["x-ratelimit-limit", "x-rate-limit-limit", "ratelimit-limit"]
_REMAINING_KEYS = ["x-ratelimit-remaining", "x-rate-limit-remaining", "ratelimit-remaining"]
_RESET_KEYS = ["x-ratelimit-reset", "x-rate-limit-reset", "ratelimit-reset"]


@dataclass(frozen=True)
class RateLimitInfo:
    provider: str = ""
    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset_at: Optional[datetime] = None  # UTC
    retry_after_seconds: Optional[float] = None
    raw: dict[str, str] = field(default_factory=dict)

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_at": self.reset_at.isoformat() if self.reset_at else None,
            "retry_after_seconds": self.retry_after_seconds,
            "raw": dict(self.raw),
        }


def _as_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _lower_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {str(k).lower(): str(v) for k, v in headers.items() if k is not None}


def _first(ci: Mapping[str, str], keys: list[str]) -> Optional[str]:
    for k in keys:
        if k in ci:
            return ci[k]
    return None


def _parse_retry_after(value: Optional[str], now: datetime) -> Optional[datetime]:
    if value is None:
        return None
    value = value.strip()

    # 1) delta-seconds
    seconds = _as_int(value)
    if seconds is not None:
        return now + timedelta(seconds=max(seconds, 0))

    # 2) HTTP-date
    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_reset(value: Optional[str], now: datetime) -> Optional[datetime]:
    reset = _as_int(value)
    if reset is None:
        return None
    # Heuristic: big numbers are epoch timestamps (ms or s), small ones are deltas.
    if reset >= 1_000_000_000_000:
        return datetime.fromtimestamp(reset / 1000.0, tz=timezone.utc)
    if reset >= 1_000_000_000:
        return datetime.fromtimestamp(reset, tz=timezone.utc)
    return now + timedelta(seconds=max(reset, 0))


def parse_rate_limit_info(
    provider: str,
    headers: Optional[Mapping[str, str]],
    *,
    now: Optional[datetime] = None,
) -> Optional[RateLimitInfo]:
    """Parse rate limit info from HTTP headers.

    Returns None when no rate-limit header is present.
    """
    if not headers:
        return None
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    ci = _lower_headers(headers)
    raw = {
        str(k): str(v)
        for k, v in headers.items()
        if str(k).lower() == "retry-after" or "ratelimit" in str(k).lower() or "rate-limit" in str(k).lower()
    }
    if not raw:
        return None

    retry_at = _parse_retry_after(ci.get("retry-after"), now)
    reset_at = _parse_reset(_first(ci, _RESET_KEYS), now) or retry_at

    retry_after: Optional[float] = None
    if retry_at is not None:
        retry_after = max(0.0, (retry_at - now).total_seconds())
    elif reset_at is not None:
        retry_after = max(0.0, (reset_at - now).total_seconds())

    return RateLimitInfo(
        provider=provider,
        limit=_as_int(_first(ci, _LIMIT_KEYS)),
        remaining=_as_int(_first(ci, _REMAINING_KEYS)),
        reset_at=reset_at,
        retry_after_seconds=retry_after,
        raw=raw,
    )
