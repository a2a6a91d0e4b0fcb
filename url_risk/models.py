"""Models for url-risk.

The core stays lightweight (no pydantic dependency); pydantic is only used at
the HTTP boundary in `url_risk.api`. These dataclasses define the output
contract.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional

RiskLevel = Literal["safe", "low", "medium", "high", "dangerous"]

# (lower bound inclusive, level); the upper bound is the next entry's lower bound.
RISK_BANDS: tuple[tuple[float, RiskLevel], ...] = (
    (80.0, "dangerous"),
    (60.0, "high"),
    (40.0, "medium"),
    (20.0, "low"),
    (0.0, "safe"),
)


def risk_level_for(score: float) -> RiskLevel:
    for lower, level in RISK_BANDS:
        if score >= lower:
            return level
    return "safe"


def clamp_score(score: float) -> float:
    return max(0.0, min(100.0, float(score)))


def utc_iso(ts: Optional[float] = None) -> str:
    if ts is None:
        return datetime.now(timezone.utc).isoformat()
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class ReputationQuery:
    """Normalized input: the submitted URL and its cache key."""

    input: str
    domain: str


@dataclass(frozen=True)
class SourceResult:
    source: str
    succeeded: bool
    risk_score: Optional[float] = None

    # Provider payload, passed through untouched.
    detail: dict[str, Any] = field(default_factory=dict)

    error: Optional[str] = None
    error_kind: Optional[str] = None

    @classmethod
    def ok(cls, source: str, risk_score: float, detail: Optional[dict[str, Any]] = None) -> "SourceResult":
        return cls(source=source, succeeded=True, risk_score=clamp_score(risk_score), detail=dict(detail or {}))

    @classmethod
    def failed(cls, source: str, error: str, error_kind: Optional[str] = None) -> "SourceResult":
        return cls(source=source, succeeded=False, error=error, error_kind=error_kind)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceResult":
        score = data.get("risk_score")
        return cls(
            source=str(data.get("source", "")),
            succeeded=bool(data.get("succeeded")),
            risk_score=float(score) if score is not None else None,
            detail=dict(data.get("detail") or {}),
            error=data.get("error"),
            error_kind=data.get("error_kind"),
        )


@dataclass(frozen=True)
class AggregateResult:
    domain: str
    risk_score: float
    risk_level: RiskLevel
    sources: list[SourceResult]
    computed_at: str  # ISO-8601 UTC

    @property
    def succeeded_sources(self) -> list[SourceResult]:
        return [s for s in self.sources if s.succeeded]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CacheEntry:
    domain: str
    sources: list[SourceResult]
    risk_score: float
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def to_result(self) -> AggregateResult:
        return AggregateResult(
            domain=self.domain,
            risk_score=self.risk_score,
            risk_level=risk_level_for(self.risk_score),
            sources=list(self.sources),
            computed_at=utc_iso(self.created_at),
        )


@dataclass
class RateLimitWindow:
    client_key: str
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: float


@dataclass(frozen=True)
class CheckResult:
    result: AggregateResult
    cached: bool
    latency_ms: float
    rate_limit: Optional[RateLimitDecision] = None

    def to_dict(self) -> dict[str, Any]:
        out = self.result.to_dict()
        out["cached"] = self.cached
        out["latency_ms"] = self.latency_ms
        return out
