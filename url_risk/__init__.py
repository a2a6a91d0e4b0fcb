"""URL Risk - aggregated URL reputation with caching and rate limiting."""

__version__ = "1.0.0"

from .aggregator import aggregate  # noqa: E402
from .cache import Cache  # noqa: E402
from .errors import (  # noqa: E402
    IngressRateLimitError,
    UpstreamRateLimitError,
    UpstreamUnavailableError,
    ValidationError,
)
from .limiter import FixedWindowLimiter  # noqa: E402
from .service import ReputationService  # noqa: E402

__all__ = [
    "aggregate",
    "Cache",
    "FixedWindowLimiter",
    "ReputationService",
    "IngressRateLimitError",
    "UpstreamRateLimitError",
    "UpstreamUnavailableError",
    "ValidationError",
]
