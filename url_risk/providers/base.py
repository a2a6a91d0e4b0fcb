"""Provider interface.

A Provider is a thin adapter over an external reputation source. Given a
domain it returns a SourceResult or raises a SourceError subclass carrying an
explicit ErrorKind. Providers must be safe to run concurrently.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from ..errors import FatalSourceError
from ..models import SourceResult
from ..retry import RetryPolicy


class Provider:
    """Base interface for providers."""

    # Stable provider name used in configuration and output.
    name: str

    # Retry policy: providers can override.
    retry_policy: RetryPolicy = RetryPolicy()

    # False for deterministic development stand-ins.
    live: bool = True

    def is_available(self) -> bool:
        """Whether this provider can run in the current environment."""
        return True

    async def check_domain(self, domain: str) -> SourceResult:
        raise NotImplementedError


class SyncProvider(Provider):
    """Adapts a blocking `fn(domain, timeout) -> dict` source function.

    The payload must carry a numeric `risk_score`; everything else is passed
    through as the opaque detail.
    """

    def __init__(
        self,
        name: str,
        fn: Callable[[str, float], dict[str, Any]],
        *,
        retry_policy: RetryPolicy | None = None,
        live: bool = True,
    ):
        self.name = name
        self._fn = fn
        self.live = live
        if retry_policy is not None:
            self.retry_policy = retry_policy

    @property
    def timeout(self) -> float:
        return self.retry_policy.attempt_timeout_seconds or 30.0

    async def check_domain(self, domain: str) -> SourceResult:
        payload = await asyncio.to_thread(self._fn, domain, self.timeout)
        score = payload.get("risk_score")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise FatalSourceError(f"{self.name} returned no risk_score", source=self.name)
        detail = {k: v for k, v in payload.items() if k != "risk_score"}
        return SourceResult.ok(self.name, float(score), detail)
