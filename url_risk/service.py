"""Public entrypoint: rate-limit, validate, cache lookup, aggregate, cache write.

    RATE_CHECK -> VALIDATE -> CACHE_LOOKUP -> HIT: done
                                          -> MISS: AGGREGATE -> CACHE_WRITE -> done
                                                   AGGREGATE_FAILED -> error

Ingress-limit and validation rejections happen before any cache or upstream
work. Cache errors never fail a request, and an unusable cache location only
disables caching. SQLite calls run in a worker thread so a locked database
never stalls the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from collections.abc import Sequence
from typing import Awaitable, Callable, Optional

from .aggregator import aggregate
from .cache import Cache
from .config import Settings
from .errors import CacheError
from .limiter import FixedWindowLimiter
from .models import CheckResult, RateLimitDecision
from .normalize import MAX_URL_LENGTH, to_query
from .providers import Provider, Registry
from .providers.builtins import log_provider_modes

logger = logging.getLogger(__name__)


def open_cache(settings: Settings) -> Optional[Cache]:
    """The configured cache, or None (caching off) when it cannot be opened."""
    try:
        return Cache(settings.cache_path, ttl_seconds=settings.cache_ttl_seconds)
    except (OSError, sqlite3.Error) as e:
        logger.warning("Cache unavailable at %s, running without cache: %s", settings.cache_path, e)
        return None


class ReputationService:
    def __init__(
        self,
        providers: Sequence[Provider],
        cache: Optional[Cache],
        limiter: Optional[FixedWindowLimiter] = None,
        *,
        propagate_rate_limit: bool = True,
        max_url_length: int = MAX_URL_LENGTH,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.providers = list(providers)
        self.cache = cache
        self.limiter = limiter
        self.propagate_rate_limit = propagate_rate_limit
        self.max_url_length = max_url_length
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, *, registry: Optional[Registry] = None) -> "ReputationService":
        if registry is None:
            registry = Registry.from_settings(settings)
        providers = registry.select(settings.sources)
        log_provider_modes(providers)

        return cls(
            providers,
            open_cache(settings),
            FixedWindowLimiter(settings.rate_limit, settings.rate_window_seconds),
            propagate_rate_limit=settings.propagate_rate_limit,
            max_url_length=settings.max_url_length,
        )

    def rate_check(self, client_key: str) -> Optional[RateLimitDecision]:
        if self.limiter is None:
            return None
        return self.limiter.check(client_key)

    async def check(self, url: str, client_key: str = "anonymous", *, use_cache: bool = True) -> CheckResult:
        """Check one URL.

        Raises ValidationError, IngressRateLimitError, UpstreamRateLimitError
        or UpstreamUnavailableError.
        """
        start = time.perf_counter()
        decision = self.rate_check(client_key)
        query = to_query(url, max_length=self.max_url_length)

        if use_cache and self.cache is not None:
            try:
                entry = await asyncio.to_thread(self.cache.get, query.domain)
            except CacheError as e:
                logger.warning("Cache retrieval error, treating as miss: %s", e)
                entry = None
            if entry is not None:
                latency = (time.perf_counter() - start) * 1000
                logger.info("[check] %s - cache hit (%.0fms)", query.domain, latency)
                return CheckResult(result=entry.to_result(), cached=True, latency_ms=latency, rate_limit=decision)

        result = await aggregate(
            query,
            self.providers,
            propagate_rate_limit=self.propagate_rate_limit,
            sleep=self._sleep,
        )

        if use_cache and self.cache is not None:
            await asyncio.to_thread(self.cache.put, query.domain, result)

        latency = (time.perf_counter() - start) * 1000
        logger.info("[check] %s - cache miss (%.0fms)", query.domain, latency)
        return CheckResult(result=result, cached=False, latency_ms=latency, rate_limit=decision)

    def sweep(self) -> dict[str, int]:
        out = {"cache": 0, "rate_limit": 0}
        if self.cache is not None:
            out["cache"] = self.cache.sweep_expired()
        if self.limiter is not None:
            out["rate_limit"] = self.limiter.sweep()
        return out

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Sweep expired cache rows and stale limiter windows forever."""
        while True:
            await asyncio.sleep(interval_seconds)
            await asyncio.to_thread(self.sweep)
