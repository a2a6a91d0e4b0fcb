"""Concurrent fan-out to reputation providers and score aggregation.

Every provider runs as its own task, wrapped in its own retry policy. The
tasks are joined with a wait-all barrier: one source's outage never blocks
or cancels the others. The combined score is the mean over the sources that
answered.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Awaitable, Callable, Union

from .errors import UpstreamRateLimitError, UpstreamUnavailableError, classify_error
from .models import AggregateResult, ReputationQuery, SourceResult, risk_level_for, utc_iso
from .providers.base import Provider
from .retry import retry_call

logger = logging.getLogger(__name__)

Outcome = Union[SourceResult, BaseException]


def combine_scores(results: Sequence[SourceResult]) -> float:
    """Mean score over succeeded results. Raises ValueError when none succeeded."""
    scores = [r.risk_score for r in results if r.succeeded and r.risk_score is not None]
    if not scores:
        raise ValueError("no successful source results")
    return sum(scores) / len(scores)


def build_result(domain: str, results: Sequence[SourceResult]) -> AggregateResult:
    score = combine_scores(results)
    return AggregateResult(
        domain=domain,
        risk_score=score,
        risk_level=risk_level_for(score),
        sources=list(results),
        computed_at=utc_iso(),
    )


async def _run_provider(
    provider: Provider,
    domain: str,
    sleep: Callable[[float], Awaitable[None]],
) -> SourceResult:
    result = await retry_call(
        lambda: provider.check_domain(domain),
        provider.retry_policy,
        name=provider.name,
        sleep=sleep,
    )
    if result.source != provider.name:
        # Keep output ordering/naming under the registry's control.
        result = SourceResult(
            source=provider.name,
            succeeded=result.succeeded,
            risk_score=result.risk_score,
            detail=result.detail,
            error=result.error,
            error_kind=result.error_kind,
        )
    return result


async def aggregate(
    query: ReputationQuery,
    providers: Sequence[Provider],
    *,
    propagate_rate_limit: bool = True,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AggregateResult:
    """Query every provider concurrently and combine what succeeds.

    - propagate_rate_limit: an UpstreamRateLimitError from any source aborts
      the whole aggregation, even if other sources answered. When False, rate
      limits degrade like any other failure.
    - Any other failure becomes a succeeded=False placeholder.
    - Raises UpstreamUnavailableError when no source succeeded.
    """
    domain = query.domain
    if not providers:
        raise UpstreamUnavailableError(domain)

    tasks = [asyncio.ensure_future(_run_provider(p, domain, sleep)) for p in providers]

    # Shielded so a cancelled caller does not cancel in-flight source calls;
    # their results are simply dropped.
    outcomes: list[Outcome] = await asyncio.shield(asyncio.gather(*tasks, return_exceptions=True))

    results: list[SourceResult] = []
    failures: dict[str, str] = {}
    rate_limited: UpstreamRateLimitError | None = None

    for provider, outcome in zip(providers, outcomes):
        if isinstance(outcome, SourceResult):
            results.append(outcome)
            continue

        # CancelledError, KeyboardInterrupt and friends are not source failures.
        if not isinstance(outcome, Exception):
            raise outcome

        kind = classify_error(outcome)
        if isinstance(outcome, UpstreamRateLimitError) and propagate_rate_limit and rate_limited is None:
            rate_limited = outcome
            if not outcome.source:
                outcome.source = provider.name

        logger.warning("Source %s failed for %s (%s): %s", provider.name, domain, kind.value, outcome)
        failures[provider.name] = str(outcome)
        results.append(SourceResult.failed(provider.name, str(outcome), kind.value))

    if rate_limited is not None:
        raise rate_limited

    if not any(r.succeeded for r in results):
        raise UpstreamUnavailableError(domain, failures)

    agg = build_result(domain, results)
    logger.debug(
        "Aggregated %s: score=%.1f level=%s (%d/%d sources)",
        domain,
        agg.risk_score,
        agg.risk_level,
        len(agg.succeeded_sources),
        len(results),
    )
    return agg
