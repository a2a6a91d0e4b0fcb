"""Retry utilities (per-attempt timeout + exponential backoff).

Backoff sleeps go through `asyncio.sleep`, so waiting on one source never
blocks the event loop or the other sources.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import SourceTimeoutError, classify_error

T = TypeVar("T")

logger = logging.getLogger(__name__)


def default_is_retryable(err: BaseException) -> bool:
    return classify_error(err).retryable


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    backoff_factor: float = 2.0
    max_delay_seconds: float = 30.0
    jitter: float = 0.0  # 0.2 means +/-20%
    attempt_timeout_seconds: Optional[float] = 10.0
    is_retryable: Callable[[BaseException], bool] = default_is_retryable


def backoff_delay(attempt_index: int, policy: RetryPolicy) -> float:
    # attempt_index is 0 for the sleep after the first failed attempt
    delay = policy.initial_delay_seconds * (policy.backoff_factor**attempt_index)
    delay = min(delay, policy.max_delay_seconds)
    if policy.jitter:
        delay *= 1.0 + random.uniform(-policy.jitter, policy.jitter)
    return max(0.0, delay)


async def _attempt(fn: Callable[[], Awaitable[T]], timeout: Optional[float]) -> T:
    if timeout is None:
        return await fn()
    try:
        return await asyncio.wait_for(fn(), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise SourceTimeoutError(f"timed out after {timeout}s") from e


async def retry_call(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    name: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await fn() with retries.

    - Each attempt is bounded by policy.attempt_timeout_seconds; a timeout is
      treated as a transient failure.
    - Errors rejected by policy.is_retryable are raised immediately.
    - Raises the last exception if all attempts fail.
    """
    attempts = max(policy.max_attempts, 1)

    for i in range(attempts):
        try:
            return await _attempt(fn, policy.attempt_timeout_seconds)
        except Exception as e:  # noqa: BLE001
            if i == attempts - 1 or not policy.is_retryable(e):
                raise
            delay = backoff_delay(i, policy)
            logger.warning(
                "%s attempt %d/%d failed (%s: %s), retrying in %.2fs",
                name,
                i + 1,
                attempts,
                classify_error(e).value,
                e,
                delay,
            )
            await sleep(delay)

    # unreachable, but keeps mypy happy
    raise RuntimeError("retry_call exhausted without result")
