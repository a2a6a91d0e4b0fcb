"""Built-in providers wrapping the source modules."""

from __future__ import annotations

import logging
from dataclasses import replace
from functools import partial
from typing import TYPE_CHECKING, Callable

from ..retry import RetryPolicy
from ..sources import mock, safebrowsing, virustotal
from .base import Provider, SyncProvider

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

LIVE_SOURCES: dict[str, Callable[..., dict]] = {
    "virustotal": virustotal.check,
    "safebrowsing": safebrowsing.check,
}

# VirusTotal's free tier allows 4 requests/minute; don't burn quota on retries.
MAX_ATTEMPTS_OVERRIDES = {"virustotal": 2}


def retry_policy_from_settings(settings: "Settings") -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.max_attempts,
        initial_delay_seconds=settings.retry_delay_seconds,
        attempt_timeout_seconds=settings.source_timeout_seconds,
        jitter=0.1,
    )


def builtin_providers(settings: "Settings") -> dict[str, Provider]:
    """One provider per known source: live when its API key is set, mock otherwise."""
    base_policy = retry_policy_from_settings(settings)
    out: dict[str, Provider] = {}
    for name, fn in LIVE_SOURCES.items():
        policy = base_policy
        if name in MAX_ATTEMPTS_OVERRIDES:
            policy = replace(policy, max_attempts=min(policy.max_attempts, MAX_ATTEMPTS_OVERRIDES[name]))

        key = settings.api_key_for(name)
        if key:
            out[name] = SyncProvider(name, partial(fn, api_key=key), retry_policy=policy)
        else:
            out[name] = SyncProvider(name, partial(mock.check, source=name), retry_policy=policy, live=False)
    return out


def log_provider_modes(providers: list[Provider]) -> None:
    live = [p.name for p in providers if p.live]
    for p in providers:
        if not p.live:
            logger.warning("%s API key not configured - using mock data", p.name)
    if live:
        logger.info("Enabled services: %s", ", ".join(live))
