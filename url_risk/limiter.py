"""Ingress rate limiter (fixed window, per client key).

The window map is owned by one FixedWindowLimiter instance that is built at
startup and handed to the service; nothing here is module-global.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from .errors import IngressRateLimitError
from .models import RateLimitDecision, RateLimitWindow

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 60
DEFAULT_WINDOW_SECONDS = 60.0


class FixedWindowLimiter:
    def __init__(
        self,
        limit: int = DEFAULT_LIMIT,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, RateLimitWindow] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._windows)

    def allow(self, client_key: str) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            window = self._windows.get(client_key)
            if window is None or now > window.reset_at:
                window = RateLimitWindow(client_key=client_key, count=0, reset_at=now + self.window_seconds)
                self._windows[client_key] = window
            window.count += 1
            count, reset_at = window.count, window.reset_at

        return RateLimitDecision(
            allowed=count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_at=reset_at,
            retry_after_seconds=max(0.0, reset_at - now),
        )

    def check(self, client_key: str) -> RateLimitDecision:
        """Like allow(), but raise IngressRateLimitError on rejection."""
        decision = self.allow(client_key)
        if not decision.allowed:
            logger.warning(
                "Client %s exceeded limit (%d/window), reset in %.0fs",
                client_key,
                self.limit,
                decision.retry_after_seconds,
            )
            raise IngressRateLimitError(
                client_key,
                limit=decision.limit,
                retry_after_seconds=decision.retry_after_seconds,
                reset_at=decision.reset_at,
            )
        return decision

    def sweep(self) -> int:
        """Drop windows that ended more than one window ago."""
        now = self._clock()
        with self._lock:
            stale = [k for k, w in self._windows.items() if now > w.reset_at + self.window_seconds]
            for k in stale:
                del self._windows[k]
        if stale:
            logger.debug("Swept %d stale rate-limit windows", len(stale))
        return len(stale)
