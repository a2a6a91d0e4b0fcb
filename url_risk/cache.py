"""SQLite cache for url-risk.

Goal: reduce latency and provider quota usage by caching aggregated results.

- one row per domain: JSON per-source payloads + combined score + timestamps
- TTL is fixed at write time (expires_at) and checked at read time
- writes replace the previous row (delete + insert in one transaction)
- write failures are logged and swallowed; the cache is an optimization
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Optional

from .errors import CacheError
from .models import AggregateResult, CacheEntry, SourceResult

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
MEMORY = ":memory:"

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS reputation_cache (
        domain TEXT PRIMARY KEY,
        sources TEXT NOT NULL,
        risk_score REAL NOT NULL,
        created_at REAL NOT NULL,
        expires_at REAL NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_reputation_cache_expires_at ON reputation_cache(expires_at)",
)


def default_cache_path() -> str:
    base = os.getenv("XDG_CACHE_HOME") or os.path.expanduser("~/.cache")
    return os.path.join(base, "url-risk", "cache.sqlite")


def _ensure_parent_dir(path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def parse_ttl(ttl: str) -> int:
    """Parse TTL strings like: 3600, 10m, 24h, 7d."""
    s = str(ttl).strip().lower()
    if s.isdigit():
        return int(s)

    units = {"s": 1, "m": 60, "h": 3600, "d": 86400}
    unit = s[-1:]
    if unit not in units or not s[:-1].isdigit():
        raise ValueError(f"Invalid TTL: {ttl}")
    return int(s[:-1]) * units[unit]


@dataclass
class Cache:
    path: str
    ttl_seconds: int = DEFAULT_TTL_SECONDS
    clock: Callable[[], float] = time.time
    _memory: Optional[sqlite3.Connection] = field(default=None, init=False, repr=False)
    _memory_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.path == MEMORY:
            # One shared connection, otherwise every connect() sees an empty database.
            self._memory = sqlite3.connect(MEMORY, check_same_thread=False)
        else:
            _ensure_parent_dir(self.path)
        self.migrate()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        if self._memory is not None:
            # Shared across worker threads; one statement batch at a time.
            with self._memory_lock:
                yield self._memory
            return
        con = sqlite3.connect(self.path, timeout=5.0)
        try:
            yield con
        finally:
            con.close()

    def migrate(self) -> None:
        with self._connect() as con:
            with con:
                for stmt in SCHEMA:
                    con.execute(stmt)

    def get(self, domain: str) -> Optional[CacheEntry]:
        """Return the live entry for domain, or None if absent or expired.

        Raises CacheError if the backend cannot be read.
        """
        now = self.clock()
        try:
            with self._connect() as con:
                row = con.execute(
                    "SELECT sources, risk_score, created_at, expires_at FROM reputation_cache WHERE domain = ?",
                    (domain,),
                ).fetchone()
        except sqlite3.Error as e:
            raise CacheError(f"Cache read failed for {domain}: {e}") from e

        if not row:
            return None
        sources_json, risk_score, created_at, expires_at = row
        if now > float(expires_at):
            return None

        try:
            sources = [SourceResult.from_dict(s) for s in json.loads(sources_json)]
        except (TypeError, ValueError, AttributeError) as e:
            raise CacheError(f"Corrupt cache row for {domain}: {e}") from e

        return CacheEntry(
            domain=domain,
            sources=sources,
            risk_score=float(risk_score),
            created_at=float(created_at),
            expires_at=float(expires_at),
        )

    def put(self, domain: str, result: AggregateResult) -> bool:
        """Replace any entry for domain. Returns False (and logs) on failure."""
        now = self.clock()
        try:
            payload = json.dumps([s.to_dict() for s in result.sources], ensure_ascii=False)
            with self._connect() as con:
                with con:
                    con.execute("DELETE FROM reputation_cache WHERE domain = ?", (domain,))
                    con.execute(
                        """
                        INSERT INTO reputation_cache (domain, sources, risk_score, created_at, expires_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (domain, payload, float(result.risk_score), now, now + self.ttl_seconds),
                    )
        except Exception as e:  # noqa: BLE001
            logger.warning("Cache storage error for %s: %s", domain, e)
            return False
        return True

    def sweep_expired(self) -> int:
        """Delete expired rows; returns how many were removed."""
        now = self.clock()
        try:
            with self._connect() as con:
                with con:
                    cur = con.execute("DELETE FROM reputation_cache WHERE expires_at < ?", (now,))
                    removed = cur.rowcount
        except sqlite3.Error as e:
            logger.warning("Cache sweep failed: %s", e)
            return 0
        if removed:
            logger.info("Swept %d expired cache entries", removed)
        return removed

    def close(self) -> None:
        if self._memory is not None:
            self._memory.close()
            self._memory = None
