"""Runtime configuration.

Settings are read from the environment (and an optional .env file) once, by
`load_settings()`, and passed explicitly to whatever needs them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .cache import default_cache_path, parse_ttl

ENV_FILES = (Path(".env"), Path.home() / ".env", Path.home() / ".urlrisk.env")

DEFAULT_SOURCES = "virustotal,safebrowsing"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> list[str]:
    return [s.strip() for s in os.getenv(name, default).split(",") if s.strip()]


@dataclass
class Settings:
    env: str = field(default_factory=lambda: os.getenv("URL_RISK_ENV", "development"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "3002")))
    cors_origins: list[str] = field(default_factory=lambda: _env_list("URL_RISK_CORS_ORIGINS", ""))

    # Cache
    cache_path: str = field(default_factory=lambda: os.getenv("URL_RISK_CACHE_PATH") or default_cache_path())
    cache_ttl_seconds: int = field(default_factory=lambda: parse_ttl(os.getenv("URL_RISK_CACHE_TTL", "24h")))

    # Ingress rate limiting
    rate_limit: int = field(default_factory=lambda: int(os.getenv("URL_RISK_RATE_LIMIT", "60")))
    rate_window_seconds: float = field(default_factory=lambda: float(os.getenv("URL_RISK_RATE_WINDOW", "60")))
    sweep_interval_seconds: float = field(default_factory=lambda: float(os.getenv("URL_RISK_SWEEP_INTERVAL", "300")))

    # Sources
    sources: list[str] = field(default_factory=lambda: _env_list("URL_RISK_SOURCES", DEFAULT_SOURCES))
    propagate_rate_limit: bool = field(default_factory=lambda: _env_bool("URL_RISK_PROPAGATE_RATE_LIMIT", True))
    source_timeout_seconds: float = field(default_factory=lambda: float(os.getenv("URL_RISK_SOURCE_TIMEOUT", "10")))
    max_attempts: int = field(default_factory=lambda: int(os.getenv("URL_RISK_MAX_ATTEMPTS", "3")))
    retry_delay_seconds: float = field(default_factory=lambda: float(os.getenv("URL_RISK_RETRY_DELAY", "1.0")))
    max_url_length: int = 2048

    # API keys
    virustotal_api_key: Optional[str] = field(default_factory=lambda: os.getenv("VIRUSTOTAL_API_KEY"))
    safebrowsing_api_key: Optional[str] = field(default_factory=lambda: os.getenv("GOOGLE_SAFEBROWSING_API_KEY"))

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    def api_key_for(self, source: str) -> Optional[str]:
        return {
            "virustotal": self.virustotal_api_key,
            "safebrowsing": self.safebrowsing_api_key,
        }.get(source)


def load_settings(*, dotenv: bool = True) -> Settings:
    if dotenv:
        # Try current dir, then home dir
        for env_path in ENV_FILES:
            if env_path.exists():
                load_dotenv(env_path)
                break
    return Settings()
