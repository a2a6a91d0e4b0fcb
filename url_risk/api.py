"""
URL Risk Web API
FastAPI backend for the reputation service
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import time
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from .config import Settings, load_settings
from .errors import (
    IngressRateLimitError,
    UpstreamRateLimitError,
    UpstreamUnavailableError,
    ValidationError,
)
from .models import CheckResult, RateLimitDecision
from .service import ReputationService

logger = logging.getLogger(__name__)

DEV_ORIGINS = ["http://localhost:3000", "http://localhost:3002", "http://localhost:5173"]
EXTENSION_ORIGIN_REGEX = r"^(chrome|moz)-extension://.*$"


class CheckRequest(BaseModel):
    url: Optional[str] = None


def client_key_from_request(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def reset_epoch(retry_after_seconds: float) -> int:
    """Wall-clock second at which the window ends (the limiter runs on a monotonic clock)."""
    return math.ceil(time.time() + retry_after_seconds)


def rate_limit_headers(decision: Optional[RateLimitDecision]) -> dict[str, str]:
    if decision is None:
        return {}
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(reset_epoch(decision.retry_after_seconds)),
    }


def to_response(url: str, check: CheckResult) -> dict[str, Any]:
    result = check.result
    return {
        "url": url,
        "domain": result.domain,
        "riskScore": result.risk_score,
        "riskLevel": result.risk_level,
        "sources": [
            {
                "source": s.source,
                "score": s.risk_score,
                "succeeded": s.succeeded,
                "details": s.detail if s.succeeded else {"error": s.error or "Service unavailable"},
            }
            for s in result.sources
        ],
        "cached": check.cached,
        "checkedAt": result.computed_at,
        "latencyMs": round(check.latency_ms, 1),
    }


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def _validation(request: Request, exc: ValidationError):
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(RequestValidationError)
    async def _bad_body(request: Request, exc: RequestValidationError):
        return JSONResponse({"error": "Request body must be JSON like {\"url\": \"https://...\"}"}, status_code=400)

    @app.exception_handler(IngressRateLimitError)
    async def _ingress_limit(request: Request, exc: IngressRateLimitError):
        retry_after = math.ceil(exc.retry_after_seconds)
        return JSONResponse(
            {
                "error": "Rate limit exceeded",
                "retryAfter": retry_after,
                "limit": exc.limit,
                "remaining": 0,
            },
            status_code=429,
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(exc.limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(reset_epoch(exc.retry_after_seconds)),
            },
        )

    @app.exception_handler(UpstreamRateLimitError)
    async def _upstream_limit(request: Request, exc: UpstreamRateLimitError):
        body: dict[str, Any] = {"error": "Upstream rate limit exceeded", "source": exc.source}
        headers = {}
        if exc.retry_after_seconds is not None:
            body["retryAfter"] = math.ceil(exc.retry_after_seconds)
            headers["Retry-After"] = str(body["retryAfter"])
        return JSONResponse(body, status_code=503, headers=headers)

    @app.exception_handler(UpstreamUnavailableError)
    async def _unavailable(request: Request, exc: UpstreamUnavailableError):
        return JSONResponse(
            {"error": "All reputation sources failed", "sources": exc.failures},
            status_code=502,
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse({"error": "Internal server error"}, status_code=500)


def create_app(service: Optional[ReputationService] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    service = service or ReputationService.from_settings(settings)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = asyncio.create_task(service.run_sweeper(settings.sweep_interval_seconds))
        logger.info("Environment: %s", settings.env)
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper

    app = FastAPI(
        title="URL Risk",
        description="Aggregated URL reputation with caching and rate limiting",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service

    origins = list(settings.cors_origins)
    if not settings.is_production:
        origins += DEV_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_origin_regex=EXTENSION_ORIGIN_REGEX,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
        max_age=3600,
    )
    _install_error_handlers(app)

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        return {"status": "ok"}

    @app.get("/api/sources")
    async def list_sources():
        """List configured reputation sources"""
        return {
            "sources": [{"id": p.name, "mode": "live" if p.live else "mock"} for p in service.providers]
        }

    @app.post("/api/check")
    async def check_url(body: CheckRequest, request: Request):
        """Check a single URL reputation"""
        url = body.url or ""
        result = await service.check(url, client_key=client_key_from_request(request))
        return JSONResponse(to_response(url, result), headers=rate_limit_headers(result.rate_limit))

    return app
