#!/usr/bin/env python3
"""
URL Risk - CLI entry point
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Optional

from .cache import Cache
from .config import Settings, load_settings
from .errors import (
    IngressRateLimitError,
    UpstreamRateLimitError,
    UpstreamUnavailableError,
    ValidationError,
)
from .log import configure_logging
from .service import ReputationService

EXIT_OK = 0
EXIT_VALIDATION = 2
EXIT_UPSTREAM = 3
EXIT_RATE_LIMIT = 4

LEVEL_EMOJI = {"safe": "✅", "low": "🟢", "medium": "🟠", "high": "🔴", "dangerous": "☠️"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="url-risk",
        description="Aggregated URL reputation across multiple threat-intelligence sources",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_check = sub.add_parser("check", help="Check a single URL")
    p_check.add_argument("url", help="Absolute http(s) URL to check")
    p_check.add_argument("--json", "-j", action="store_true", help="Output as JSON")
    p_check.add_argument("--no-cache", action="store_true", help="Skip the cache for this lookup")

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default=None, help="Bind address (default: $HOST or 127.0.0.1)")
    p_serve.add_argument("--port", type=int, default=None, help="Port (default: $PORT or 3002)")

    sub.add_parser("migrate", help="Create the cache schema")
    sub.add_parser("sweep", help="Delete expired cache entries")
    return parser


def print_human_readable(payload: dict[str, Any]) -> None:
    """Print human-readable output."""
    level = payload["risk_level"]
    print("\n🔍 URL Risk Report")
    print(f"{'=' * 50}")
    print(f"Domain: {payload['domain']}")
    print(f"{'=' * 50}")
    print(f"\n{LEVEL_EMOJI.get(level, '❓')} Risk level: {level}")
    print(f"📊 Risk Score: {payload['risk_score']:.1f}/100")

    print("\n📋 Source Results:")
    print(f"{'-' * 50}")
    for src in payload.get("sources", []):
        if src.get("succeeded"):
            print(f"  {src['source']}: {src['risk_score']:.1f}")
        else:
            print(f"  {src['source']}: ❌ Error - {src.get('error') or 'Unknown error'}")

    cached = " (cached)" if payload.get("cached") else ""
    print(f"\n⏱️  Computed at: {payload['computed_at']}{cached}")


def run_check(settings: Settings, args: argparse.Namespace) -> int:
    service = ReputationService.from_settings(settings)
    # One-shot local invocation; the ingress limiter guards the HTTP API only.
    service.limiter = None

    try:
        result = asyncio.run(service.check(args.url, use_cache=not args.no_cache))
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_VALIDATION
    except (UpstreamRateLimitError, IngressRateLimitError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_RATE_LIMIT
    except UpstreamUnavailableError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_UPSTREAM

    payload = result.to_dict()
    if args.json:
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        print_human_readable(payload)
    return EXIT_OK


def run_serve(settings: Settings, args: argparse.Namespace) -> int:
    import uvicorn

    from .api import create_app

    uvicorn.run(
        create_app(settings=settings),
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    configure_logging(settings.log_level, stream=sys.stderr)

    if args.command == "check":
        code = run_check(settings, args)
    elif args.command == "serve":
        code = run_serve(settings, args)
    elif args.command == "migrate":
        Cache(settings.cache_path, ttl_seconds=settings.cache_ttl_seconds)
        print(f"Cache schema ready at {settings.cache_path}")
        code = EXIT_OK
    else:
        removed = Cache(settings.cache_path, ttl_seconds=settings.cache_ttl_seconds).sweep_expired()
        print(f"Removed {removed} expired entries")
        code = EXIT_OK

    sys.exit(code)


if __name__ == "__main__":
    main()
