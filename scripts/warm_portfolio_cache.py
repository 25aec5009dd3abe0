#!/usr/bin/env python3
"""
Warm the durable portfolio cache from a developer workstation or CI job.

Runs one pre-cache pass against the portfolio API and writes the results to
the configured durable storage (file or Redis), so the edge service starts
with data even while the backend is cold.
"""

import argparse
import asyncio
import json
from pathlib import Path
from typing import Optional
import sys
import os

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from shared.config import BaseConfig  # noqa: E402
from shared.logging import configure_logging  # noqa: E402
from service_portfolio.app.caching.cache_warmer import CacheWarmer  # noqa: E402
from service_portfolio.app.caching.cached_fetch import CachedFetcher, RuntimeMode  # noqa: E402
from service_portfolio.app.caching.storage import create_storage  # noqa: E402
from service_portfolio.app.caching.ttl_cache import TTLCache  # noqa: E402


async def warm(config: BaseConfig, api_url: str, retry_count: int, schedule: bool) -> dict:
    """Execute cache warming and return the summary."""
    cache = TTLCache(create_storage(config))
    fetcher = CachedFetcher(
        cache,
        mode=RuntimeMode.from_env(config.env),
        dev_timeout=config.dev_fetch_timeout,
        prod_timeout=config.prod_fetch_timeout,
        extended_ttl=config.extended_ttl,
        stale_multiplier=config.stale_ttl_multiplier,
    )
    warmer = CacheWarmer(
        fetcher,
        ttl_seconds=config.default_ttl,
        failed_retry_delay=config.failed_retry_delay,
        warm_schedule=tuple(config.warm_schedule),
    )
    try:
        if schedule:
            reports = await warmer.warm_cache(api_url)
            return {"passes": [report.to_dict() for report in reports]}
        report = await warmer.pre_cache_data(api_url, retry_count=retry_count)
        return report.to_dict()
    finally:
        await fetcher.aclose()


def _parse_args(config: BaseConfig) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Warm the portfolio content cache.")
    parser.add_argument("--api-url", default=config.api_base_url, help="Portfolio API base URL")
    parser.add_argument("--retry-count", type=int, default=config.warm_retry_count, help="Attempts per endpoint")
    parser.add_argument("--schedule", action="store_true", help="Use the cold-start warm schedule (production mode only)")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args()


def main(config: Optional[BaseConfig] = None) -> int:
    config = config or BaseConfig()
    configure_logging("portfolio", config.log_level)
    args = _parse_args(config)
    try:
        summary = asyncio.run(warm(config, args.api_url, args.retry_count, args.schedule))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[cache-warm] failed: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
