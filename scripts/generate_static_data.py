#!/usr/bin/env python3
"""
Generate static JSON snapshots of the portfolio API for the site build.

Run during the frontend build. Writes projects, contact details, resume
status and build metadata into the public data directory (and a fallback
directory). Always exits 0 so a cold or unreachable backend never breaks
the build; the site falls back to older snapshots or built-in defaults.
"""

import argparse
import asyncio
import json
from pathlib import Path
import sys
import os

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from shared.config import BaseConfig  # noqa: E402
from shared.logging import configure_logging  # noqa: E402
from service_portfolio.app.static_data.generator import StaticDataGenerator  # noqa: E402


def _parse_args(config: BaseConfig) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate static portfolio data snapshots.")
    parser.add_argument("--api-url", default=config.api_base_url, help="Portfolio API base URL")
    parser.add_argument("--output-dir", type=Path, default=Path(config.static_output_dir), help="Public data directory")
    parser.add_argument("--fallback-dir", type=Path, default=Path(config.static_fallback_dir), help="Fallback data directory")
    parser.add_argument("--timeout", type=float, default=config.static_fetch_timeout, help="Per-request timeout in seconds")
    return parser.parse_args()


def main() -> int:
    config = BaseConfig()
    configure_logging("portfolio", config.log_level)
    args = _parse_args(config)

    generator = StaticDataGenerator(
        args.api_url,
        args.output_dir,
        args.fallback_dir,
        timeout=args.timeout,
        env=config.env,
        version=config.build_version,
    )
    try:
        metadata = asyncio.run(generator.run())
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[static-data] generation failed, build continues with fallback data: {exc}", file=sys.stderr)
        return 0

    print(json.dumps(metadata.to_json_dict(), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
