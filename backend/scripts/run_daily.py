#!/usr/bin/env python3
"""
Run the end-of-day pipeline (prices, FX, snapshots) once.

Usage:
    python scripts/run_daily.py [--date 2026-03-02]
"""

import asyncio
import json
import logging
import os
import sys
from argparse import ArgumentParser
from datetime import date

# Add backend to path
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from paperleague.core.calendar import yesterday_in_seoul
from paperleague.core.logging import setup_logging
from paperleague.services.pipeline import build_daily_pipeline

logger = logging.getLogger(__name__)


async def run(target_date: date) -> dict:
    pipeline = build_daily_pipeline()
    result = await pipeline.run_daily_pipeline(target_date)
    return {
        "target_date": target_date.isoformat(),
        "status": result.status,
        "prices": {
            "status": result.prices.status,
            "rows": result.prices.rows,
            "warnings": len(result.prices.warnings),
            "failures": result.prices.failures,
        },
        "fx": {
            "status": result.fx.status,
            "rate": result.fx.rate,
            "warning": result.fx.warning,
            "failure": result.fx.failure,
        },
        "snapshots": {
            "status": result.snapshots.status,
            "succeeded": result.snapshots.succeeded,
            "failures": result.snapshots.failures,
        },
    }


def main():
    parser = ArgumentParser(description="Run the daily valuation pipeline")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Target date YYYY-MM-DD (default: yesterday in Asia/Seoul)"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    setup_logging("DEBUG" if args.verbose else None)
    target_date = args.date or yesterday_in_seoul()
    summary = asyncio.run(run(target_date))
    print(json.dumps(summary, indent=2))

    if summary["status"] == "failed":
        logger.error(f"Daily pipeline failed for {target_date}")
        sys.exit(1)


if __name__ == "__main__":
    main()
