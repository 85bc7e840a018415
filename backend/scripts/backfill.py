#!/usr/bin/env python3
"""
Re-run pipeline stages for a date range. Safe to repeat: every write is an upsert.

Usage:
    python scripts/backfill.py <prices|fx|snapshots|all> <start_date> <end_date>
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

from paperleague.core.logging import setup_logging
from paperleague.services.pipeline import BACKFILL_KINDS, build_daily_pipeline

logger = logging.getLogger(__name__)


async def backfill(kind: str, start_date: date, end_date: date) -> dict:
    pipeline = build_daily_pipeline()
    out = await pipeline.backfill(kind, start_date, end_date)

    summary = {"mode": kind, "start_date": start_date.isoformat(), "end_date": end_date.isoformat()}
    for stage, results in out.items():
        failed = [r.target_date.isoformat() for r in results if r.status == "failed"]
        summary[stage] = {"days": len(results), "failed_days": failed}
        if failed:
            logger.warning(f"{stage}: {len(failed)} day(s) failed")
    return summary


def main():
    parser = ArgumentParser(description="Backfill prices, FX and snapshots for a date range")
    parser.add_argument("kind", choices=BACKFILL_KINDS)
    parser.add_argument("start_date", type=date.fromisoformat)
    parser.add_argument("end_date", type=date.fromisoformat)
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    if args.start_date > args.end_date:
        parser.error("start_date must be on or before end_date")

    setup_logging("DEBUG" if args.verbose else None)
    summary = asyncio.run(backfill(args.kind, args.start_date, args.end_date))
    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
