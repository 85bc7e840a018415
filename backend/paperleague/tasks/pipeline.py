import asyncio
import logging
from datetime import date
from typing import Optional

from paperleague.core.calendar import yesterday_in_seoul
from paperleague.scheduler.celery_app import app
from paperleague.services.pipeline import build_daily_pipeline

logger = logging.getLogger(__name__)


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


@app.task(name="paperleague.tasks.pipeline.run_daily_pipeline")
def run_daily_pipeline(target_date: Optional[str] = None):
    """
    Scheduled end-of-day run.
    Defaults to yesterday in Seoul, i.e. after both the KRX and US sessions closed.
    """
    day = _parse_date(target_date) or yesterday_in_seoul()
    pipeline = build_daily_pipeline()
    result = asyncio.run(pipeline.run_daily_pipeline(day))

    logger.info(
        f"Daily pipeline {day}: prices={result.prices.status} fx={result.fx.status} "
        f"snapshots={result.snapshots.status}"
    )
    return {
        "target_date": day.isoformat(),
        "status": result.status,
        "prices": result.prices.status,
        "fx": result.fx.status,
        "snapshots": result.snapshots.status,
    }


@app.task(name="paperleague.tasks.pipeline.backfill")
def backfill(kind: str, start_date: str, end_date: str):
    """Re-run pipeline stages for every calendar day in [start_date, end_date]."""
    pipeline = build_daily_pipeline()
    out = asyncio.run(
        pipeline.backfill(kind, date.fromisoformat(start_date), date.fromisoformat(end_date))
    )
    counts = {stage: len(results) for stage, results in out.items()}
    logger.info(f"Backfill {kind} {start_date}..{end_date}: {counts}")
    return {"kind": kind, "start_date": start_date, "end_date": end_date, **counts}
