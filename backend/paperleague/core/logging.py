"""
Process-wide logging for the pipeline scripts and the Celery worker.

One stdout handler on the root logger; chatty client libraries are held at
WARNING so a daily run reads as one summary line per stage plus per-item
warnings.
"""

import logging
import sys
from typing import Optional

from paperleague.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

QUIET_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "asyncpg": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "yfinance": logging.WARNING,
    "celery": logging.INFO,
}


def setup_logging(level: Optional[str] = None) -> None:
    """Install the stdout handler; `level` overrides LOG_LEVEL (e.g. --verbose)."""
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
