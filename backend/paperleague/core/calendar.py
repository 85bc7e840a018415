"""
Calendar helpers: Seoul-local "today", inclusive date ranges and per-market
business days.
"""
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Set
from zoneinfo import ZoneInfo

from paperleague.core.config import settings

SEOUL_TZ = ZoneInfo("Asia/Seoul")

KRX_HOLIDAYS_2026 = {
    date(2026, 1, 1),
    date(2026, 2, 16),
    date(2026, 2, 17),
    date(2026, 2, 18),
    date(2026, 3, 2),
    date(2026, 5, 5),
    date(2026, 5, 25),
    date(2026, 10, 5),
    date(2026, 10, 9),
    date(2026, 12, 25),
}

US_HOLIDAYS_2026 = {
    date(2026, 1, 1),
    date(2026, 1, 19),
    date(2026, 2, 16),
    date(2026, 4, 3),
    date(2026, 5, 25),
    date(2026, 6, 19),
    date(2026, 7, 3),
    date(2026, 9, 7),
    date(2026, 11, 26),
    date(2026, 12, 25),
}


def today_in_seoul(now: Optional[datetime] = None) -> date:
    now = now or datetime.now(tz=SEOUL_TZ)
    if now.tzinfo is None:
        now = now.replace(tzinfo=SEOUL_TZ)
    return now.astimezone(SEOUL_TZ).date()


def yesterday_in_seoul(now: Optional[datetime] = None) -> date:
    """Default pipeline target: the last fully closed Seoul calendar day."""
    return today_in_seoul(now) - timedelta(days=1)


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def date_range(start: date, end: date) -> List[date]:
    """Every calendar day in [start, end]; empty when start > end."""
    if start > end:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def parse_holidays(raw: str) -> Set[date]:
    holidays = set()
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        try:
            holidays.add(date.fromisoformat(token))
        except ValueError:
            continue
    return holidays


def market_holidays(market: str) -> Set[date]:
    if market == "US":
        return US_HOLIDAYS_2026 | parse_holidays(settings.MARKET_HOLIDAYS_US)
    return KRX_HOLIDAYS_2026 | parse_holidays(settings.MARKET_HOLIDAYS_KR)


def is_market_business_day(value: date, market: str) -> bool:
    if value.weekday() >= 5:
        return False
    return value not in market_holidays(market)


def next_market_business_day(value: date, market: str) -> date:
    current = value
    for _ in range(10):
        current = current + timedelta(days=1)
        if is_market_business_day(current, market):
            return current
    raise ValueError(f"Unable to find next business day from {value} ({market})")


def business_days(dates: Iterable[date], market: str) -> List[date]:
    """Filter calendar days down to trading days, e.g. before plotting a series."""
    return [d for d in dates if is_market_business_day(d, market)]
