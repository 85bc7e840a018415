"""Tests for Seoul-local dates and market business days."""

from __future__ import annotations

from datetime import date, datetime, timezone

from paperleague.core.calendar import (
    add_days,
    business_days,
    date_range,
    is_market_business_day,
    next_market_business_day,
    parse_holidays,
    today_in_seoul,
    yesterday_in_seoul,
)


def test_seoul_day_rolls_over_before_utc() -> None:
    # 16:00 UTC is 01:00 the next day in Seoul
    now = datetime(2026, 3, 1, 16, 0, tzinfo=timezone.utc)

    assert today_in_seoul(now) == date(2026, 3, 2)
    assert yesterday_in_seoul(now) == date(2026, 3, 1)


def test_date_range_is_inclusive() -> None:
    assert date_range(date(2026, 1, 30), date(2026, 2, 2)) == [
        date(2026, 1, 30), date(2026, 1, 31), date(2026, 2, 1), date(2026, 2, 2),
    ]
    assert date_range(date(2026, 2, 2), date(2026, 2, 1)) == []
    assert add_days(date(2026, 3, 1), -1) == date(2026, 2, 28)


def test_market_holidays() -> None:
    # Seollal
    assert not is_market_business_day(date(2026, 2, 17), "KR")
    assert is_market_business_day(date(2026, 2, 17), "US")
    assert next_market_business_day(date(2026, 2, 13), "KR") == date(2026, 2, 19)


def test_business_days_filter() -> None:
    days = date_range(date(2026, 1, 1), date(2026, 1, 6))

    assert business_days(days, "US") == [date(2026, 1, 2), date(2026, 1, 5), date(2026, 1, 6)]


def test_parse_holidays_skips_malformed_tokens() -> None:
    assert parse_holidays("2026-08-17, nope,,2026-09-24") == {date(2026, 8, 17), date(2026, 9, 24)}
