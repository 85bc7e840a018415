"""Tests for how snapshot values survive the SQL column types."""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

import pytest
from sqlalchemy import Float

from paperleague.engine.ledger import LedgerReplayEngine
from paperleague.engine.value_cache import ValueCache
from paperleague.models import DailySnapshot as DailySnapshotRow

DAY = date(2026, 1, 5)

MONEY_COLUMNS = ("nav_krw", "cash_krw", "holdings_value_krw", "realized_pnl_krw", "unrealized_pnl_krw")


def as_stored(column_name: str, value: float) -> float:
    """Value as PostgreSQL would hand it back for the declared column type."""
    column_type = DailySnapshotRow.__table__.c[column_name].type
    scale = getattr(column_type, "scale", None)
    if scale is None:
        return float(value)
    quantum = Decimal(1).scaleb(-scale)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


@pytest.mark.parametrize("name", MONEY_COLUMNS)
def test_money_columns_are_unscaled_floats(name) -> None:
    assert isinstance(DailySnapshotRow.__table__.c[name].type, Float)


def test_stored_snapshot_keeps_nav_identity(repo, portfolio, participant, samsung, apple) -> None:
    repo.add_fx("USDKRW", DAY, 1_437.37)
    repo.add_trade(portfolio.id, samsung, DAY, "BUY", 1, 0.005)
    repo.add_trade(portfolio.id, apple, DAY, "BUY", 3, 187.123, fee_rate=0.00025, slippage_bps=7)
    repo.add_price(samsung.id, DAY, 0.005)
    repo.add_price(apple.id, DAY, 187.456)

    state = asyncio.run(LedgerReplayEngine(repo).replay(portfolio, participant, DAY, ValueCache(repo)))
    nav = as_stored("nav_krw", state.nav_krw)
    cash = as_stored("cash_krw", state.cash_krw)
    holdings = as_stored("holdings_value_krw", state.holdings_value_krw)

    assert state.cash_krw != round(state.cash_krw, 2)
    assert abs(nav - (cash + holdings)) <= 1e-6
