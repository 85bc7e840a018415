"""
Trade pre-validation.

Checks a prospective ledger entry before it is written: field rules first, then
the portfolio rules by replaying the ledger up to the trade date with the same
engine the snapshots use.
"""
import math
from dataclasses import dataclass
from datetime import date
from typing import Optional

from paperleague.core.calendar import is_market_business_day, today_in_seoul
from paperleague.core.exceptions import TradeValidationError
from paperleague.engine.ledger import (
    CASH_EPSILON,
    MARKET_DEFAULTS,
    QUANTITY_EPSILON,
    LedgerReplayEngine,
    effective_price,
    is_whole_quantity,
)
from paperleague.engine.types import Instrument, Participant, Portfolio
from paperleague.engine.value_cache import ValueCache
from paperleague.repository.base import Repository

SIDES = ("BUY", "SELL", "CLOSE")


@dataclass
class TradeCheck:
    """Outcome of a passed validation. quantity is resolved for CLOSE."""
    quantity: float
    effective_price: float
    fee_local: float
    cost_krw: Optional[float] = None


def check_fields(side: str, quantity: Optional[float], price: Optional[float]) -> None:
    if side not in SIDES:
        raise TradeValidationError("invalid side")
    if side != "CLOSE":
        if quantity is None or not math.isfinite(quantity) or quantity <= 0 or not is_whole_quantity(quantity):
            raise TradeValidationError("quantity must be a positive integer")
    if price is None or not math.isfinite(price) or price <= 0:
        raise TradeValidationError("price must be > 0")


def check_trade_date(trade_date: date, market: str, today: Optional[date] = None) -> None:
    today = today or today_in_seoul()
    if trade_date > today:
        raise TradeValidationError(f"trade_date {trade_date} is in the future")
    calendar_market = "US" if market == "US" else "KR"
    if not is_market_business_day(trade_date, calendar_market):
        raise TradeValidationError(f"trade_date {trade_date} is not a {calendar_market} business day")


async def validate_trade(
    repository: Repository,
    portfolio: Portfolio,
    participant: Participant,
    instrument: Instrument,
    trade_date: date,
    side: str,
    quantity: Optional[float],
    price: float,
    fee_rate: Optional[float] = None,
    slippage_bps: Optional[float] = None,
    today: Optional[date] = None,
    ledger: Optional[LedgerReplayEngine] = None,
) -> TradeCheck:
    check_fields(side, quantity, price)
    check_trade_date(trade_date, instrument.market, today)

    ledger = ledger or LedgerReplayEngine(repository)
    cache = ValueCache(repository)
    state = await ledger.replay(portfolio, participant, trade_date, cache)

    held = next((p for p in state.positions if p.instrument.id == instrument.id), None)
    prev_qty = held.quantity if held else 0.0
    qty = prev_qty if side == "CLOSE" else float(quantity)

    if not qty > 0:
        raise TradeValidationError("No position to CLOSE" if side == "CLOSE" else "quantity must be > 0")
    if side in ("SELL", "CLOSE") and qty > prev_qty + QUANTITY_EPSILON:
        raise TradeValidationError("SELL/CLOSE cannot exceed current position")

    fee_rate = MARKET_DEFAULTS.fee_rate if fee_rate is None else float(fee_rate)
    slippage_bps = MARKET_DEFAULTS.slippage_bps if slippage_bps is None else float(slippage_bps)
    px = effective_price(side, float(price), slippage_bps)
    fee_local = qty * px * fee_rate

    if side != "BUY":
        return TradeCheck(quantity=qty, effective_price=px, fee_local=fee_local)

    fx = await ledger.fx_rate_for(instrument, trade_date, cache)
    cost_krw = (qty * px + fee_local) * fx
    if state.cash_krw - cost_krw < -CASH_EPSILON:
        raise TradeValidationError(
            f"Insufficient cash: need {cost_krw:.2f} KRW, have {state.cash_krw:.2f} KRW"
        )
    return TradeCheck(quantity=qty, effective_price=px, fee_local=fee_local, cost_krw=cost_krw)
