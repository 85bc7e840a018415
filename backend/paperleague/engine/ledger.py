"""
Ledger Replay Engine.

Rebuilds a portfolio's cash, realized P&L and open positions for any date by
folding its trade ledger in order (trade_date, created_at, id). Average cost is
lot-weighted and recomputed on every BUY, so the fold must stay sequential.

Every read path (snapshots, leaderboard, trade validation) goes through
`LedgerReplayEngine.replay`; nothing else re-implements the accounting.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

from paperleague.core.config import settings
from paperleague.core.exceptions import LedgerInconsistency, MissingFxRateError
from paperleague.engine.types import (
    Fill,
    Instrument,
    Participant,
    Portfolio,
    PortfolioState,
    Position,
    Trade,
)
from paperleague.engine.value_cache import ValueCache
from paperleague.repository.base import Repository

logger = logging.getLogger(__name__)

QUANTITY_EPSILON = 1e-9
CASH_EPSILON = 1e-6
BPS = 10_000


@dataclass(frozen=True)
class MarketDefaults:
    """Fee rate and slippage applied when a trade leaves them empty."""
    fee_rate: float = 0.0
    slippage_bps: float = 0.0


MARKET_DEFAULTS = MarketDefaults()


def effective_price(side: str, price: float, slippage_bps: float) -> float:
    """Quoted price moved against the trader by the slippage."""
    if side == "BUY":
        return price * (1 + slippage_bps / BPS)
    return price * (1 - slippage_bps / BPS)


def is_whole_quantity(quantity: float) -> bool:
    return float(quantity).is_integer()


def starting_cash_for(participant: Participant) -> float:
    if participant.starting_cash_krw is None:
        return float(settings.STARTING_CASH_KRW)
    return float(participant.starting_cash_krw)


class LedgerReplayEngine:
    def __init__(self, repository: Repository, fx_pair: Optional[str] = None):
        self.repository = repository
        self.fx_pair = fx_pair or settings.FX_PAIR

    async def fx_rate_for(self, instrument: Instrument, on_date: date, cache: ValueCache) -> float:
        """KRW instruments convert at 1; USD instruments need a stored rate."""
        if instrument.currency != "USD":
            return 1.0
        rate = await cache.fx_on_or_before(self.fx_pair, on_date)
        if not rate:
            raise MissingFxRateError(self.fx_pair, on_date)
        return rate

    async def replay(
        self,
        portfolio: Portfolio,
        participant: Participant,
        as_of: date,
        cache: ValueCache,
    ) -> PortfolioState:
        trades = await self.repository.get_trades_for_portfolio(portfolio.id, as_of)

        cash_krw = starting_cash_for(participant)
        realized_pnl_krw = 0.0
        positions: Dict[str, Position] = {}
        fills: List[Fill] = []

        for trade in trades:
            cash_krw, realized_pnl_krw, fill = await self._apply(
                trade, positions, cash_krw, realized_pnl_krw, cache
            )
            fills.append(fill)

        holdings_value_krw = 0.0
        unrealized_pnl_krw = 0.0
        unpriced = []

        for position in positions.values():
            close = await cache.price_on_or_before(position.instrument.id, as_of)
            if close is None:
                # No price at all yet: value at cost instead of failing the snapshot
                close = position.avg_cost_local
                unpriced.append(position.instrument.symbol)
            fx_rate = await self.fx_rate_for(position.instrument, as_of, cache)

            value_local = position.quantity * close
            cost_local = position.quantity * position.avg_cost_local
            holdings_value_krw += value_local * fx_rate
            unrealized_pnl_krw += (value_local - cost_local) * fx_rate

        if unpriced:
            logger.warning(
                f"Portfolio {portfolio.id} on {as_of}: no price for {', '.join(unpriced)}, "
                f"marked at average cost"
            )

        return PortfolioState(
            cash_krw=cash_krw,
            realized_pnl_krw=realized_pnl_krw,
            holdings_value_krw=holdings_value_krw,
            unrealized_pnl_krw=unrealized_pnl_krw,
            nav_krw=cash_krw + holdings_value_krw,
            positions=list(positions.values()),
            unpriced_instruments=unpriced,
            fills=fills,
        )

    async def _apply(
        self,
        trade: Trade,
        positions: Dict[str, Position],
        cash_krw: float,
        realized_pnl_krw: float,
        cache: ValueCache,
    ):
        instrument = trade.instrument
        fee_rate = MARKET_DEFAULTS.fee_rate if trade.fee_rate is None else float(trade.fee_rate)
        slippage_bps = MARKET_DEFAULTS.slippage_bps if trade.slippage_bps is None else float(trade.slippage_bps)

        existing = positions.get(instrument.id)
        prev_qty = existing.quantity if existing else 0.0

        qty = prev_qty if trade.side == "CLOSE" else float(trade.quantity)
        if not qty > 0 or not is_whole_quantity(qty):
            raise LedgerInconsistency(
                f"Invalid quantity {qty} for trade {trade.id}", trade_id=trade.id
            )
        if trade.side in ("SELL", "CLOSE") and qty > prev_qty + QUANTITY_EPSILON:
            raise LedgerInconsistency(
                f"{trade.side} of {qty} {instrument.symbol} exceeds position {prev_qty} "
                f"for trade {trade.id}",
                trade_id=trade.id,
            )

        price = effective_price(trade.side, float(trade.price), slippage_bps)
        notional_local = qty * price
        fee_local = notional_local * fee_rate
        fx_rate = await self.fx_rate_for(instrument, trade.trade_date, cache)
        fill = Fill(
            trade_id=trade.id,
            trade_date=trade.trade_date,
            symbol=instrument.symbol,
            side=trade.side,
            quantity=qty,
            notional_krw=qty * float(trade.price) * fx_rate,
        )

        if trade.side == "BUY":
            gross_local = notional_local + fee_local
            gross_krw = gross_local * fx_rate
            if cash_krw - gross_krw < -CASH_EPSILON:
                raise LedgerInconsistency(
                    f"Insufficient cash for trade {trade.id}: need {gross_krw:.2f}, "
                    f"have {cash_krw:.2f}",
                    trade_id=trade.id,
                )
            cash_krw -= gross_krw

            next_qty = prev_qty + qty
            prev_cost_local = (existing.avg_cost_local if existing else 0.0) * prev_qty
            positions[instrument.id] = Position(
                instrument=instrument,
                quantity=next_qty,
                avg_cost_local=(prev_cost_local + gross_local) / next_qty,
            )
            return cash_krw, realized_pnl_krw, fill

        net_local = notional_local - fee_local
        cash_krw += net_local * fx_rate

        avg_cost = existing.avg_cost_local if existing else 0.0
        realized_pnl_krw += (net_local - avg_cost * qty) * fx_rate

        next_qty = prev_qty - qty
        if next_qty <= QUANTITY_EPSILON:
            positions.pop(instrument.id, None)
        else:
            positions[instrument.id] = Position(
                instrument=instrument,
                quantity=next_qty,
                avg_cost_local=avg_cost,
            )
        return cash_krw, realized_pnl_krw, fill
