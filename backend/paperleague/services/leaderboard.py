import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Literal, Optional, Sequence, Tuple

from paperleague.core.calendar import add_days
from paperleague.core.exceptions import PaperLeagueError
from paperleague.engine.ledger import LedgerReplayEngine
from paperleague.engine.types import DailySnapshot, Fill, Participant, Portfolio, PortfolioState
from paperleague.engine.value_cache import ValueCache
from paperleague.repository.base import Repository

logger = logging.getLogger(__name__)

SortBy = Literal["return", "sharpe"]

TURNOVER_WINDOW_DAYS = 20
TOP_N = 3


@dataclass
class RankedInstrument:
    symbol: str
    value: float


@dataclass
class LeaderboardRow:
    participant_id: str
    participant_name: str
    color_tag: str
    snapshot: DailySnapshot
    cash_ratio: Optional[float]
    turnover_20d: Optional[float]
    top_return: List[RankedInstrument] = field(default_factory=list)
    top_weight: List[RankedInstrument] = field(default_factory=list)
    top_unrealized: List[RankedInstrument] = field(default_factory=list)

    @property
    def total_return_pct(self) -> float:
        return self.snapshot.total_return_pct

    @property
    def sharpe_252(self) -> Optional[float]:
        return self.snapshot.sharpe_252


@dataclass
class Leaderboard:
    date: Optional[date]
    rows: List[LeaderboardRow] = field(default_factory=list)


def top_n(items: Iterable[Tuple[str, Optional[float]]], n: int = TOP_N) -> List[RankedInstrument]:
    ranked = sorted((i for i in items if i[1] is not None), key=lambda i: i[1], reverse=True)
    return [RankedInstrument(symbol, value) for symbol, value in ranked[:n]]


def turnover_20d(fills: Sequence[Fill], as_of: date, nav: float) -> Optional[float]:
    """Traded KRW notional over the last 20 calendar days, as a fraction of NAV."""
    if not nav > 0:
        return None
    window_start = add_days(as_of, -(TURNOVER_WINDOW_DAYS - 1))
    notional_krw = sum(f.notional_krw for f in fills if window_start <= f.trade_date <= as_of)
    return notional_krw / nav


class LeaderboardService:
    """
    Ranks participants by their latest stored snapshot and enriches each row
    with cash ratio, 20-day turnover and top holdings.

    Rows are computed concurrently over one ValueCache, so a price or FX rate
    shared by several portfolios is loaded once.
    """

    def __init__(self, repository: Repository, ledger: Optional[LedgerReplayEngine] = None):
        self.repository = repository
        self.ledger = ledger or LedgerReplayEngine(repository)

    async def build(self, sort_by: SortBy = "return") -> Leaderboard:
        participants = await self.repository.get_participants_with_portfolios()
        latest = await asyncio.gather(
            *[self.repository.get_latest_snapshot(p.id) for p, _ in participants]
        )
        entries = [
            (participant, portfolio, snapshot)
            for (participant, portfolio), snapshot in zip(participants, latest)
            if snapshot is not None
        ]
        if not entries:
            return Leaderboard(date=None)

        cache = ValueCache(self.repository)
        rows = await asyncio.gather(
            *[self._row(participant, portfolio, snapshot, cache) for participant, portfolio, snapshot in entries]
        )
        return Leaderboard(
            date=max(s.date for _, _, s in entries),
            rows=sort_rows(list(rows), sort_by),
        )

    async def _row(
        self,
        participant: Participant,
        portfolio: Portfolio,
        snapshot: DailySnapshot,
        cache: ValueCache,
    ) -> LeaderboardRow:
        nav = snapshot.nav_krw
        row = LeaderboardRow(
            participant_id=participant.id,
            participant_name=participant.name,
            color_tag=participant.color_tag,
            snapshot=snapshot,
            cash_ratio=snapshot.cash_krw / nav if nav > 0 else None,
            turnover_20d=None,
        )

        try:
            state = await self.ledger.replay(portfolio, participant, snapshot.date, cache)
        except PaperLeagueError as e:
            logger.warning(f"Leaderboard holdings unavailable for {participant.id}: {e}")
            return row

        row.turnover_20d = turnover_20d(state.fills, snapshot.date, nav)
        returns, weights, unrealized = await self._position_stats(state, snapshot.date, nav, cache)
        row.top_return = top_n(returns)
        row.top_weight = top_n(weights)
        row.top_unrealized = top_n(unrealized)
        return row

    async def _position_stats(self, state: PortfolioState, as_of: date, nav: float, cache: ValueCache):
        returns, weights, unrealized = [], [], []
        for p in state.positions:
            close = await cache.price_on_or_before(p.instrument.id, as_of)
            if close is None:
                close = p.avg_cost_local
            fx = await self.ledger.fx_rate_for(p.instrument, as_of, cache)
            value_krw = p.quantity * close * fx
            cost_krw = p.quantity * p.avg_cost_local * fx
            symbol = p.instrument.symbol
            returns.append((symbol, close / p.avg_cost_local - 1 if p.avg_cost_local > 0 else None))
            weights.append((symbol, value_krw / nav if nav > 0 else None))
            unrealized.append((symbol, value_krw - cost_krw))
        return returns, weights, unrealized


def sort_rows(rows: List[LeaderboardRow], sort_by: SortBy = "return") -> List[LeaderboardRow]:
    if sort_by == "sharpe":
        return sorted(
            rows,
            key=lambda r: r.sharpe_252 if r.sharpe_252 is not None else float("-inf"),
            reverse=True,
        )
    return sorted(rows, key=lambda r: r.total_return_pct, reverse=True)
