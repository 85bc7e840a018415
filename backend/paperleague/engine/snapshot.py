from dataclasses import dataclass
from datetime import date
from typing import Mapping, Optional

from paperleague.core.exceptions import InvalidValuationError
from paperleague.engine.ledger import LedgerReplayEngine, starting_cash_for
from paperleague.engine.risk import RiskMetricsComputer
from paperleague.engine.types import (
    BenchmarkSeries,
    DailySnapshot,
    Participant,
    Portfolio,
    PortfolioState,
)
from paperleague.engine.value_cache import ValueCache

SPY = "SPY"
KOSPI = "KOSPI"


@dataclass
class SnapshotResult:
    snapshot: DailySnapshot
    state: PortfolioState


def alpha(total_return: float, benchmark_return: Optional[float]) -> Optional[float]:
    if benchmark_return is None:
        return None
    return total_return - benchmark_return


class SnapshotBuilder:
    """Replays one portfolio and attaches its risk metrics for a single date."""

    def __init__(self, ledger: LedgerReplayEngine, risk: RiskMetricsComputer):
        self.ledger = ledger
        self.risk = risk

    async def build(
        self,
        participant: Participant,
        portfolio: Portfolio,
        as_of: date,
        benchmarks: Mapping[str, BenchmarkSeries],
        game_start: date,
        cache: ValueCache,
    ) -> SnapshotResult:
        state = await self.ledger.replay(portfolio, participant, as_of, cache)

        starting_cash = starting_cash_for(participant)
        if not starting_cash > 0:
            raise InvalidValuationError(
                f"Participant {participant.id} has starting cash {starting_cash}; total return is undefined"
            )
        total_return = state.nav_krw / starting_cash - 1
        spy_return = self._benchmark_return(benchmarks, SPY, as_of)
        kospi_return = self._benchmark_return(benchmarks, KOSPI, as_of)

        risk = await self.risk.compute(
            participant.id,
            as_of,
            state.nav_krw,
            benchmarks,
            game_start,
            starting_cash,
        )

        snapshot = DailySnapshot(
            participant_id=participant.id,
            portfolio_id=portfolio.id,
            date=as_of,
            nav_krw=state.nav_krw,
            cash_krw=state.cash_krw,
            holdings_value_krw=state.holdings_value_krw,
            realized_pnl_krw=state.realized_pnl_krw,
            unrealized_pnl_krw=state.unrealized_pnl_krw,
            total_return_pct=total_return,
            spy_return_pct=spy_return,
            kospi_return_pct=kospi_return,
            alpha_spy_pct=alpha(total_return, spy_return),
            alpha_kospi_pct=alpha(total_return, kospi_return),
            ret_daily=risk.ret_daily,
            vol_ann_252=risk.vol_ann_252,
            sharpe_252=risk.sharpe_252,
            mdd_to_date=risk.mdd_to_date,
            beta_spy_252=risk.betas.get(SPY),
            beta_kospi_252=risk.betas.get(KOSPI),
        )
        return SnapshotResult(snapshot=snapshot, state=state)

    @staticmethod
    def _benchmark_return(
        benchmarks: Mapping[str, BenchmarkSeries], code: str, as_of: date
    ) -> Optional[float]:
        series = benchmarks.get(code)
        if series is None:
            return None
        return series.return_by_date.get(as_of)
