"""
Risk Metrics Computer.

Derives the time-series statistics stored on each daily snapshot from the
participant's NAV history and the benchmark cumulative-return series:

- daily return (last NAV over previous NAV)
- annualized volatility and Sharpe ratio over a trailing 252-return window
- max drawdown to date over the whole history
- OLS beta against each benchmark over the trailing window of paired returns

Windowed statistics are None until MIN_OBSERVATIONS returns are available.
"""
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from paperleague.core.config import settings
from paperleague.core.exceptions import InvalidValuationError
from paperleague.engine.benchmarks import benchmark_daily_returns
from paperleague.engine.stats import mean, ols_beta, rolling_window, sample_std
from paperleague.engine.types import BenchmarkSeries
from paperleague.repository.base import Repository


@dataclass
class RiskMetrics:
    ret_daily: Optional[float]
    vol_ann_252: Optional[float]
    sharpe_252: Optional[float]
    mdd_to_date: float
    betas: Dict[str, Optional[float]] = field(default_factory=dict)


def daily_returns(nav_series: Sequence[float]) -> List[float]:
    return [nav_series[i] / nav_series[i - 1] - 1 for i in range(1, len(nav_series))]


def vol_and_sharpe(
    returns: Sequence[float],
    min_obs: int,
    periods_per_year: int,
) -> Tuple[Optional[float], Optional[float]]:
    if len(returns) < min_obs:
        return None, None
    std = sample_std(returns)
    if std == 0:
        return 0.0, None
    vol = std * math.sqrt(periods_per_year)
    sharpe = mean(returns) * periods_per_year / vol
    return vol, sharpe


def max_drawdown(nav_series: Sequence[float]) -> float:
    """Deepest NAV / running-peak - 1 seen so far, as a non-positive fraction."""
    peak = float("-inf")
    worst = 0.0
    for nav in nav_series:
        if nav > peak:
            peak = nav
        if peak <= 0:
            continue
        drawdown = nav / peak - 1
        if drawdown < worst:
            worst = drawdown
    return worst


def paired_beta(
    portfolio_returns: Sequence[float],
    benchmark_returns: Sequence[Optional[float]],
    window: int,
    min_obs: int,
) -> Optional[float]:
    p: List[float] = []
    b: List[float] = []
    for rp, rb in zip(portfolio_returns, benchmark_returns):
        if rb is None:
            continue
        p.append(rp)
        b.append(rb)
    wp = rolling_window(p, window)
    wb = rolling_window(b, window)
    if len(wp) < min_obs or len(wb) < min_obs:
        return None
    return ols_beta(wp, wb)


class RiskMetricsComputer:
    def __init__(
        self,
        repository: Repository,
        window: Optional[int] = None,
        min_obs: Optional[int] = None,
        periods_per_year: Optional[int] = None,
    ):
        self.repository = repository
        self.window = window or settings.ROLLING_WINDOW
        self.min_obs = min_obs or settings.MIN_OBSERVATIONS
        self.periods_per_year = periods_per_year or settings.TRADING_DAYS_PER_YEAR

    async def nav_history(
        self,
        participant_id: str,
        as_of: date,
        nav_today: float,
        game_start: date,
        starting_cash: float,
    ) -> Tuple[List[date], List[float]]:
        past = await self.repository.get_snapshot_history(participant_id, game_start)
        history = [s for s in past if s.date < as_of]

        dates = [s.date for s in history]
        navs = [float(s.nav_krw) for s in history]

        if (not history or history[0].date > game_start) and as_of > game_start:
            dates.insert(0, game_start)
            navs.insert(0, float(starting_cash))

        dates.append(as_of)
        navs.append(float(nav_today))
        return dates, navs

    async def compute(
        self,
        participant_id: str,
        as_of: date,
        nav_today: float,
        benchmarks: Mapping[str, BenchmarkSeries],
        game_start: date,
        starting_cash: float,
    ) -> RiskMetrics:
        dates, navs = await self.nav_history(
            participant_id, as_of, nav_today, game_start, starting_cash
        )
        bad = next(((d, n) for d, n in zip(dates[:-1], navs[:-1]) if n <= 0), None)
        if bad is not None:
            raise InvalidValuationError(
                f"Participant {participant_id}: NAV {bad[1]} on {bad[0]} cannot anchor a daily return"
            )
        returns = daily_returns(navs)

        vol, sharpe = vol_and_sharpe(
            rolling_window(returns, self.window), self.min_obs, self.periods_per_year
        )

        betas = {}
        for code, series in benchmarks.items():
            bench_daily = benchmark_daily_returns(dates, series.return_by_date)
            betas[code] = paired_beta(returns, bench_daily, self.window, self.min_obs)

        return RiskMetrics(
            ret_daily=returns[-1] if returns else None,
            vol_ann_252=vol,
            sharpe_252=sharpe,
            mdd_to_date=max_drawdown(navs),
            betas=betas,
        )
