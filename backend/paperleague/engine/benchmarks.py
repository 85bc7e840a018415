"""
Benchmark cumulative-return series.

Benchmark closes are carried forward across every calendar day (weekends and
holidays included) so that any participant snapshot date can be compared with
the benchmark on the same date.
"""
import math
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from paperleague.core.calendar import date_range
from paperleague.engine.types import BenchmarkSeries, PricePoint


def build_benchmark_series(
    symbol: str,
    start_date: date,
    end_date: date,
    raw_prices: Iterable[PricePoint],
) -> BenchmarkSeries:
    """
    Build the cumulative return since `start_date` for each day in [start_date, end_date].

    Days without a base close or without any carried close map to None.
    """
    closes: Dict[date, float] = {}
    for point in sorted(raw_prices, key=lambda p: p.date):
        close = float(point.close)
        if math.isfinite(close):
            closes[point.date] = close

    days = date_range(start_date, end_date)
    if not days:
        return BenchmarkSeries(symbol=symbol, return_by_date={})

    calendar = pd.DatetimeIndex(pd.to_datetime(days))
    if closes:
        history = pd.Series(closes, dtype="float64")
        history.index = pd.to_datetime(list(history.index))
        history = history[history.index <= calendar[-1]]
        carried = history.reindex(history.index.union(calendar)).ffill().reindex(calendar)
    else:
        carried = pd.Series(float("nan"), index=calendar)

    base = carried.iloc[0]
    return_by_date: Dict[date, Optional[float]] = {}
    for day, close in zip(days, carried.tolist()):
        if pd.isna(base) or pd.isna(close) or base == 0:
            return_by_date[day] = None
            continue
        return_by_date[day] = float(close / base - 1)

    return BenchmarkSeries(symbol=symbol, return_by_date=return_by_date)


def benchmark_daily_returns(
    dates: Sequence[date],
    cumulative_by_date: Mapping[date, Optional[float]],
) -> List[Optional[float]]:
    """Day-over-day benchmark returns for consecutive entries of `dates`."""
    result: List[Optional[float]] = []
    for i in range(1, len(dates)):
        prev = cumulative_by_date.get(dates[i - 1])
        cur = cumulative_by_date.get(dates[i])
        if prev is None or cur is None or prev == -1:
            result.append(None)
            continue
        result.append((1 + cur) / (1 + prev) - 1)
    return result
