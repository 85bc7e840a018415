"""
Pure numeric helpers for the risk statistics. Empty or single-element inputs
return 0 rather than NaN so callers can apply their own observation minimums.
"""
from typing import List, Optional, Sequence, TypeVar

import numpy as np

T = TypeVar("T")


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def sample_std(values: Sequence[float]) -> float:
    if len(values) <= 1:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float), ddof=1))


def covariance(x: Sequence[float], y: Sequence[float]) -> float:
    if len(x) != len(y) or len(x) <= 1:
        return 0.0
    return float(np.cov(np.asarray(x, dtype=float), np.asarray(y, dtype=float), ddof=1)[0, 1])


def variance(values: Sequence[float]) -> float:
    s = sample_std(values)
    return s * s


def ols_beta(portfolio_returns: Sequence[float], benchmark_returns: Sequence[float]) -> Optional[float]:
    """Slope of portfolio returns regressed on benchmark returns."""
    if len(portfolio_returns) != len(benchmark_returns) or len(portfolio_returns) <= 1:
        return None
    vb = variance(benchmark_returns)
    if vb == 0:
        return None
    return covariance(portfolio_returns, benchmark_returns) / vb


def rolling_window(values: Sequence[T], size: int) -> List[T]:
    """The trailing `size` elements (all of them when shorter)."""
    if len(values) <= size:
        return list(values)
    return list(values[len(values) - size:])
