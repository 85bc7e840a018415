"""Unit tests for the numeric helpers behind the risk metrics."""

from __future__ import annotations

import pytest

from paperleague.engine.stats import covariance, mean, ols_beta, rolling_window, sample_std, variance


class TestMoments:
    def test_empty_inputs_are_zero(self) -> None:
        assert mean([]) == 0.0
        assert sample_std([]) == 0.0
        assert sample_std([0.5]) == 0.0

    def test_sample_std_uses_n_minus_one(self) -> None:
        # deviations from 2.5: squares sum to 5.0, / (4 - 1)
        assert sample_std([1, 2, 3, 4]) == pytest.approx((5.0 / 3) ** 0.5)
        assert variance([1, 2, 3, 4]) == pytest.approx(5.0 / 3)

    def test_covariance_length_mismatch(self) -> None:
        assert covariance([1, 2, 3], [1, 2]) == 0.0
        assert covariance([1, 2], [2, 4]) == pytest.approx(1.0)


class TestOlsBeta:
    def test_scaled_series_has_exact_beta(self) -> None:
        bench = [0.01, -0.02, 0.015, 0.003, -0.007]
        port = [2 * r for r in bench]
        assert ols_beta(port, bench) == pytest.approx(2.0)

    def test_flat_benchmark_has_no_beta(self) -> None:
        assert ols_beta([0.01, 0.02, 0.03], [0.01, 0.01, 0.01]) is None

    def test_too_short_or_mismatched(self) -> None:
        assert ols_beta([0.01], [0.02]) is None
        assert ols_beta([0.01, 0.02], [0.02]) is None


def test_rolling_window_keeps_trailing_elements() -> None:
    assert rolling_window([1, 2, 3, 4, 5], 3) == [3, 4, 5]
    assert rolling_window([1, 2], 3) == [1, 2]
