"""Tests for prospective trade checks."""

from __future__ import annotations

import asyncio
from datetime import date

import pytest

from paperleague.core.exceptions import MissingFxRateError, TradeValidationError
from paperleague.services.trade_validation import check_fields, check_trade_date, validate_trade

MONDAY = date(2026, 1, 5)
TODAY = date(2026, 1, 9)


def validate(repo, portfolio, participant, instrument, side, quantity, price, **kwargs):
    return asyncio.run(
        validate_trade(
            repo, portfolio, participant, instrument, kwargs.pop("trade_date", MONDAY),
            side, quantity, price, today=TODAY, **kwargs,
        )
    )


class TestFieldRules:
    @pytest.mark.parametrize("quantity", [0, -1, 1.5, None, float("nan")])
    def test_quantity_must_be_positive_integer(self, quantity) -> None:
        with pytest.raises(TradeValidationError, match="positive integer"):
            check_fields("BUY", quantity, 100.0)

    def test_close_ignores_quantity(self) -> None:
        check_fields("CLOSE", None, 100.0)

    @pytest.mark.parametrize("price", [0, -5, None, float("inf")])
    def test_price_must_be_positive(self, price) -> None:
        with pytest.raises(TradeValidationError, match="price"):
            check_fields("SELL", 1, price)

    def test_unknown_side(self) -> None:
        with pytest.raises(TradeValidationError, match="invalid side"):
            check_fields("SHORT", 1, 1.0)


class TestTradeDate:
    def test_future_dates_are_rejected(self) -> None:
        with pytest.raises(TradeValidationError, match="future"):
            check_trade_date(date(2026, 1, 12), "KR", today=TODAY)

    def test_weekends_and_holidays_are_rejected(self) -> None:
        with pytest.raises(TradeValidationError, match="business day"):
            check_trade_date(date(2026, 1, 3), "US", today=TODAY)
        # Martin Luther King Jr. Day closes US markets but not KRX
        with pytest.raises(TradeValidationError, match="US business day"):
            check_trade_date(date(2026, 1, 19), "US", today=date(2026, 1, 20))
        check_trade_date(date(2026, 1, 19), "KR", today=date(2026, 1, 20))


class TestPortfolioRules:
    def test_buy_within_cash(self, repo, portfolio, participant, samsung) -> None:
        check = validate(repo, portfolio, participant, samsung, "BUY", 10, 1_000, fee_rate=0.001)

        assert check.quantity == 10
        assert check.cost_krw == pytest.approx(10_010)

    def test_buy_beyond_cash(self, repo, portfolio, participant, samsung) -> None:
        with pytest.raises(TradeValidationError, match="Insufficient cash"):
            validate(repo, portfolio, participant, samsung, "BUY", 10_000, 1_000, slippage_bps=10)

    def test_sell_cannot_exceed_position(self, repo, portfolio, participant, samsung) -> None:
        repo.add_trade(portfolio.id, samsung, MONDAY, "BUY", 5, 1_000)

        with pytest.raises(TradeValidationError, match="cannot exceed"):
            validate(repo, portfolio, participant, samsung, "SELL", 6, 1_000)

    def test_close_resolves_quantity(self, repo, portfolio, participant, samsung) -> None:
        repo.add_trade(portfolio.id, samsung, MONDAY, "BUY", 5, 1_000)

        check = validate(repo, portfolio, participant, samsung, "CLOSE", None, 1_100, trade_date=date(2026, 1, 6))

        assert check.quantity == 5

    def test_close_without_position(self, repo, portfolio, participant, samsung) -> None:
        with pytest.raises(TradeValidationError, match="No position to CLOSE"):
            validate(repo, portfolio, participant, samsung, "CLOSE", None, 1_000)

    def test_usd_buy_needs_fx(self, repo, portfolio, participant, apple) -> None:
        with pytest.raises(MissingFxRateError):
            validate(repo, portfolio, participant, apple, "BUY", 1, 200)

        repo.add_fx("USDKRW", MONDAY, 1_400)
        check = validate(repo, portfolio, participant, apple, "BUY", 1, 200)
        assert check.cost_krw == pytest.approx(280_000)
