"""Tests for the provider registry, provider helpers and the fallback chain."""

from __future__ import annotations

import asyncio
from datetime import date

import httpx
import pytest

from paperleague.core.config import Settings
from paperleague.core.exceptions import ProviderConfigurationError, ProviderError, TransientProviderError
from paperleague.engine.types import Instrument
from paperleague.services.market_data import get_market_data_provider, parse_provider_tokens, resolve_providers
from paperleague.services.market_data.chain import ProviderChain, is_transient_error
from paperleague.services.market_data.mock_provider import MockProvider
from paperleague.services.market_data.twelve_data_provider import (
    TwelveDataProvider,
    parse_close_on_or_before,
    symbol_candidates as twelve_candidates,
)
from paperleague.services.market_data.yfinance_provider import YahooProvider, symbol_candidates as yahoo_candidates

from conftest import FakeProvider, make_chain

DAY = date(2026, 1, 5)


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestChain:
    def test_first_finite_value_wins(self, samsung) -> None:
        first = FakeProvider("A", default_close=None)
        second = FakeProvider("B", default_close=71_000.0)
        third = FakeProvider("C", default_close=1.0)

        result = asyncio.run(make_chain(first, second, third).resolve_close(samsung, DAY))

        assert result.value == 71_000.0
        assert result.used_provider == "B"
        assert [a.status for a in result.attempts] == ["error", "success"]
        assert result.attempts[0].reason == "No close price returned"
        assert third.calls == 0

    def test_unavailable_handles_are_recorded_and_skipped(self, samsung) -> None:
        provider = FakeProvider("YAHOO", default_close=100.0)

        result = asyncio.run(make_chain(provider, unavailable=("TWELVE",)).resolve_close(samsung, DAY))

        assert result.used_provider == "YAHOO"
        assert result.attempts[0].provider == "TWELVE"
        assert result.attempts[0].status == "unavailable"
        assert result.attempts[0].reason == "TWELVE offline"

    def test_transient_errors_are_retried_with_backoff(self, samsung) -> None:
        provider = FakeProvider(
            "A",
            default_close=100.0,
            errors=[ConnectionResetError("read ECONNRESET"), TransientProviderError("socket hang up")],
        )
        sleep = _RecordingSleep()
        chain = ProviderChain([make_chain(provider).handles[0]], retry_delays=[0.3, 0.9], sleep=sleep)

        result = asyncio.run(chain.resolve_close(samsung, DAY))

        assert result.value == 100.0
        assert provider.calls == 3
        assert sleep.delays == [0.3, 0.9]

    def test_retries_are_bounded(self, samsung) -> None:
        provider = FakeProvider("A", default_close=100.0, errors=[ConnectionError("fetch failed")] * 3)
        fallback = FakeProvider("B", default_close=55.0)

        result = asyncio.run(make_chain(provider, fallback).resolve_close(samsung, DAY))

        assert provider.calls == 3
        assert result.used_provider == "B"
        assert result.attempts[0].status == "error"

    def test_non_transient_errors_are_not_retried(self, samsung) -> None:
        provider = FakeProvider("A", default_close=100.0, errors=[ProviderError("symbol not found")])

        result = asyncio.run(make_chain(provider).resolve_close(samsung, DAY))

        assert provider.calls == 1
        assert result.value is None
        assert result.final_reason == "symbol not found"

    def test_non_finite_value_moves_on(self, samsung) -> None:
        result = asyncio.run(
            make_chain(FakeProvider("A", default_close=float("nan")), FakeProvider("B", default_close=2.0))
            .resolve_close(samsung, DAY)
        )
        assert result.used_provider == "B"

    def test_fx_resolution(self) -> None:
        provider = FakeProvider("A", fx={DAY: 1_431.5})

        result = asyncio.run(make_chain(provider).resolve_fx("USDKRW", DAY))
        missing = asyncio.run(make_chain(provider).resolve_fx("USDKRW", date(2026, 1, 6)))

        assert result.value == 1_431.5
        assert missing.value is None
        assert missing.final_reason == "No FX rate returned"


class TestTransientClassifier:
    @pytest.mark.parametrize(
        "exc",
        [
            ConnectionResetError("reset"),
            httpx.ConnectError("boom"),
            RuntimeError("UND_ERR_SOCKET"),
            RuntimeError("TypeError: fetch failed"),
        ],
    )
    def test_transient(self, exc) -> None:
        assert is_transient_error(exc)

    @pytest.mark.parametrize(
        "exc",
        [
            asyncio.TimeoutError(),
            httpx.ReadTimeout("socket read timed out"),
            ValueError("bad symbol"),
        ],
    )
    def test_final(self, exc) -> None:
        assert not is_transient_error(exc)


class TestRegistry:
    def test_tokens_are_normalized_aliased_and_deduplicated(self) -> None:
        assert parse_provider_tokens(" real, yahoo ,TWELVE,mock ") == (["TWELVE", "YAHOO", "MOCK"], [])
        assert parse_provider_tokens("") == (["TWELVE"], [])
        assert parse_provider_tokens("YAHOO,BOGUS") == (["YAHOO"], ["BOGUS"])

    def test_resolution_marks_unavailable_providers(self) -> None:
        config = Settings(MARKET_DATA_PROVIDERS="TWELVE,ALPHA,YAHOO", TWELVE_DATA_API_KEY="")

        resolution = resolve_providers(config)

        assert resolution.configured_chain == ["TWELVE", "ALPHA", "YAHOO"]
        twelve, alpha, yahoo = resolution.handles
        assert not twelve.available and "TWELVE_DATA_API_KEY" in twelve.init_error
        assert not alpha.available and "not implemented" in alpha.init_error
        assert isinstance(yahoo.provider, YahooProvider)

    def test_chain_list_wins_over_single_provider(self) -> None:
        config = Settings(MARKET_DATA_PROVIDERS="MOCK", MARKET_DATA_PROVIDER="YAHOO")
        assert resolve_providers(config).configured_chain == ["MOCK"]

    def test_invalid_tokens_raise(self) -> None:
        with pytest.raises(ProviderConfigurationError, match="BOGUS"):
            resolve_providers(Settings(MARKET_DATA_PROVIDERS="YAHOO,BOGUS"))

    def test_first_available_provider(self) -> None:
        config = Settings(MARKET_DATA_PROVIDERS="ALPHA,MOCK", TWELVE_DATA_API_KEY="")
        assert isinstance(get_market_data_provider(config), MockProvider)

        with pytest.raises(ProviderError, match="No available providers"):
            get_market_data_provider(Settings(MARKET_DATA_PROVIDERS="ALPHA"))


class TestProviders:
    def test_mock_provider_is_deterministic(self) -> None:
        provider = MockProvider()

        first = asyncio.run(provider.get_daily_close("AAPL", "US", DAY))
        second = asyncio.run(provider.get_daily_close("AAPL", "US", DAY))
        fx = asyncio.run(provider.get_fx_rate("USDKRW", DAY))

        assert first == second
        assert 40 < first < 520
        assert 1_270 < fx < 1_330
        assert asyncio.run(provider.get_fx_rate("EURKRW", DAY)) is None

    def test_twelve_data_symbol_candidates(self) -> None:
        assert twelve_candidates("005930", "KR") == ["005930:KRX"]
        assert twelve_candidates("SPY", "US", "SPY:NYSEARCA")[:3] == ["SPY:NYSEARCA", "SPY", "SPY:NASDAQ"]
        assert twelve_candidates("KS11", "INDEX") == ["KS11", "KOSPI", "KOSPI Composite Index"]

    def test_yahoo_symbol_candidates(self) -> None:
        assert yahoo_candidates("005930", "KR") == ["005930.KS", "005930.KQ", "005930"]
        assert yahoo_candidates("KS11", "INDEX") == ["^KS11", "KS11"]

    def test_parse_close_on_or_before(self) -> None:
        payload = {
            "values": [
                {"datetime": "2026-01-06", "close": "105.0"},
                {"datetime": "2026-01-05", "close": "not-a-number"},
                {"datetime": "2026-01-02", "close": "101.5"},
            ]
        }
        assert parse_close_on_or_before(payload, DAY) == 101.5
        assert parse_close_on_or_before({"status": "error"}, DAY) is None

    def test_twelve_data_without_key_is_a_provider_error(self) -> None:
        with pytest.raises(ProviderError):
            TwelveDataProvider(api_key="")

    def test_twelve_data_error_payload_tries_next_candidate(self, monkeypatch) -> None:
        provider = TwelveDataProvider(api_key="k")
        seen: list[str] = []

        async def fake_time_series(symbol: str, on_date: date):
            seen.append(symbol)
            if symbol == "SPY":
                return {"status": "error", "message": "symbol not found"}
            return {"values": [{"datetime": "2026-01-05", "close": "690.1"}]}

        monkeypatch.setattr(provider, "_time_series", fake_time_series)
        spy = Instrument(id="i-spy", symbol="SPY", market="US", currency="USD")

        close = asyncio.run(provider.get_daily_close(spy.symbol, spy.market, DAY))

        assert close == 690.1
        assert seen == ["SPY", "SPY:NASDAQ"]
