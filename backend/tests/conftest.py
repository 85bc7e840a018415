"""Shared pytest fixtures for paperleague tests."""

from __future__ import annotations

from datetime import date
from typing import Dict, Optional, Tuple

import pytest

from paperleague.engine.types import Instrument, Participant, Portfolio
from paperleague.repository.memory import InMemoryRepository
from paperleague.services.market_data import ProviderHandle
from paperleague.services.market_data.base import MarketDataProvider
from paperleague.services.market_data.chain import ProviderChain
from paperleague.services.pipeline import DailyPipeline, PipelineConfig

GAME_START = date(2026, 1, 2)
STARTING_CASH = 10_000_000.0


class FakeProvider(MarketDataProvider):
    """Scripted provider: values keyed by (symbol, date), or errors raised in order."""

    def __init__(
        self,
        name: str = "FAKE",
        closes: Optional[Dict[Tuple[str, date], float]] = None,
        fx: Optional[Dict[date, float]] = None,
        default_close: Optional[float] = None,
        errors: Optional[list] = None,
    ) -> None:
        self.name = name
        self.closes = closes or {}
        self.fx = fx or {}
        self.default_close = default_close
        self.errors = list(errors or [])
        self.calls = 0

    async def get_daily_close(self, symbol, market, on_date, provider_symbol=None):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.closes.get((symbol, on_date), self.default_close)

    async def get_fx_rate(self, pair, on_date):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.fx.get(on_date)


async def no_sleep(_delay: float) -> None:
    return None


def make_chain(*providers: MarketDataProvider, unavailable: Tuple[str, ...] = ()) -> ProviderChain:
    handles = [ProviderHandle(name=name, init_error=f"{name} offline") for name in unavailable]
    handles += [ProviderHandle(name=p.name, provider=p) for p in providers]
    return ProviderChain(handles, retry_delays=[0.3, 0.9], sleep=no_sleep)


@pytest.fixture
def samsung() -> Instrument:
    return Instrument(id="i-005930", symbol="005930", market="KR", currency="KRW", name="Samsung Electronics")


@pytest.fixture
def apple() -> Instrument:
    return Instrument(id="i-aapl", symbol="AAPL", market="US", currency="USD", name="Apple")


@pytest.fixture
def spy() -> Instrument:
    return Instrument(
        id="i-spy", symbol="SPY", market="US", currency="USD",
        is_benchmark=True, benchmark_code="SPY",
    )


@pytest.fixture
def kospi() -> Instrument:
    return Instrument(
        id="i-ks11", symbol="KS11", market="INDEX", currency="KRW",
        is_benchmark=True, benchmark_code="KOSPI",
    )


@pytest.fixture
def participant() -> Participant:
    return Participant(id="p-alice", name="Alice", color_tag="blue", starting_cash_krw=STARTING_CASH)


@pytest.fixture
def portfolio(participant) -> Portfolio:
    return Portfolio(id="pf-alice", participant_id=participant.id)


@pytest.fixture
def repo(participant, portfolio) -> InMemoryRepository:
    repository = InMemoryRepository(game_start_date=GAME_START)
    repository.add_participant(participant, portfolio)
    return repository


@pytest.fixture
def league_repo(repo, samsung, apple, spy, kospi) -> InMemoryRepository:
    """Repository with both benchmarks and two tradable instruments listed."""
    for instrument in (samsung, apple, spy, kospi):
        repo.add_instrument(instrument)
    return repo


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig(game_start_date=GAME_START, requested_provider="FAKE")


@pytest.fixture
def make_pipeline(league_repo, pipeline_config):
    def _make(*providers: MarketDataProvider, unavailable: Tuple[str, ...] = ()) -> DailyPipeline:
        return DailyPipeline(league_repo, make_chain(*providers, unavailable=unavailable), pipeline_config)

    return _make
