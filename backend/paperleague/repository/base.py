from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional, Sequence, Tuple

from paperleague.engine.types import (
    DailySnapshot,
    FxPoint,
    FxRateRow,
    Instrument,
    JobRun,
    Participant,
    Portfolio,
    PricePoint,
    PriceRow,
    Trade,
)


class Repository(ABC):
    """
    Storage boundary for the valuation engine and the daily pipeline.

    Point lookups resolve to the latest row on or before the requested date.
    All writes are upserts keyed by natural key, except job runs which are
    append-only.
    """

    # Ledger
    @abstractmethod
    async def get_trades_for_portfolio(self, portfolio_id: str, as_of: date) -> List[Trade]:
        """Trades with trade_date <= as_of in ledger order (trade_date, created_at, id)."""

    # Prices / FX
    @abstractmethod
    async def get_price_on_or_before(self, instrument_id: str, on_date: date) -> Optional[PricePoint]:
        pass

    @abstractmethod
    async def get_fx_on_or_before(self, pair: str, on_date: date) -> Optional[FxPoint]:
        pass

    @abstractmethod
    async def get_price_series(self, instrument_id: str, start: date, end: date) -> List[PricePoint]:
        """Ascending by date, both ends inclusive."""

    @abstractmethod
    async def get_fx_series(self, pair: str, start: date, end: date) -> List[FxPoint]:
        """Ascending by date, both ends inclusive."""

    @abstractmethod
    async def upsert_prices(self, rows: Sequence[PriceRow]) -> None:
        pass

    @abstractmethod
    async def upsert_fx_rates(self, rows: Sequence[FxRateRow]) -> None:
        pass

    # Reference data
    @abstractmethod
    async def get_active_instruments(self) -> List[Instrument]:
        pass

    @abstractmethod
    async def get_benchmark_by_code(self, code: str) -> Optional[Instrument]:
        pass

    @abstractmethod
    async def get_participants_with_portfolios(self) -> List[Tuple[Participant, Portfolio]]:
        """Ordered by participant name."""

    @abstractmethod
    async def get_game_start_date(self) -> Optional[date]:
        """Game start stored in the settings table, if any."""

    # Snapshots
    @abstractmethod
    async def upsert_daily_snapshot(self, snapshot: DailySnapshot) -> None:
        pass

    @abstractmethod
    async def get_latest_snapshot(self, participant_id: str) -> Optional[DailySnapshot]:
        pass

    @abstractmethod
    async def get_snapshot_history(self, participant_id: str, from_date: Optional[date] = None) -> List[DailySnapshot]:
        """Ascending by date, starting at from_date when given."""

    @abstractmethod
    async def get_latest_snapshot_date(self) -> Optional[date]:
        pass

    # Audit
    @abstractmethod
    async def insert_job_run(self, job_run: JobRun) -> None:
        pass
