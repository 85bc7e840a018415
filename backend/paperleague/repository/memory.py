"""
In-process repository.

Keeps every table in dictionaries keyed by natural key, with the same ordering
and on-or-before semantics as the SQL repository. Used for dry runs and tests.
"""
import copy
from datetime import date, datetime
from itertools import count
from typing import Dict, List, Optional, Sequence, Tuple

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
from paperleague.repository.base import Repository


class InMemoryRepository(Repository):
    def __init__(self, game_start_date: Optional[date] = None):
        self.game_start_date = game_start_date
        self.instruments: Dict[str, Instrument] = {}
        self.participants: Dict[str, Participant] = {}
        self.portfolios: Dict[str, Portfolio] = {}
        self.trades: List[Trade] = []
        self.prices: Dict[Tuple[str, date], PriceRow] = {}
        self.fx_rates: Dict[Tuple[str, date], FxRateRow] = {}
        self.snapshots: Dict[Tuple[str, date], DailySnapshot] = {}
        self.job_runs: List[JobRun] = []
        self.read_count = 0
        self._trade_ids = count(1)

    # Seeding helpers
    def add_instrument(self, instrument: Instrument) -> Instrument:
        self.instruments[instrument.id] = instrument
        return instrument

    def add_participant(self, participant: Participant, portfolio: Portfolio) -> None:
        self.participants[participant.id] = participant
        self.portfolios[portfolio.id] = portfolio

    def add_trade(self, portfolio_id: str, instrument: Instrument, trade_date: date, side: str,
                  quantity: float, price: float, fee_rate: Optional[float] = None,
                  slippage_bps: Optional[float] = None, note: Optional[str] = None) -> Trade:
        trade_id = next(self._trade_ids)
        trade = Trade(
            id=trade_id,
            portfolio_id=portfolio_id,
            instrument=instrument,
            trade_date=trade_date,
            side=side,
            quantity=quantity,
            price=price,
            fee_rate=fee_rate,
            slippage_bps=slippage_bps,
            note=note,
            created_at=datetime(2000, 1, 1).replace(microsecond=trade_id % 1_000_000),
        )
        self.trades.append(trade)
        return trade

    def add_price(self, instrument_id: str, on_date: date, close: float,
                  source: str = "provider") -> None:
        self.prices[(instrument_id, on_date)] = PriceRow(instrument_id, on_date, close, source)

    def add_fx(self, pair: str, on_date: date, rate: float, source: str = "provider") -> None:
        self.fx_rates[(pair, on_date)] = FxRateRow(pair, on_date, rate, source)

    # Ledger
    async def get_trades_for_portfolio(self, portfolio_id: str, as_of: date) -> List[Trade]:
        self.read_count += 1
        rows = [t for t in self.trades if t.portfolio_id == portfolio_id and t.trade_date <= as_of]
        return sorted(rows, key=lambda t: (t.trade_date, t.created_at or datetime.min, t.id))

    # Prices / FX
    async def get_price_on_or_before(self, instrument_id: str, on_date: date) -> Optional[PricePoint]:
        self.read_count += 1
        candidates = [r for (iid, d), r in self.prices.items() if iid == instrument_id and d <= on_date]
        if not candidates:
            return None
        row = max(candidates, key=lambda r: r.date)
        return PricePoint(date=row.date, close=row.close, source=row.source)

    async def get_fx_on_or_before(self, pair: str, on_date: date) -> Optional[FxPoint]:
        self.read_count += 1
        candidates = [r for (p, d), r in self.fx_rates.items() if p == pair and d <= on_date]
        if not candidates:
            return None
        row = max(candidates, key=lambda r: r.date)
        return FxPoint(date=row.date, rate=row.rate, source=row.source)

    async def get_price_series(self, instrument_id: str, start: date, end: date) -> List[PricePoint]:
        self.read_count += 1
        rows = sorted(
            (r for (iid, d), r in self.prices.items() if iid == instrument_id and start <= d <= end),
            key=lambda r: r.date,
        )
        return [PricePoint(date=r.date, close=r.close, source=r.source) for r in rows]

    async def get_fx_series(self, pair: str, start: date, end: date) -> List[FxPoint]:
        self.read_count += 1
        rows = sorted(
            (r for (p, d), r in self.fx_rates.items() if p == pair and start <= d <= end),
            key=lambda r: r.date,
        )
        return [FxPoint(date=r.date, rate=r.rate, source=r.source) for r in rows]

    async def upsert_prices(self, rows: Sequence[PriceRow]) -> None:
        for row in rows:
            self.prices[(row.instrument_id, row.date)] = row

    async def upsert_fx_rates(self, rows: Sequence[FxRateRow]) -> None:
        for row in rows:
            self.fx_rates[(row.pair, row.date)] = row

    # Reference data
    async def get_active_instruments(self) -> List[Instrument]:
        return [i for i in self.instruments.values() if i.is_active]

    async def get_benchmark_by_code(self, code: str) -> Optional[Instrument]:
        for instrument in self.instruments.values():
            if instrument.benchmark_code == code and instrument.is_active:
                return instrument
        return None

    async def get_participants_with_portfolios(self) -> List[Tuple[Participant, Portfolio]]:
        out = []
        for participant in sorted(self.participants.values(), key=lambda p: p.name):
            portfolio = next(
                (p for p in self.portfolios.values() if p.participant_id == participant.id),
                None,
            )
            if portfolio is not None:
                out.append((participant, portfolio))
        return out

    async def get_game_start_date(self) -> Optional[date]:
        return self.game_start_date

    # Snapshots
    async def upsert_daily_snapshot(self, snapshot: DailySnapshot) -> None:
        self.snapshots[(snapshot.participant_id, snapshot.date)] = copy.copy(snapshot)

    async def get_latest_snapshot(self, participant_id: str) -> Optional[DailySnapshot]:
        history = await self.get_snapshot_history(participant_id)
        return history[-1] if history else None

    async def get_snapshot_history(self, participant_id: str, from_date: Optional[date] = None) -> List[DailySnapshot]:
        self.read_count += 1
        rows = [
            s for (pid, d), s in self.snapshots.items()
            if pid == participant_id and (from_date is None or d >= from_date)
        ]
        return sorted(rows, key=lambda s: s.date)

    async def get_latest_snapshot_date(self) -> Optional[date]:
        if not self.snapshots:
            return None
        return max(d for (_, d) in self.snapshots)

    # Audit
    async def insert_job_run(self, job_run: JobRun) -> None:
        self.job_runs.append(job_run)
