"""
PostgreSQL repository backed by the async SQLAlchemy session factory.

Writes use INSERT ... ON CONFLICT DO UPDATE against the named natural-key
constraints, so re-running a stage for the same date overwrites in place.
"""
import logging
from datetime import date
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.future import select

from paperleague.core.database import AsyncSessionLocal
from paperleague.engine import types
from paperleague.models import (
    AppSetting,
    DailySnapshot,
    FxRate,
    Instrument,
    JobRun,
    Participant,
    Portfolio,
    Price,
    Trade,
)
from paperleague.repository.base import Repository

logger = logging.getLogger(__name__)

GAME_START_SETTING_KEY = "game_start_date"

SNAPSHOT_FIELDS = (
    "portfolio_id",
    "nav_krw",
    "cash_krw",
    "holdings_value_krw",
    "realized_pnl_krw",
    "unrealized_pnl_krw",
    "total_return_pct",
    "spy_return_pct",
    "kospi_return_pct",
    "alpha_spy_pct",
    "alpha_kospi_pct",
    "ret_daily",
    "vol_ann_252",
    "sharpe_252",
    "mdd_to_date",
    "beta_spy_252",
    "beta_kospi_252",
)


def _optional_float(value) -> Optional[float]:
    return None if value is None else float(value)


def _to_instrument(row: Instrument) -> types.Instrument:
    return types.Instrument(
        id=row.id,
        symbol=row.symbol,
        market=row.market,
        currency=row.currency,
        name=row.name or "",
        provider_symbol=row.provider_symbol,
        asset_type=row.asset_type or "EQUITY",
        is_active=bool(row.is_active),
        is_benchmark=bool(row.is_benchmark),
        benchmark_code=row.benchmark_code,
    )


def _to_snapshot(row: DailySnapshot) -> types.DailySnapshot:
    return types.DailySnapshot(
        participant_id=row.participant_id,
        portfolio_id=row.portfolio_id,
        date=row.date,
        nav_krw=float(row.nav_krw),
        cash_krw=float(row.cash_krw),
        holdings_value_krw=float(row.holdings_value_krw),
        realized_pnl_krw=float(row.realized_pnl_krw),
        unrealized_pnl_krw=float(row.unrealized_pnl_krw),
        total_return_pct=float(row.total_return_pct),
        spy_return_pct=_optional_float(row.spy_return_pct),
        kospi_return_pct=_optional_float(row.kospi_return_pct),
        alpha_spy_pct=_optional_float(row.alpha_spy_pct),
        alpha_kospi_pct=_optional_float(row.alpha_kospi_pct),
        ret_daily=_optional_float(row.ret_daily),
        vol_ann_252=_optional_float(row.vol_ann_252),
        sharpe_252=_optional_float(row.sharpe_252),
        mdd_to_date=float(row.mdd_to_date),
        beta_spy_252=_optional_float(row.beta_spy_252),
        beta_kospi_252=_optional_float(row.beta_kospi_252),
    )


class SqlRepository(Repository):
    def __init__(self, session_factory=AsyncSessionLocal):
        self.session_factory = session_factory

    async def get_trades_for_portfolio(self, portfolio_id: str, as_of: date) -> List[types.Trade]:
        async with self.session_factory() as session:
            stmt = (
                select(Trade, Instrument)
                .join(Instrument, Instrument.id == Trade.instrument_id)
                .where(Trade.portfolio_id == portfolio_id, Trade.trade_date <= as_of)
                .order_by(Trade.trade_date, Trade.created_at, Trade.id)
            )
            result = await session.execute(stmt)
            return [
                types.Trade(
                    id=trade.id,
                    portfolio_id=trade.portfolio_id,
                    instrument=_to_instrument(instrument),
                    trade_date=trade.trade_date,
                    side=trade.side,
                    quantity=float(trade.quantity),
                    price=float(trade.price),
                    fee_rate=_optional_float(trade.fee_rate),
                    slippage_bps=_optional_float(trade.slippage_bps),
                    note=trade.note,
                    created_at=trade.created_at,
                )
                for trade, instrument in result.all()
            ]

    async def get_price_on_or_before(self, instrument_id: str, on_date: date) -> Optional[types.PricePoint]:
        async with self.session_factory() as session:
            stmt = (
                select(Price)
                .where(Price.instrument_id == instrument_id, Price.date <= on_date)
                .order_by(Price.date.desc())
                .limit(1)
            )
            row = (await session.execute(stmt)).scalars().first()
            if row is None:
                return None
            return types.PricePoint(date=row.date, close=float(row.close), source=row.source)

    async def get_fx_on_or_before(self, pair: str, on_date: date) -> Optional[types.FxPoint]:
        async with self.session_factory() as session:
            stmt = (
                select(FxRate)
                .where(FxRate.pair == pair, FxRate.date <= on_date)
                .order_by(FxRate.date.desc())
                .limit(1)
            )
            row = (await session.execute(stmt)).scalars().first()
            if row is None:
                return None
            return types.FxPoint(date=row.date, rate=float(row.rate), source=row.source)

    async def get_price_series(self, instrument_id: str, start: date, end: date) -> List[types.PricePoint]:
        async with self.session_factory() as session:
            stmt = (
                select(Price)
                .where(Price.instrument_id == instrument_id, Price.date >= start, Price.date <= end)
                .order_by(Price.date)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [types.PricePoint(date=r.date, close=float(r.close), source=r.source) for r in rows]

    async def get_fx_series(self, pair: str, start: date, end: date) -> List[types.FxPoint]:
        async with self.session_factory() as session:
            stmt = (
                select(FxRate)
                .where(FxRate.pair == pair, FxRate.date >= start, FxRate.date <= end)
                .order_by(FxRate.date)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [types.FxPoint(date=r.date, rate=float(r.rate), source=r.source) for r in rows]

    async def upsert_prices(self, rows: Sequence[types.PriceRow]) -> None:
        if not rows:
            return
        records = [
            {
                "instrument_id": r.instrument_id,
                "date": r.date,
                "close": r.close,
                "source": r.source,
                "provider_used": r.provider_used,
            }
            for r in rows
        ]
        async with self.session_factory() as session:
            try:
                stmt = insert(Price).values(records)
                stmt = stmt.on_conflict_do_update(
                    constraint="uq_prices_instrument_date",
                    set_={
                        "close": stmt.excluded.close,
                        "source": stmt.excluded.source,
                        "provider_used": stmt.excluded.provider_used,
                        "updated_at": func.now(),
                    },
                )
                await session.execute(stmt)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def upsert_fx_rates(self, rows: Sequence[types.FxRateRow]) -> None:
        if not rows:
            return
        records = [
            {
                "pair": r.pair,
                "date": r.date,
                "rate": r.rate,
                "source": r.source,
                "provider_used": r.provider_used,
            }
            for r in rows
        ]
        async with self.session_factory() as session:
            try:
                stmt = insert(FxRate).values(records)
                stmt = stmt.on_conflict_do_update(
                    constraint="uq_fx_rates_pair_date",
                    set_={
                        "rate": stmt.excluded.rate,
                        "source": stmt.excluded.source,
                        "provider_used": stmt.excluded.provider_used,
                        "updated_at": func.now(),
                    },
                )
                await session.execute(stmt)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def get_active_instruments(self) -> List[types.Instrument]:
        async with self.session_factory() as session:
            stmt = (
                select(Instrument)
                .where(Instrument.is_active.is_(True))
                .order_by(Instrument.market, Instrument.symbol)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_instrument(r) for r in rows]

    async def get_benchmark_by_code(self, code: str) -> Optional[types.Instrument]:
        async with self.session_factory() as session:
            stmt = select(Instrument).where(
                Instrument.benchmark_code == code,
                Instrument.is_active.is_(True),
            )
            row = (await session.execute(stmt)).scalars().first()
            return _to_instrument(row) if row else None

    async def get_participants_with_portfolios(self) -> List[Tuple[types.Participant, types.Portfolio]]:
        async with self.session_factory() as session:
            stmt = (
                select(Participant, Portfolio)
                .join(Portfolio, Portfolio.participant_id == Participant.id)
                .order_by(Participant.name)
            )
            result = await session.execute(stmt)
            return [
                (
                    types.Participant(
                        id=p.id,
                        name=p.name,
                        color_tag=p.color_tag or "",
                        starting_cash_krw=_optional_float(p.starting_cash_krw),
                    ),
                    types.Portfolio(
                        id=pf.id,
                        participant_id=pf.participant_id,
                        base_currency=pf.base_currency,
                        is_active=bool(pf.is_active),
                    ),
                )
                for p, pf in result.all()
            ]

    async def get_game_start_date(self) -> Optional[date]:
        async with self.session_factory() as session:
            stmt = select(AppSetting).where(AppSetting.key == GAME_START_SETTING_KEY)
            row = (await session.execute(stmt)).scalars().first()
            if row is None:
                return None
            try:
                return date.fromisoformat(row.value.strip())
            except ValueError:
                logger.warning(f"Ignoring malformed {GAME_START_SETTING_KEY} setting: {row.value!r}")
                return None

    async def upsert_daily_snapshot(self, snapshot: types.DailySnapshot) -> None:
        record = {
            "participant_id": snapshot.participant_id,
            "date": snapshot.date,
            **{name: getattr(snapshot, name) for name in SNAPSHOT_FIELDS},
        }
        async with self.session_factory() as session:
            try:
                stmt = insert(DailySnapshot).values(record)
                stmt = stmt.on_conflict_do_update(
                    constraint="uq_daily_snapshots_participant_date",
                    set_={
                        **{name: getattr(stmt.excluded, name) for name in SNAPSHOT_FIELDS},
                        "updated_at": func.now(),
                    },
                )
                await session.execute(stmt)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def get_latest_snapshot(self, participant_id: str) -> Optional[types.DailySnapshot]:
        async with self.session_factory() as session:
            stmt = (
                select(DailySnapshot)
                .where(DailySnapshot.participant_id == participant_id)
                .order_by(DailySnapshot.date.desc())
                .limit(1)
            )
            row = (await session.execute(stmt)).scalars().first()
            return _to_snapshot(row) if row else None

    async def get_snapshot_history(
        self, participant_id: str, from_date: Optional[date] = None
    ) -> List[types.DailySnapshot]:
        async with self.session_factory() as session:
            stmt = select(DailySnapshot).where(DailySnapshot.participant_id == participant_id)
            if from_date is not None:
                stmt = stmt.where(DailySnapshot.date >= from_date)
            stmt = stmt.order_by(DailySnapshot.date)
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_snapshot(r) for r in rows]

    async def get_latest_snapshot_date(self) -> Optional[date]:
        async with self.session_factory() as session:
            result = await session.execute(select(func.max(DailySnapshot.date)))
            return result.scalar()

    async def insert_job_run(self, job_run: types.JobRun) -> None:
        async with self.session_factory() as session:
            session.add(
                JobRun(
                    job_name=job_run.job_name,
                    target_date=job_run.target_date,
                    status=job_run.status,
                    metrics=job_run.metrics,
                    error_message=job_run.error_message,
                )
            )
            await session.commit()
