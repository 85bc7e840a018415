"""
Daily Pipeline Orchestrator.

Runs the three end-of-day stages for a target date:

1. update_prices   - one close per active instrument through the provider chain,
                     falling back to the last stored close (carry_forward)
2. update_fx       - the configured FX pair, same fallback rule
3. generate_snapshots - ledger replay + risk metrics per participant

Each stage catches its own failures, writes exactly one JobRun row and returns a
result object; a failed stage never stops the next one. Writes inside a stage
are sequential in listing order, and all of them are natural-key upserts, so a
stage can be re-run for the same date any number of times.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from paperleague.core.calendar import date_range
from paperleague.core.config import Settings, settings as default_settings
from paperleague.core.exceptions import PipelinePreconditionError
from paperleague.engine.benchmarks import build_benchmark_series
from paperleague.engine.ledger import LedgerReplayEngine
from paperleague.engine.risk import RiskMetricsComputer
from paperleague.engine.snapshot import SnapshotBuilder
from paperleague.engine.types import BenchmarkSeries, FxRateRow, JobRun, JobStatus, PriceRow
from paperleague.engine.value_cache import ValueCache
from paperleague.repository.base import Repository
from paperleague.services.market_data.chain import ProviderChain

logger = logging.getLogger(__name__)

JOB_UPDATE_PRICES = "update_prices"
JOB_UPDATE_FX = "update_fx"
JOB_GENERATE_SNAPSHOTS = "generate_snapshots"

BACKFILL_KINDS = ("prices", "fx", "snapshots", "all")

# Benchmark closes are read from the beginning of time so the carry seeds the first day
HISTORY_START = date(1900, 1, 1)


@dataclass
class PipelineConfig:
    game_start_date: date
    fx_pair: str = "USDKRW"
    benchmark_codes: Sequence[str] = ("SPY", "KOSPI")
    requested_provider: str = "TWELVE"
    rolling_window: int = 252
    min_observations: int = 60
    trading_days_per_year: int = 252

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "PipelineConfig":
        config = config or default_settings
        return cls(
            game_start_date=config.GAME_START_DATE,
            fx_pair=config.FX_PAIR,
            benchmark_codes=tuple(config.BENCHMARK_CODES),
            requested_provider=config.requested_providers_raw,
            rolling_window=config.ROLLING_WINDOW,
            min_observations=config.MIN_OBSERVATIONS,
            trading_days_per_year=config.TRADING_DAYS_PER_YEAR,
        )


def tri_state(failed: int, total: int, issues: int = 0) -> JobStatus:
    """success with no issues, failed when nothing succeeded, partial otherwise."""
    if failed == 0 and issues == 0:
        return "success"
    if failed < total:
        return "partial"
    return "failed"


@dataclass
class PriceUpdateResult:
    target_date: date
    status: JobStatus
    rows: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class FxUpdateResult:
    target_date: date
    status: JobStatus
    rate: Optional[float] = None
    failure: Optional[str] = None
    warning: Optional[str] = None


@dataclass
class SnapshotRunResult:
    target_date: date
    status: JobStatus
    succeeded: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)
    valuation_warnings: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class DailyRunResult:
    target_date: date
    prices: PriceUpdateResult
    fx: FxUpdateResult
    snapshots: SnapshotRunResult

    @property
    def status(self) -> JobStatus:
        statuses = {self.prices.status, self.fx.status, self.snapshots.status}
        if statuses == {"success"}:
            return "success"
        if statuses == {"failed"}:
            return "failed"
        return "partial"


class DailyPipeline:
    def __init__(
        self,
        repository: Repository,
        chain: ProviderChain,
        config: Optional[PipelineConfig] = None,
    ):
        self.repository = repository
        self.chain = chain
        self.config = config or PipelineConfig.from_settings()
        self.ledger = LedgerReplayEngine(repository, fx_pair=self.config.fx_pair)
        self.risk = RiskMetricsComputer(
            repository,
            window=self.config.rolling_window,
            min_obs=self.config.min_observations,
            periods_per_year=self.config.trading_days_per_year,
        )
        self.snapshots = SnapshotBuilder(self.ledger, self.risk)

    def _chain_metrics(self) -> Dict[str, Any]:
        return {
            "requested_provider": self.config.requested_provider,
            "configured_chain": self.chain.names,
            "invalid_provider_tokens": [],
        }

    async def _log_job(
        self,
        job_name: str,
        target_date: date,
        status: JobStatus,
        metrics: Dict[str, Any],
        error_message: Optional[str] = None,
    ) -> None:
        try:
            await self.repository.insert_job_run(
                JobRun(
                    job_name=job_name,
                    target_date=target_date,
                    status=status,
                    metrics=metrics,
                    error_message=error_message,
                )
            )
        except Exception as e:
            # The audit row must never fail the stage it describes
            logger.error(f"Failed to write job run for {job_name} {target_date}: {e}")

    # Stage 1
    async def update_prices_for_date(self, target_date: date) -> PriceUpdateResult:
        try:
            instruments = await self.repository.get_active_instruments()
            rows: List[PriceRow] = []
            failures: List[Dict[str, Any]] = []
            warnings: List[Dict[str, Any]] = []
            provider_usage: Dict[str, int] = {}
            kept: List[str] = []

            for inst in instruments:
                live = await self.chain.resolve_close(inst, target_date)
                if live.ok:
                    used = live.used_provider or "UNKNOWN"
                    provider_usage[used] = provider_usage.get(used, 0) + 1
                    rows.append(PriceRow(inst.id, target_date, live.value, "provider", live.used_provider))
                    continue

                fallback = await self.repository.get_price_on_or_before(inst.id, target_date)
                if fallback is not None and fallback.date == target_date and fallback.source == "provider":
                    # Same-day provider close from an earlier run stays as is
                    kept.append(inst.symbol)
                    logger.info(f"{inst.symbol} {target_date}: providers failed, keeping stored provider close")
                    continue
                if fallback is not None:
                    rows.append(PriceRow(inst.id, target_date, fallback.close, "carry_forward"))
                    warnings.append({
                        "symbol": inst.symbol,
                        "reason": live.final_reason or "All providers failed",
                        "fallback_date": fallback.date.isoformat(),
                        "fallback_close": fallback.close,
                        "provider_attempts": [a.to_dict() for a in live.attempts],
                    })
                    logger.warning(f"{inst.symbol} {target_date}: carrying forward close from {fallback.date}")
                else:
                    failures.append({
                        "symbol": inst.symbol,
                        "reason": live.final_reason or "No provider data and no historical fallback",
                    })
                    logger.warning(f"{inst.symbol} {target_date}: no price and no history")

            if rows:
                await self.repository.upsert_prices(rows)

            status = tri_state(len(failures), len(instruments), len(warnings))
            if failures:
                error_message = f"Failed symbols: {len(failures)}"
            elif warnings:
                error_message = f"Warnings (carry-forward): {len(warnings)}"
            else:
                error_message = None

            await self._log_job(
                JOB_UPDATE_PRICES,
                target_date,
                status,
                {
                    **self._chain_metrics(),
                    "fallback_used": bool(warnings),
                    "total_instruments": len(instruments),
                    "succeeded": len(rows) + len(kept),
                    "kept_provider_rows": kept,
                    "failed": len(failures),
                    "warnings": len(warnings),
                    "provider_usage": provider_usage,
                    "warning_details": warnings,
                    "failures": failures,
                },
                error_message,
            )
            logger.info(
                f"update_prices {target_date}: {status} "
                f"({len(rows)} rows, {len(warnings)} carried forward, {len(failures)} failed)"
            )
            return PriceUpdateResult(target_date, status, len(rows), failures, warnings)
        except Exception as e:
            logger.exception(f"update_prices {target_date} failed")
            await self._log_job(JOB_UPDATE_PRICES, target_date, "failed", {"fatal": True}, str(e))
            return PriceUpdateResult(target_date, "failed", 0, [{"symbol": "*", "reason": str(e)}])

    # Stage 2
    async def update_fx_for_date(self, target_date: date) -> FxUpdateResult:
        pair = self.config.fx_pair
        try:
            status: JobStatus = "success"
            failure = None
            warning = None
            rate = None

            live = await self.chain.resolve_fx(pair, target_date)
            if live.ok:
                rate = live.value
                await self.repository.upsert_fx_rates(
                    [FxRateRow(pair, target_date, rate, "provider", live.used_provider)]
                )
            else:
                fallback = await self.repository.get_fx_on_or_before(pair, target_date)
                if fallback is not None and fallback.date == target_date and fallback.source == "provider":
                    rate = fallback.rate
                    logger.info(f"{pair} {target_date}: providers failed, keeping stored provider rate")
                elif fallback is not None:
                    rate = fallback.rate
                    status = "partial"
                    warning = f"Carry-forward FX from {fallback.date.isoformat()}"
                    await self.repository.upsert_fx_rates(
                        [FxRateRow(pair, target_date, rate, "carry_forward")]
                    )
                else:
                    status = "failed"
                    failure = live.final_reason or "No FX rate returned and no historical fallback"

            await self._log_job(
                JOB_UPDATE_FX,
                target_date,
                status,
                {
                    **self._chain_metrics(),
                    "used_provider": live.used_provider,
                    "fallback_used": status == "partial",
                    "fallback_reason": warning or live.final_reason,
                    "pair": pair,
                    "rate": rate,
                    "provider_attempts": [a.to_dict() for a in live.attempts],
                },
                failure or warning,
            )
            logger.info(f"update_fx {target_date}: {status} ({pair}={rate})")
            return FxUpdateResult(target_date, status, rate, failure, warning)
        except Exception as e:
            logger.exception(f"update_fx {target_date} failed")
            await self._log_job(JOB_UPDATE_FX, target_date, "failed", {"fatal": True}, str(e))
            return FxUpdateResult(target_date, "failed", failure=str(e))

    # Stage 3
    async def game_start_date(self) -> date:
        stored = await self.repository.get_game_start_date()
        return stored or self.config.game_start_date

    async def build_benchmark_context(self, start_date: date, end_date: date) -> Dict[str, BenchmarkSeries]:
        benchmarks = {}
        for code in self.config.benchmark_codes:
            instrument = await self.repository.get_benchmark_by_code(code)
            if instrument is None:
                raise PipelinePreconditionError(f"{code} benchmark instrument missing.")
            prices = await self.repository.get_price_series(instrument.id, HISTORY_START, end_date)
            benchmarks[code] = build_benchmark_series(code, start_date, end_date, prices)
        return benchmarks

    async def generate_snapshots_for_date(self, target_date: date) -> SnapshotRunResult:
        try:
            game_start = await self.game_start_date()
            if target_date < game_start:
                reason = f"target_date ({target_date}) is before GAME_START_DATE ({game_start})"
                await self._log_job(
                    JOB_GENERATE_SNAPSHOTS,
                    target_date,
                    "failed",
                    {"game_start_date": game_start.isoformat()},
                    reason,
                )
                logger.warning(reason)
                return SnapshotRunResult(
                    target_date, "failed", failures=[{"participant_id": "-", "reason": reason}]
                )

            participants = await self.repository.get_participants_with_portfolios()
            benchmarks = await self.build_benchmark_context(game_start, target_date)
            cache = ValueCache(self.repository)

            failures: List[Dict[str, Any]] = []
            valuation_warnings: List[Dict[str, Any]] = []
            succeeded = 0

            for participant, portfolio in participants:
                try:
                    result = await self.snapshots.build(
                        participant, portfolio, target_date, benchmarks, game_start, cache
                    )
                    await self.repository.upsert_daily_snapshot(result.snapshot)
                    succeeded += 1
                    if result.state.unpriced_instruments:
                        valuation_warnings.append({
                            "participant_id": participant.id,
                            "marked_at_cost": list(result.state.unpriced_instruments),
                        })
                except Exception as e:
                    logger.warning(f"Snapshot failed for participant {participant.id} on {target_date}: {e}")
                    failures.append({"participant_id": participant.id, "reason": str(e)})

            status = tri_state(len(failures), len(participants))
            await self._log_job(
                JOB_GENERATE_SNAPSHOTS,
                target_date,
                status,
                {
                    "participants": len(participants),
                    "succeeded": succeeded,
                    "failed": len(failures),
                    "failures": failures,
                    "valuation_warnings": valuation_warnings,
                },
                f"Failed participants: {len(failures)}" if failures else None,
            )
            logger.info(
                f"generate_snapshots {target_date}: {status} "
                f"({succeeded}/{len(participants)} participants)"
            )
            return SnapshotRunResult(target_date, status, succeeded, failures, valuation_warnings)
        except Exception as e:
            logger.exception(f"generate_snapshots {target_date} failed")
            await self._log_job(JOB_GENERATE_SNAPSHOTS, target_date, "failed", {"fatal": True}, str(e))
            return SnapshotRunResult(
                target_date, "failed", failures=[{"participant_id": "*", "reason": str(e)}]
            )

    async def run_daily_pipeline(self, target_date: date) -> DailyRunResult:
        logger.info(f"Running daily pipeline for {target_date}")
        prices = await self.update_prices_for_date(target_date)
        fx = await self.update_fx_for_date(target_date)
        snapshots = await self.generate_snapshots_for_date(target_date)
        return DailyRunResult(target_date, prices, fx, snapshots)

    async def backfill(self, kind: str, start_date: date, end_date: date) -> Dict[str, list]:
        """
        Re-run stage(s) for every calendar day in [start_date, end_date].

        "all" runs every price day, then every FX day, then every snapshot day,
        so snapshots see the complete backfilled market data.
        """
        if kind not in BACKFILL_KINDS:
            raise ValueError(f"Unknown backfill kind {kind!r}; expected one of {', '.join(BACKFILL_KINDS)}")

        days = date_range(start_date, end_date)
        logger.info(f"Backfilling {kind} for {len(days)} day(s) {start_date}..{end_date}")
        out: Dict[str, list] = {}

        if kind in ("prices", "all"):
            out["prices"] = [await self.update_prices_for_date(d) for d in days]
        if kind in ("fx", "all"):
            out["fx"] = [await self.update_fx_for_date(d) for d in days]
        if kind in ("snapshots", "all"):
            out["snapshots"] = [await self.generate_snapshots_for_date(d) for d in days]
        return out


def build_daily_pipeline(repository: Optional[Repository] = None, config: Optional[Settings] = None) -> DailyPipeline:
    """Production wiring: SQL repository and the provider chain from settings."""
    from paperleague.repository.sql import SqlRepository
    from paperleague.services.market_data import resolve_providers

    config = config or default_settings
    resolution = resolve_providers(config)
    chain = ProviderChain(resolution.handles, retry_delays=config.PROVIDER_RETRY_DELAYS)
    return DailyPipeline(
        repository or SqlRepository(),
        chain,
        PipelineConfig.from_settings(config),
    )
