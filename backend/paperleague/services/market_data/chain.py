"""
Provider Fallback Chain.

Tries each configured provider in order and stops at the first finite value.
Transient network failures are retried on the same provider with a fixed
backoff schedule before moving on; any other error, or an empty answer, moves
straight to the next provider. Every step is recorded as a ProviderAttempt so
the daily jobs can report exactly why a value fell back to carry-forward.
"""
import asyncio
import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Awaitable, Callable, List, Optional, Sequence

import httpx

from paperleague.core.config import settings
from paperleague.core.exceptions import TransientProviderError
from paperleague.engine.types import Instrument
from paperleague.services.market_data import ProviderHandle

logger = logging.getLogger(__name__)

TRANSIENT_MARKERS = ("econnreset", "und_err_socket", "fetch failed", "socket", "connection reset")


def is_transient_error(exc: BaseException) -> bool:
    if isinstance(exc, (TransientProviderError, ConnectionError, httpx.NetworkError)):
        return True
    # Timeouts are final
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return False
    text = str(exc).lower()
    return any(marker in text for marker in TRANSIENT_MARKERS)


@dataclass
class ProviderAttempt:
    provider: str
    status: str  # success, error, unavailable
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        out = asdict(self)
        if self.reason is None:
            out.pop("reason")
        return out


@dataclass
class ChainResult:
    value: Optional[float]
    used_provider: Optional[str]
    attempts: List[ProviderAttempt] = field(default_factory=list)
    final_reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.value is not None


class ProviderChain:
    def __init__(
        self,
        handles: Sequence[ProviderHandle],
        retry_delays: Optional[Sequence[float]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.handles = list(handles)
        self.retry_delays = list(settings.PROVIDER_RETRY_DELAYS if retry_delays is None else retry_delays)
        self.sleep = sleep

    @property
    def names(self) -> List[str]:
        return [h.name for h in self.handles]

    async def resolve_close(self, instrument: Instrument, on_date: date) -> ChainResult:
        return await self._resolve(
            lambda provider: provider.get_daily_close(
                instrument.symbol,
                instrument.market,
                on_date,
                instrument.provider_symbol,
            ),
            empty_reason="No close price returned",
            label=f"{instrument.symbol} {on_date}",
        )

    async def resolve_fx(self, pair: str, on_date: date) -> ChainResult:
        return await self._resolve(
            lambda provider: provider.get_fx_rate(pair, on_date),
            empty_reason="No FX rate returned",
            label=f"{pair} {on_date}",
        )

    async def _resolve(self, call, empty_reason: str, label: str) -> ChainResult:
        attempts: List[ProviderAttempt] = []

        for handle in self.handles:
            if handle.provider is None:
                attempts.append(
                    ProviderAttempt(handle.name, "unavailable", handle.init_error or "Provider is unavailable")
                )
                continue

            try:
                value = await self._call_with_retry(handle, call, label)
            except Exception as exc:
                logger.warning(f"Provider {handle.name} failed for {label}: {exc}")
                attempts.append(ProviderAttempt(handle.name, "error", str(exc) or type(exc).__name__))
                continue

            if value is not None and math.isfinite(value):
                attempts.append(ProviderAttempt(handle.name, "success"))
                return ChainResult(value=float(value), used_provider=handle.name, attempts=attempts)
            attempts.append(ProviderAttempt(handle.name, "error", empty_reason))

        final_reason = next((a.reason for a in reversed(attempts) if a.reason), None)
        return ChainResult(value=None, used_provider=None, attempts=attempts, final_reason=final_reason)

    async def _call_with_retry(self, handle: ProviderHandle, call, label: str):
        for attempt in range(len(self.retry_delays) + 1):
            try:
                return await call(handle.provider)
            except Exception as exc:
                if attempt >= len(self.retry_delays) or not is_transient_error(exc):
                    raise
                delay = self.retry_delays[attempt]
                logger.info(f"Transient error from {handle.name} for {label}, retrying in {delay}s: {exc}")
                await self.sleep(delay)
        return None
