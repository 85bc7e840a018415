import logging
import math
from datetime import date
from typing import Any, Optional

import httpx

from paperleague.core.config import settings
from paperleague.core.exceptions import ProviderError, TransientProviderError
from paperleague.services.market_data.base import MarketDataProvider, unique_symbols

logger = logging.getLogger(__name__)

US_EXCHANGES = ("NASDAQ", "NYSE", "NYSEARCA", "ARCA", "AMEX")
KS11_ALIASES = ("KS11", "KOSPI", "KOSPI Composite Index")


def symbol_candidates(symbol: str, market: str, provider_symbol: Optional[str] = None) -> list:
    if market == "KR":
        default = f"{symbol}:KRX"
    else:
        default = symbol

    candidates = [provider_symbol, default]
    if market == "US":
        candidates += [symbol] + [f"{symbol}:{exchange}" for exchange in US_EXCHANGES]
    if market == "INDEX" and symbol == "KS11":
        candidates += list(KS11_ALIASES)
    return unique_symbols(candidates)


def parse_close_on_or_before(payload: dict[str, Any], on_date: date) -> Optional[float]:
    """First row (newest first) dated on or before on_date with a finite close."""
    values = payload.get("values")
    if not isinstance(values, list):
        return None
    target = on_date.isoformat()
    for row in values:
        row_date = str(row.get("datetime") or "")[:10]
        if len(row_date) != 10 or row_date > target:
            continue
        try:
            close = float(row.get("close"))
        except (TypeError, ValueError):
            continue
        if math.isfinite(close):
            return close
    return None


class TwelveDataProvider(MarketDataProvider):
    """Twelve Data REST API, /time_series endpoint."""

    name = "TWELVE"
    base_url = "https://api.twelvedata.com"

    def __init__(self, api_key: Optional[str] = None, timeout_sec: Optional[float] = None) -> None:
        self.api_key = settings.TWELVE_DATA_API_KEY if api_key is None else api_key
        if not self.api_key:
            raise ProviderError("TWELVE_DATA_API_KEY is missing for TWELVE provider.")
        self.timeout_sec = (
            settings.PROVIDER_TIMEOUT_SECONDS if timeout_sec is None else timeout_sec
        )

    async def get_daily_close(
        self,
        symbol: str,
        market: str,
        on_date: date,
        provider_symbol: Optional[str] = None,
    ) -> Optional[float]:
        last_error: Optional[str] = None

        for candidate in symbol_candidates(symbol, market, provider_symbol):
            payload = await self._time_series(candidate, on_date)
            if payload is None:
                last_error = f"[TwelveData] No response for {candidate}"
                continue
            if payload.get("status") == "error":
                last_error = f"[TwelveData] {candidate}: {payload.get('message') or 'Unknown provider error'}"
                continue
            close = parse_close_on_or_before(payload, on_date)
            if close is not None:
                return close
            last_error = f"[TwelveData] {candidate}: no close on/before {on_date}"

        if last_error:
            raise ProviderError(last_error)
        return None

    async def get_fx_rate(self, pair: str, on_date: date) -> Optional[float]:
        if pair != "USDKRW":
            return None
        payload = await self._time_series("USD/KRW", on_date)
        if payload is None:
            raise ProviderError("[TwelveData] USD/KRW: no response")
        if payload.get("status") == "error":
            raise ProviderError(f"[TwelveData] USD/KRW: {payload.get('message') or 'Unknown provider error'}")
        return parse_close_on_or_before(payload, on_date)

    async def _time_series(self, symbol: str, on_date: date) -> Optional[dict[str, Any]]:
        params = {
            "symbol": symbol,
            "interval": "1day",
            "end_date": on_date.isoformat(),
            "order": "DESC",
            "outputsize": "120",
            "apikey": self.api_key,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_sec) as client:
                resp = await client.get(f"{self.base_url}/time_series", params=params)
        except httpx.NetworkError as exc:
            raise TransientProviderError(f"[TwelveData] {symbol}: {exc}") from exc

        if resp.status_code != 200:
            logger.debug(f"Twelve Data returned HTTP {resp.status_code} for {symbol}")
            return None
        try:
            return resp.json()
        except ValueError:
            return None
