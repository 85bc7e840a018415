import asyncio
import logging
import math
from datetime import date, timedelta
from typing import Optional

import pandas as pd
import yfinance as yf

from paperleague.core.config import settings
from paperleague.core.exceptions import ProviderError
from paperleague.services.market_data.base import MarketDataProvider, unique_symbols

logger = logging.getLogger(__name__)

LOOKBACK_DAYS = 180


def symbol_candidates(symbol: str, market: str) -> list:
    if market == "US":
        return unique_symbols([symbol, symbol.upper()])
    if market == "KR":
        return unique_symbols([f"{symbol}.KS", f"{symbol}.KQ", symbol])
    if market == "INDEX" and symbol == "KS11":
        return unique_symbols(["^KS11", "KS11"])
    return unique_symbols([symbol])


def close_on_or_before(history: pd.DataFrame, on_date: date) -> Optional[float]:
    """Latest finite Close whose exchange-local date is on or before on_date."""
    if history is None or history.empty or "Close" not in history:
        return None
    closes = history["Close"].dropna()
    for ts, value in reversed(list(closes.items())):
        if pd.Timestamp(ts).date() > on_date:
            continue
        close = float(value)
        if math.isfinite(close):
            return close
    return None


class YahooProvider(MarketDataProvider):
    """Yahoo Finance through yfinance. Calls run in a worker thread."""

    name = "YAHOO"

    def __init__(self, timeout_sec: Optional[float] = None) -> None:
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

        for candidate in symbol_candidates(symbol, market):
            history = await self._history(candidate, on_date)
            if history is None or history.empty:
                last_error = f"[Yahoo] No response for {candidate}"
                continue
            close = close_on_or_before(history, on_date)
            if close is not None:
                return close
            last_error = f"[Yahoo] {candidate}: no close on/before {on_date}"

        if last_error:
            raise ProviderError(last_error)
        return None

    async def get_fx_rate(self, pair: str, on_date: date) -> Optional[float]:
        if pair != "USDKRW":
            return None
        history = await self._history("KRW=X", on_date)
        if history is None or history.empty:
            raise ProviderError("[Yahoo] KRW=X: no response")
        close = close_on_or_before(history, on_date)
        if close is None:
            raise ProviderError(f"[Yahoo] KRW=X: no close on/before {on_date}")
        return close

    async def _history(self, ticker: str, on_date: date) -> Optional[pd.DataFrame]:
        start = on_date - timedelta(days=LOOKBACK_DAYS)
        # yfinance treats end as exclusive
        end = on_date + timedelta(days=2)

        def fetch() -> pd.DataFrame:
            return yf.Ticker(ticker).history(
                start=start.isoformat(),
                end=end.isoformat(),
                interval="1d",
                auto_adjust=False,
                timeout=self.timeout_sec,
            )

        try:
            return await asyncio.wait_for(asyncio.to_thread(fetch), timeout=self.timeout_sec)
        except asyncio.TimeoutError as exc:
            raise ProviderError(f"[Yahoo] {ticker}: timed out after {self.timeout_sec}s") from exc
