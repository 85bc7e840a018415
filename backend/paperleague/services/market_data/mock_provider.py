import math
from datetime import date
from typing import Optional

from paperleague.services.market_data.base import MarketDataProvider


def stable_hash(value: str) -> int:
    """32-bit rolling string hash; stable across processes, unlike hash()."""
    h = 0
    for ch in value:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def base_price(symbol: str, market: str) -> float:
    h = stable_hash(f"{market}:{symbol}")
    if market == "US":
        return 50 + h % 450
    if symbol == "KS11":
        return 2500 + h % 500
    return 20_000 + h % 200_000


class MockProvider(MarketDataProvider):
    """Deterministic prices for local runs and demos. Same inputs, same outputs."""

    name = "MOCK"

    async def get_daily_close(
        self,
        symbol: str,
        market: str,
        on_date: date,
        provider_symbol: Optional[str] = None,
    ) -> Optional[float]:
        key = on_date.isoformat()
        day = stable_hash(key) % 60
        seasonal = math.sin(day / 6) * 0.02
        drift = (stable_hash(f"{symbol}:{key}") % 200 - 100) / 10000
        return max(base_price(symbol, market) * (1 + seasonal + drift), 1.0)

    async def get_fx_rate(self, pair: str, on_date: date) -> Optional[float]:
        if pair != "USDKRW":
            return None
        key = on_date.isoformat()
        day = stable_hash(key) % 45
        noise = (stable_hash(f"fx:{key}") % 100 - 50) / 100
        return 1275 + day * 1.2 + noise
