from abc import ABC, abstractmethod
from datetime import date
from typing import Optional


class MarketDataProvider(ABC):
    """Abstract base class for end-of-day market data providers."""

    name: str = "UNKNOWN"

    @abstractmethod
    async def get_daily_close(
        self,
        symbol: str,
        market: str,
        on_date: date,
        provider_symbol: Optional[str] = None,
    ) -> Optional[float]:
        """
        Latest daily close on or before on_date, in the instrument's currency.
        Returns None when the provider has nothing for the symbol.
        """
        pass

    @abstractmethod
    async def get_fx_rate(self, pair: str, on_date: date) -> Optional[float]:
        """Latest daily rate on or before on_date. Only USDKRW is supported."""
        pass


def unique_symbols(values) -> list:
    """Strip, drop empties and de-duplicate while keeping order."""
    seen = set()
    out = []
    for value in values:
        s = (value or "").strip()
        if not s or s in seen:
            continue
        seen.add(s)
        out.append(s)
    return out
