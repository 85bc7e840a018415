import asyncio
from datetime import date
from typing import Awaitable, Callable, Dict, Optional, Tuple

from paperleague.repository.base import Repository


class ValueCache:
    """
    Per-run memo of "latest price / FX rate on or before a date".

    One instance belongs to a single pipeline run or read request. Concurrent
    lookups of the same key share one in-flight repository call, and entries
    are never invalidated, so a run sees a single consistent view.
    """

    def __init__(self, repository: Repository):
        self.repository = repository
        self._price: Dict[Tuple[str, date], "asyncio.Future[Optional[float]]"] = {}
        self._fx: Dict[Tuple[str, date], "asyncio.Future[Optional[float]]"] = {}
        self.lookups = 0

    async def price_on_or_before(self, instrument_id: str, on_date: date) -> Optional[float]:
        async def load() -> Optional[float]:
            point = await self.repository.get_price_on_or_before(instrument_id, on_date)
            return point.close if point else None

        return await self._memoized(self._price, (instrument_id, on_date), load)

    async def fx_on_or_before(self, pair: str, on_date: date) -> Optional[float]:
        async def load() -> Optional[float]:
            point = await self.repository.get_fx_on_or_before(pair, on_date)
            return point.rate if point else None

        return await self._memoized(self._fx, (pair, on_date), load)

    async def _memoized(
        self,
        store: Dict[Tuple[str, date], "asyncio.Future[Optional[float]]"],
        key: Tuple[str, date],
        load: Callable[[], Awaitable[Optional[float]]],
    ) -> Optional[float]:
        future = store.get(key)
        if future is None:
            self.lookups += 1
            future = asyncio.ensure_future(load())
            store[key] = future
        return await asyncio.shield(future)
