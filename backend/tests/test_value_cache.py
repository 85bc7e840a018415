"""Tests for the per-run price / FX memo."""

from __future__ import annotations

import asyncio
from datetime import date

from paperleague.engine.value_cache import ValueCache


def test_concurrent_lookups_share_one_round_trip(repo, samsung) -> None:
    repo.add_instrument(samsung)
    repo.add_price(samsung.id, date(2026, 1, 5), 70_000.0)
    cache = ValueCache(repo)

    async def scenario():
        return await asyncio.gather(
            *[cache.price_on_or_before(samsung.id, date(2026, 1, 6)) for _ in range(5)]
        )

    before = repo.read_count
    results = asyncio.run(scenario())

    assert results == [70_000.0] * 5
    assert repo.read_count - before == 1
    assert cache.lookups == 1


def test_missing_values_are_cached_too(repo) -> None:
    cache = ValueCache(repo)

    async def scenario():
        first = await cache.fx_on_or_before("USDKRW", date(2026, 1, 5))
        second = await cache.fx_on_or_before("USDKRW", date(2026, 1, 5))
        return first, second

    assert asyncio.run(scenario()) == (None, None)
    assert cache.lookups == 1


def test_entries_are_not_invalidated_mid_run(repo, samsung) -> None:
    repo.add_price(samsung.id, date(2026, 1, 5), 100.0)
    cache = ValueCache(repo)

    async def scenario():
        first = await cache.price_on_or_before(samsung.id, date(2026, 1, 5))
        repo.add_price(samsung.id, date(2026, 1, 5), 999.0)
        second = await cache.price_on_or_before(samsung.id, date(2026, 1, 5))
        return first, second

    assert asyncio.run(scenario()) == (100.0, 100.0)
