"""Tests for leaderboard ranking and per-participant enrichment."""

from __future__ import annotations

import asyncio
from datetime import date

import pytest

from paperleague.engine.ledger import LedgerReplayEngine
from paperleague.engine.types import DailySnapshot, Participant, Portfolio
from paperleague.engine.value_cache import ValueCache
from paperleague.services.leaderboard import LeaderboardService, top_n, turnover_20d

DAY1 = date(2026, 1, 5)
DAY2 = date(2026, 1, 6)


def snapshot(participant_id: str, portfolio_id: str, day: date, nav: float, cash: float,
             total_return: float, sharpe=None) -> DailySnapshot:
    return DailySnapshot(
        participant_id=participant_id,
        portfolio_id=portfolio_id,
        date=day,
        nav_krw=nav,
        cash_krw=cash,
        holdings_value_krw=nav - cash,
        realized_pnl_krw=0.0,
        unrealized_pnl_krw=0.0,
        total_return_pct=total_return,
        spy_return_pct=None,
        kospi_return_pct=None,
        alpha_spy_pct=None,
        alpha_kospi_pct=None,
        ret_daily=None,
        vol_ann_252=None,
        sharpe_252=sharpe,
        mdd_to_date=0.0,
        beta_spy_252=None,
        beta_kospi_252=None,
    )


@pytest.fixture
def ranked_repo(repo, portfolio, samsung, apple):
    repo.add_fx("USDKRW", DAY1, 1_400)
    repo.add_price(samsung.id, DAY2, 1_100)
    repo.add_price(apple.id, DAY2, 90)
    repo.add_trade(portfolio.id, samsung, DAY1, "BUY", 100, 1_000)
    repo.add_trade(portfolio.id, apple, DAY1, "BUY", 10, 100)
    asyncio.run(repo.upsert_daily_snapshot(
        snapshot("p-alice", portfolio.id, DAY2, 9_870_000, 8_500_000, -0.013)
    ))

    bob = Participant(id="p-bob", name="Bob", starting_cash_krw=10_000_000.0)
    repo.add_participant(bob, Portfolio(id="pf-bob", participant_id=bob.id))
    asyncio.run(repo.upsert_daily_snapshot(
        snapshot("p-bob", "pf-bob", DAY1, 10_000_000, 10_000_000, 0.0, sharpe=1.2)
    ))

    carol = Participant(id="p-carol", name="Carol")
    repo.add_participant(carol, Portfolio(id="pf-carol", participant_id=carol.id))
    return repo


class TestLeaderboard:
    def test_rows_sorted_by_total_return(self, ranked_repo) -> None:
        board = asyncio.run(LeaderboardService(ranked_repo).build())

        assert board.date == DAY2
        assert [r.participant_id for r in board.rows] == ["p-bob", "p-alice"]

    def test_sharpe_sort_puts_missing_last(self, ranked_repo) -> None:
        board = asyncio.run(LeaderboardService(ranked_repo).build(sort_by="sharpe"))

        assert [r.participant_id for r in board.rows] == ["p-bob", "p-alice"]

    def test_enrichment(self, ranked_repo) -> None:
        board = asyncio.run(LeaderboardService(ranked_repo).build())
        alice = next(r for r in board.rows if r.participant_id == "p-alice")

        assert alice.cash_ratio == pytest.approx(8_500_000 / 9_870_000)
        assert alice.turnover_20d == pytest.approx(1_500_000 / 9_870_000)
        assert [i.symbol for i in alice.top_return] == ["005930", "AAPL"]
        assert alice.top_return[0].value == pytest.approx(0.10)
        assert [i.symbol for i in alice.top_weight] == ["AAPL", "005930"]
        assert [i.symbol for i in alice.top_unrealized] == ["005930", "AAPL"]
        assert alice.top_unrealized[1].value == pytest.approx(-14_000)

    def test_no_snapshots(self, repo) -> None:
        board = asyncio.run(LeaderboardService(repo).build())

        assert board.date is None
        assert board.rows == []


def test_turnover_only_counts_the_last_20_days(repo, portfolio, participant, samsung) -> None:
    repo.add_trade(portfolio.id, samsung, date(2025, 12, 1), "BUY", 10, 1_000)
    repo.add_trade(portfolio.id, samsung, date(2025, 12, 18), "SELL", 4, 1_500)
    repo.add_trade(portfolio.id, samsung, DAY1, "CLOSE", 0, 2_000)
    state = asyncio.run(LedgerReplayEngine(repo).replay(portfolio, participant, DAY1, ValueCache(repo)))

    # The window ending 2026-01-05 starts on 2025-12-17
    assert turnover_20d(state.fills, DAY1, 1_000_000) == pytest.approx((4 * 1_500 + 6 * 2_000) / 1_000_000)
    assert turnover_20d(state.fills, DAY1, 0.0) is None


def test_rejected_ledger_has_no_turnover(repo, portfolio, samsung) -> None:
    repo.add_trade(portfolio.id, samsung, DAY1, "BUY", 5, 1_000)
    repo.add_trade(portfolio.id, samsung, DAY1, "SELL", 6, 1_000)
    asyncio.run(repo.upsert_daily_snapshot(
        snapshot("p-alice", portfolio.id, DAY1, 10_000_000, 10_000_000, 0.0)
    ))

    board = asyncio.run(LeaderboardService(repo).build())

    row = board.rows[0]
    assert row.cash_ratio == pytest.approx(1.0)
    assert row.turnover_20d is None
    assert row.top_return == []
    assert row.top_weight == []


def test_top_n_drops_missing_values() -> None:
    ranked = top_n([("A", 0.1), ("B", None), ("C", 0.5), ("D", -0.2), ("E", 0.3)])

    assert [r.symbol for r in ranked] == ["C", "E", "A"]
