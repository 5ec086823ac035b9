"""
tests/test_ranking_engine.py — Score & Leaderboard Ordering
============================================================
Pure unit tests for lorekeeper.engine.ranking.
"""

from __future__ import annotations

from datetime import datetime

import pytest

from lorekeeper.engine.ranking import (
    ContributorTotals,
    SortMode,
    TheoryScore,
    order_theories,
    rank_contributors,
)

T0 = datetime(2026, 3, 1, 12, 0, 0)
T1 = datetime(2026, 3, 2, 12, 0, 0)


class TestOrderTheories:
    def test_score(self):
        assert TheoryScore(1, T0, upvotes=3, downvotes=5).score == -2

    def test_top_orders_by_score_then_recency(self):
        scores = [
            TheoryScore(1, T0, upvotes=2),
            TheoryScore(2, T1, upvotes=2),
            TheoryScore(3, T0, upvotes=5),
            TheoryScore(4, T1, downvotes=1),
        ]
        assert [s.theory_id for s in order_theories(scores, "top")] == [3, 2, 1, 4]

    def test_new_ignores_score(self):
        scores = [TheoryScore(1, T0, upvotes=9), TheoryScore(2, T1)]
        assert [s.theory_id for s in order_theories(scores, SortMode.NEW)] == [2, 1]

    def test_same_timestamp_falls_back_to_id(self):
        scores = [TheoryScore(1, T0), TheoryScore(2, T0), TheoryScore(3, T0)]
        assert [s.theory_id for s in order_theories(scores, "new")] == [3, 2, 1]
        assert [s.theory_id for s in order_theories(scores, "top")] == [3, 2, 1]

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            order_theories([], "hot")


class TestRankContributors:
    def test_total_then_approvals_then_name(self):
        ranked = rank_contributors([
            ContributorTotals(1, username="zed", approvals=0, votes=3),
            ContributorTotals(2, username="amy", approvals=1, votes=2),
            ContributorTotals(3, username="bob", approvals=1, votes=2),
            ContributorTotals(4, username="cat", approvals=0, votes=5),
        ])
        assert [(e.totals.user_id, e.rank) for e in ranked] == [
            (4, 1), (2, 2), (3, 3), (1, 4),
        ]

    def test_ties_are_not_collapsed(self):
        ranked = rank_contributors([
            ContributorTotals(1, username="a", votes=1),
            ContributorTotals(2, username="b", votes=1),
        ])
        assert [e.rank for e in ranked] == [1, 2]

    def test_display_name_fallbacks(self):
        assert ContributorTotals(1, name="Nancy", email="n@x").display_name == "Nancy"
        assert ContributorTotals(1, email="n@x").display_name == "n@x"
        assert ContributorTotals(1).display_name == ""

    def test_entry_dict(self):
        entry = rank_contributors([ContributorTotals(7, username="will", approvals=2, votes=1)])[0]
        assert entry.to_dict() == {
            "user_id": 7,
            "username": "will",
            "name": None,
            "email": None,
            "display_name": "will",
            "contributions": 3,
            "approvals": 2,
            "votes": 1,
            "rank": 1,
        }
