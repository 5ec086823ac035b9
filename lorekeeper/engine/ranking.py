"""
lorekeeper.engine.ranking — Score & Leaderboard Ordering
=========================================================

Pure ordering rules.  No DB I/O; the ranking service feeds aggregated
rows in and serializes the result.

Top theories:
    ``top`` — (score desc, created_at desc, id desc)
    ``new`` — (created_at desc, id desc)

Leaderboard:
    (total desc, approvals desc, display name asc).  Every row gets its own
    successive rank; ties are not collapsed.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

__all__ = [
    "ContributorTotals",
    "LeaderboardEntry",
    "SortMode",
    "TheoryScore",
    "order_theories",
    "rank_contributors",
]


class SortMode(enum.StrEnum):
    TOP = "top"
    NEW = "new"


# ---------------------------------------------------------------------------
# Theories
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TheoryScore:
    """Vote tally for one theory, plus the caller's own vote if any."""

    theory_id: int
    created_at: datetime | None
    upvotes: int = 0
    downvotes: int = 0
    caller_vote: int | None = None

    @property
    def score(self) -> int:
        return self.upvotes - self.downvotes


def _created_key(item: TheoryScore) -> tuple[float, int]:
    # id breaks ties between rows sharing a timestamp (insertion order)
    ts = item.created_at.timestamp() if item.created_at else float("-inf")
    return ts, item.theory_id


def order_theories(
    scores: Iterable[TheoryScore], mode: SortMode | str = SortMode.TOP,
) -> list[TheoryScore]:
    mode = SortMode(mode)
    if mode is SortMode.NEW:
        return sorted(scores, key=_created_key, reverse=True)
    return sorted(
        scores, key=lambda s: (s.score, *_created_key(s)), reverse=True,
    )


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ContributorTotals:
    user_id: int
    username: str | None = None
    name: str | None = None
    email: str | None = None
    approvals: int = 0
    votes: int = 0

    @property
    def total(self) -> int:
        return self.approvals + self.votes

    @property
    def display_name(self) -> str:
        return self.username or self.name or self.email or ""


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    totals: ContributorTotals
    rank: int | None

    def to_dict(self) -> dict:
        t = self.totals
        return {
            "user_id": t.user_id,
            "username": t.username,
            "name": t.name,
            "email": t.email,
            "display_name": t.display_name,
            "contributions": t.total,
            "approvals": t.approvals,
            "votes": t.votes,
            "rank": self.rank,
        }


def _leaderboard_key(t: ContributorTotals) -> tuple:
    name = t.display_name
    return (-t.total, -t.approvals, name.casefold(), name, t.user_id)


def rank_contributors(totals: Iterable[ContributorTotals]) -> list[LeaderboardEntry]:
    """Sort contributors and assign ranks 1..N in sort order."""
    ordered = sorted(totals, key=_leaderboard_key)
    return [LeaderboardEntry(totals=t, rank=i) for i, t in enumerate(ordered, start=1)]
