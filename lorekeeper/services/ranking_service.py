"""
lorekeeper.services.ranking_service — Top Theories & Leaderboard
=================================================================

Read-only.  Every call recomputes from the vote and contribution tables;
nothing is cached or materialized.  Ordering rules live in
:mod:`lorekeeper.engine.ranking`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from lorekeeper.constants import DEFAULT_LEADERBOARD_LIMIT
from lorekeeper.database.models import Theory, TheoryStatus, TheoryTag, User, Vote
from lorekeeper.engine.ranking import (
    ContributorTotals,
    LeaderboardEntry,
    SortMode,
    TheoryScore,
    order_theories,
    rank_contributors,
)
from lorekeeper.errors import ValidationError
from lorekeeper.services import contribution_service
from lorekeeper.services.vote_service import tally_columns

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def _parse_mode(mode: SortMode | str) -> SortMode:
    try:
        return SortMode(mode)
    except ValueError:
        raise ValidationError.for_field(
            "mode", f"Mode must be one of: {', '.join(m.value for m in SortMode)}",
        ) from None


# ---------------------------------------------------------------------------
# Top theories
# ---------------------------------------------------------------------------
def top_theories(
    engine: Engine,
    *,
    mode: SortMode | str = SortMode.TOP,
    tag_id: int | None = None,
    caller_id: int | None = None,
) -> list[tuple[Theory, TheoryScore]]:
    """Approved, titled theories with their vote tallies, ordered by *mode*.

    Approved theories without a title are never returned.
    """
    mode = _parse_mode(mode)

    with Session(engine, expire_on_commit=False) as session:
        stmt = (
            select(Theory)
            .options(
                selectinload(Theory.author),
                selectinload(Theory.theory_tags).selectinload(TheoryTag.tag),
            )
            .where(
                Theory.status == TheoryStatus.APPROVED.value,
                Theory.title.is_not(None),
            )
        )
        if tag_id is not None:
            stmt = stmt.where(Theory.theory_tags.any(TheoryTag.tag_id == tag_id))
        theories = {t.id: t for t in session.scalars(stmt).all()}
        if not theories:
            return []

        up, down = tally_columns()
        tallies = {
            row.theory_id: (int(row.upvotes), int(row.downvotes))
            for row in session.execute(
                select(Vote.theory_id, up, down)
                .where(Vote.theory_id.in_(list(theories)))
                .group_by(Vote.theory_id)
            ).all()
        }

        caller_votes: dict[int, int] = {}
        if caller_id is not None:
            caller_votes = dict(session.execute(
                select(Vote.theory_id, Vote.value).where(
                    Vote.user_id == caller_id, Vote.theory_id.in_(list(theories)),
                )
            ).all())

    scores = [
        TheoryScore(
            theory_id=t.id,
            created_at=t.created_at,
            upvotes=tallies.get(t.id, (0, 0))[0],
            downvotes=tallies.get(t.id, (0, 0))[1],
            caller_vote=caller_votes.get(t.id),
        )
        for t in theories.values()
    ]
    return [(theories[s.theory_id], s) for s in order_theories(scores, mode)]


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------
def leaderboard(
    engine: Engine,
    *,
    limit: int = DEFAULT_LEADERBOARD_LIMIT,
    caller_id: int | None = None,
) -> dict[str, Any]:
    """Ranked contributors plus the caller's own row.

    The full ordering is always computed so the caller's rank is known even
    when it falls outside the first *limit* rows.  A caller with no
    contributions gets zeroed counters and ``rank: None``.
    """
    counts = contribution_service.counts_by_user(engine)

    wanted = set(counts)
    if caller_id is not None:
        wanted.add(caller_id)

    with Session(engine) as session:
        users: dict[int, User] = {}
        if wanted:
            users = {
                u.id: u
                for u in session.scalars(select(User).where(User.id.in_(wanted))).all()
            }

        totals = []
        for user_id, c in counts.items():
            user = users.get(user_id)
            totals.append(ContributorTotals(
                user_id=user_id,
                username=user.username if user else None,
                name=user.name if user else None,
                email=user.email if user else None,
                approvals=c["approvals"],
                votes=c["votes"],
            ))

        ranked = rank_contributors(totals)

        current_user = None
        if caller_id is not None and caller_id in users:
            entry = next((e for e in ranked if e.totals.user_id == caller_id), None)
            if entry is None:
                caller = users[caller_id]
                entry = LeaderboardEntry(
                    totals=ContributorTotals(
                        user_id=caller.id,
                        username=caller.username,
                        name=caller.name,
                        email=caller.email,
                    ),
                    rank=None,
                )
            current_user = entry.to_dict()

    logger.debug("Leaderboard: %d contributors ranked, caller=%s", len(ranked), caller_id)
    return {
        "leaderboard": [e.to_dict() for e in ranked[:limit]],
        "total_contributions": sum(e.totals.total for e in ranked),
        "total_contributors": len(ranked),
        "current_user": current_user,
    }
