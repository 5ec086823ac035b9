"""
lorekeeper.services.vote_service — Vote Ledger
===============================================

One current vote per (user, theory).  Casting again overwrites the
previous value via ``INSERT … ON CONFLICT DO UPDATE``; there is no
retract-to-zero.  The vote upsert and the voter's ``theory_vote``
contribution credit commit together or not at all.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import case, func, select, text
from sqlalchemy.orm import Session

from lorekeeper.database.models import ContributionType, Theory, Vote
from lorekeeper.engine.lifecycle import clean_vote_value, ensure_votable
from lorekeeper.engine.ranking import TheoryScore
from lorekeeper.errors import translate_db_errors
from lorekeeper.services import contribution_service
from lorekeeper.services.identity_service import get_user, require_username

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def tally_columns():
    """(upvotes, downvotes) aggregate expressions over :class:`Vote`."""
    upvotes = func.coalesce(func.sum(case((Vote.value == 1, 1), else_=0)), 0)
    downvotes = func.coalesce(func.sum(case((Vote.value == -1, 1), else_=0)), 0)
    return upvotes.label("upvotes"), downvotes.label("downvotes")


def tally(session: Session, theory_id: int) -> tuple[int, int]:
    """Return (upvotes, downvotes) for one theory."""
    up, down = tally_columns()
    row = session.execute(select(up, down).where(Vote.theory_id == theory_id)).one()
    return int(row.upvotes), int(row.downvotes)


def _votable_stmt(theory_id: int):
    # FOR SHARE: a concurrent moderation of this theory waits for us
    return (
        select(Theory.id, Theory.status, Theory.created_at)
        .where(Theory.id == theory_id)
        .with_for_update(read=True)
    )


def cast_vote(engine: Engine, *, voter_id: int, theory_id: int, value: int) -> TheoryScore:
    """Upsert the voter's vote on an approved theory and credit the voter.

    Raises
    ------
    ValidationError
        Value not in {+1, -1}, or the voter has no username.
    NotFoundError
        Theory missing or not approved.
    """
    value = clean_vote_value(value)

    with Session(engine) as session, translate_db_errors("Vote"):
        voter = get_user(session, voter_id)
        require_username(voter)

        theory = session.execute(_votable_stmt(theory_id)).one_or_none()
        ensure_votable(theory_id, theory.status if theory else None)

        session.execute(
            text("""
                INSERT INTO votes (user_id, theory_id, value)
                VALUES (:user_id, :theory_id, :value)
                ON CONFLICT (user_id, theory_id)
                DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
            """),
            {"user_id": voter_id, "theory_id": theory_id, "value": value},
        )
        contribution_service.credit(
            session, voter_id, theory_id, ContributionType.THEORY_VOTE,
        )

        upvotes, downvotes = tally(session, theory_id)
        session.commit()

    logger.info("User %d voted %+d on theory %d", voter_id, value, theory_id)
    return TheoryScore(
        theory_id=theory_id,
        created_at=theory.created_at,
        upvotes=upvotes,
        downvotes=downvotes,
        caller_vote=value,
    )
