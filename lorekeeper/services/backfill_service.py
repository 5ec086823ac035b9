"""
lorekeeper.services.backfill_service — Contribution Ledger Backfill
====================================================================

Maintenance utility that rebuilds missing contribution credit from the
source tables:

    theories (status = approved) → theory_approved for the author
    votes                        → theory_vote for the voter

Every write is ``INSERT … ON CONFLICT DO NOTHING`` so the backfill is safe
to re-run; existing credit is never touched.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, select

from lorekeeper.database.engine import get_session
from lorekeeper.database.models import ContributionType, Theory, TheoryStatus, Vote
from lorekeeper.services import contribution_service

logger = logging.getLogger(__name__)


def backfill_contributions(engine: Engine, *, dry_run: bool = False) -> dict:
    """Ensure a contribution row exists for every approval and every vote.

    Args:
        engine: SQLAlchemy engine.
        dry_run: If True, count the source rows but write nothing.

    Returns:
        ``{"approvals": N, "votes": M, "created": K, "dry_run": bool,
        "timestamp": iso}`` where N and M are the source rows visited and K
        the credit rows actually inserted.
    """
    created = 0

    with get_session(engine) as session:
        approved = session.execute(
            select(Theory.id, Theory.created_by_id)
            .where(Theory.status == TheoryStatus.APPROVED.value)
        ).all()
        votes = session.execute(select(Vote.user_id, Vote.theory_id)).all()

        if not dry_run:
            for row in approved:
                created += contribution_service.credit(
                    session, row.created_by_id, row.id, ContributionType.THEORY_APPROVED,
                )
            for row in votes:
                created += contribution_service.credit(
                    session, row.user_id, row.theory_id, ContributionType.THEORY_VOTE,
                )

    action = "would ensure" if dry_run else "ensured"
    logger.info(
        "Backfill: %s %d approval and %d vote contributions (%d new)",
        action, len(approved), len(votes), created,
    )

    return {
        "approvals": len(approved),
        "votes": len(votes),
        "created": created,
        "dry_run": dry_run,
        "timestamp": datetime.now(UTC).isoformat(),
    }
