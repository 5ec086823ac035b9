"""
lorekeeper.services.contribution_service — Contribution Ledger
===============================================================

One row per (user, theory, type), written with
``INSERT … ON CONFLICT DO NOTHING`` so repeated credits are no-ops even
under concurrent writers.  Credit is sticky: nothing in Lorekeeper deletes
a contribution, including denying or removing the theory afterwards.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import distinct, func, select, text
from sqlalchemy.orm import Session

from lorekeeper.database.models import Contribution, ContributionType

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def credit(session: Session, user_id: int, theory_id: int, kind: ContributionType | str) -> bool:
    """Ensure the credit row exists within the caller's transaction.

    Returns True if a new row was written, False if it already existed.
    """
    kind = ContributionType(kind)
    result = session.execute(
        text("""
            INSERT INTO contributions (user_id, theory_id, type)
            VALUES (:user_id, :theory_id, :type)
            ON CONFLICT (user_id, theory_id, type) DO NOTHING
        """),
        {"user_id": user_id, "theory_id": theory_id, "type": kind.value},
    )
    created = result.rowcount == 1
    if created:
        logger.debug("Credited user %d with %s on theory %d", user_id, kind.value, theory_id)
    return created


def counts_by_user(engine: Engine) -> dict[int, dict[str, int]]:
    """Aggregate contributions per user: ``{user_id: {total, approvals, votes}}``."""
    with Session(engine) as session:
        rows = session.execute(
            select(
                Contribution.user_id,
                Contribution.type,
                func.count().label("cnt"),
            ).group_by(Contribution.user_id, Contribution.type)
        ).all()

    counts: dict[int, dict[str, int]] = {}
    for row in rows:
        entry = counts.setdefault(row.user_id, {"total": 0, "approvals": 0, "votes": 0})
        entry["total"] += row.cnt
        if row.type == ContributionType.THEORY_APPROVED:
            entry["approvals"] += row.cnt
        elif row.type == ContributionType.THEORY_VOTE:
            entry["votes"] += row.cnt
    return counts


def stats(engine: Engine) -> dict[str, int]:
    """Site-wide totals for the landing page counter."""
    with Session(engine) as session:
        total = session.scalar(select(func.count()).select_from(Contribution)) or 0
        contributors = session.scalar(
            select(func.count(distinct(Contribution.user_id)))
        ) or 0
    return {"total_contributions": total, "total_contributors": contributors}
