"""
tests/test_vote_and_contributions.py — Vote Ledger & Contribution Ledger
=========================================================================
Covers vote upsert semantics, the voter's contribution credit, contribution
aggregation and the backfill utility.
"""

from __future__ import annotations

import pytest
from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Session

from lorekeeper.database.models import Contribution, ContributionType, Vote
from lorekeeper.errors import NotFoundError, ValidationError
from lorekeeper.services import (
    contribution_service,
    identity_service,
    theory_service,
    vote_service,
)
from lorekeeper.services.backfill_service import backfill_contributions


@pytest.fixture
def approved(db_engine, author, moderator):
    theory = theory_service.submit(db_engine, author_id=author.id, content="Will is the key")
    return theory_service.moderate(
        db_engine, moderator_id=moderator.id, theory_id=theory.id,
        decision="approve", title="Will Is The Key",
    )


def _count(engine, model, **filters) -> int:
    with Session(engine) as session:
        stmt = select(func.count()).select_from(model)
        for key, value in filters.items():
            stmt = stmt.where(getattr(model, key) == value)
        return session.scalar(stmt)


# ===========================================================================
# Vote ledger
# ===========================================================================
class TestCastVote:
    def test_theory_read_takes_share_lock(self):
        sql = str(vote_service._votable_stmt(1).compile(dialect=postgresql.dialect()))
        assert "FOR SHARE" in sql

    def test_upvote(self, db_engine, voter, approved):
        result = vote_service.cast_vote(
            db_engine, voter_id=voter.id, theory_id=approved.id, value=1,
        )
        assert (result.upvotes, result.downvotes, result.score) == (1, 0, 1)
        assert result.caller_vote == 1

    def test_flip_overwrites_single_row(self, db_engine, voter, approved):
        vote_service.cast_vote(db_engine, voter_id=voter.id, theory_id=approved.id, value=1)
        result = vote_service.cast_vote(
            db_engine, voter_id=voter.id, theory_id=approved.id, value=-1,
        )
        assert (result.upvotes, result.downvotes, result.score) == (0, 1, -1)
        assert _count(db_engine, Vote, theory_id=approved.id) == 1
        assert _count(
            db_engine, Contribution,
            user_id=voter.id, type=ContributionType.THEORY_VOTE.value,
        ) == 1

    def test_same_vote_twice_is_idempotent(self, db_engine, voter, approved):
        vote_service.cast_vote(db_engine, voter_id=voter.id, theory_id=approved.id, value=1)
        result = vote_service.cast_vote(
            db_engine, voter_id=voter.id, theory_id=approved.id, value=1,
        )
        assert (result.upvotes, result.downvotes) == (1, 0)

    def test_author_voting_gets_both_credits(self, db_engine, author, approved):
        vote_service.cast_vote(db_engine, voter_id=author.id, theory_id=approved.id, value=1)
        assert contribution_service.counts_by_user(db_engine)[author.id] == {
            "total": 2, "approvals": 1, "votes": 1,
        }

    def test_pending_theory_rejected(self, db_engine, author, voter):
        pending = theory_service.submit(db_engine, author_id=author.id, content="pending")
        with pytest.raises(NotFoundError, match="not approved"):
            vote_service.cast_vote(db_engine, voter_id=voter.id, theory_id=pending.id, value=1)
        assert _count(db_engine, Contribution, user_id=voter.id) == 0

    def test_denied_theory_rejected(self, db_engine, voter, moderator, approved):
        theory_service.moderate(
            db_engine, moderator_id=moderator.id, theory_id=approved.id, decision="deny",
        )
        with pytest.raises(NotFoundError):
            vote_service.cast_vote(db_engine, voter_id=voter.id, theory_id=approved.id, value=-1)

    def test_missing_theory(self, db_engine, voter):
        with pytest.raises(NotFoundError):
            vote_service.cast_vote(db_engine, voter_id=voter.id, theory_id=4242, value=1)

    def test_bad_value(self, db_engine, voter, approved):
        with pytest.raises(ValidationError):
            vote_service.cast_vote(db_engine, voter_id=voter.id, theory_id=approved.id, value=2)

    def test_requires_username(self, db_engine, config, approved):
        anon = identity_service.resolve(db_engine, config, "sub-anon")
        with pytest.raises(ValidationError):
            vote_service.cast_vote(db_engine, voter_id=anon.id, theory_id=approved.id, value=1)


# ===========================================================================
# Contribution ledger
# ===========================================================================
class TestContributionLedger:
    def test_credit_is_idempotent(self, db_engine, author, approved):
        with Session(db_engine) as session:
            first = contribution_service.credit(
                session, author.id, approved.id, ContributionType.THEORY_VOTE,
            )
            second = contribution_service.credit(
                session, author.id, approved.id, "theory_vote",
            )
            session.commit()
        assert first is True
        assert second is False

    def test_stats(self, db_engine, voter, approved):
        vote_service.cast_vote(db_engine, voter_id=voter.id, theory_id=approved.id, value=1)
        assert contribution_service.stats(db_engine) == {
            "total_contributions": 2,
            "total_contributors": 2,
        }

    def test_empty_stats(self, db_engine):
        assert contribution_service.stats(db_engine) == {
            "total_contributions": 0,
            "total_contributors": 0,
        }


# ===========================================================================
# Backfill
# ===========================================================================
class TestBackfill:
    def _wipe_contributions(self, engine):
        with Session(engine) as session:
            session.execute(delete(Contribution))
            session.commit()

    def test_rebuilds_missing_credit(self, db_engine, voter, approved):
        vote_service.cast_vote(db_engine, voter_id=voter.id, theory_id=approved.id, value=1)
        self._wipe_contributions(db_engine)

        result = backfill_contributions(db_engine)
        assert result["approvals"] == 1
        assert result["votes"] == 1
        assert result["created"] == 2
        assert result["dry_run"] is False
        assert _count(db_engine, Contribution) == 2

    def test_rerun_creates_nothing(self, db_engine, voter, approved):
        vote_service.cast_vote(db_engine, voter_id=voter.id, theory_id=approved.id, value=1)
        result = backfill_contributions(db_engine)
        assert result["created"] == 0
        assert _count(db_engine, Contribution) == 2

    def test_dry_run_writes_nothing(self, db_engine, approved):
        self._wipe_contributions(db_engine)
        result = backfill_contributions(db_engine, dry_run=True)
        assert result == {**result, "approvals": 1, "votes": 0, "created": 0, "dry_run": True}
        assert _count(db_engine, Contribution) == 0
