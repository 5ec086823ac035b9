"""
tests/test_tag_service.py — Tag Registry
=========================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from lorekeeper.database.models import AdminLog, TheoryStatus
from lorekeeper.errors import NotFoundError, ValidationError
from lorekeeper.services import tag_service, theory_service


class TestEnsure:
    def test_normalizes_name(self, db_engine):
        tag = tag_service.ensure(db_engine, "  Upside Down ")
        assert tag.name == "upside down"

    def test_is_idempotent(self, db_engine):
        first = tag_service.ensure(db_engine, "Vecna")
        second = tag_service.ensure(db_engine, "vecna")
        assert first.id == second.id
        assert len(tag_service.list_tags(db_engine)) == 1

    def test_blank_and_overlong_rejected(self, db_engine):
        with pytest.raises(ValidationError):
            tag_service.ensure(db_engine, "   ")
        with pytest.raises(ValidationError):
            tag_service.ensure(db_engine, "x" * 65)

    def test_audited_only_when_created(self, db_engine, moderator):
        tag_service.ensure(db_engine, "hawkins", actor_id=moderator.id)
        tag_service.ensure(db_engine, "hawkins", actor_id=moderator.id)
        with Session(db_engine) as session:
            rows = session.scalars(select(AdminLog).where(AdminLog.target_table == "tags")).all()
        assert len(rows) == 1
        assert rows[0].action_type == "CREATE"


class TestListAndDelete:
    def test_list_is_name_ascending(self, db_engine):
        for name in ("mindflayer", "demogorgon", "eleven"):
            tag_service.ensure(db_engine, name)
        assert [t.name for t in tag_service.list_tags(db_engine)] == [
            "demogorgon", "eleven", "mindflayer",
        ]

    def test_delete_unknown(self, db_engine, moderator):
        with pytest.raises(NotFoundError):
            tag_service.delete_tag(db_engine, 404, actor_id=moderator.id)

    def test_delete_detaches_but_keeps_theory(self, db_engine, author, moderator):
        tag = tag_service.ensure(db_engine, "lab")
        keep = tag_service.ensure(db_engine, "keep")
        theory = theory_service.submit(db_engine, author_id=author.id, content="Brenner lives")
        theory_service.moderate(
            db_engine, moderator_id=moderator.id, theory_id=theory.id,
            decision="approve", title="Brenner lives on", tag_ids=[tag.id, keep.id],
        )

        tag_service.delete_tag(db_engine, tag.id, actor_id=moderator.id)

        after = theory_service.get_theory(db_engine, theory.id)
        assert after.status == TheoryStatus.APPROVED
        assert [t.name for t in after.tags] == ["keep"]
        assert [t.name for t in tag_service.list_tags(db_engine)] == ["keep"]
