"""
tests/test_admin_service.py — Role Administration & Audit Log
==============================================================
"""

from __future__ import annotations

import pytest

from lorekeeper.errors import NotFoundError, ValidationError
from lorekeeper.services import admin_service, theory_service


class TestRoles:
    def test_seeded_roles(self, db_engine):
        assert [r.name for r in admin_service.list_roles(db_engine)] == [
            "admin", "editor", "reader",
        ]

    def test_assign_and_remove(self, db_engine, author, moderator):
        user = admin_service.assign_role(
            db_engine, actor_id=moderator.id, user_id=author.id, role_name="editor",
        )
        assert user.role_names == ["editor"]

        user = admin_service.remove_role(
            db_engine, actor_id=moderator.id, user_id=author.id, role_name="editor",
        )
        assert user.role_names == []

    def test_assign_is_idempotent_and_audited_once(self, db_engine, author, moderator):
        for _ in range(2):
            admin_service.assign_role(
                db_engine, actor_id=moderator.id, user_id=author.id, role_name="reader",
            )
        total, rows = admin_service.list_audit(db_engine)
        assert total == 1
        assert rows[0].action_type == "GRANT_ROLE"
        assert rows[0].before_snapshot == {"roles": []}
        assert rows[0].after_snapshot == {"roles": ["reader"]}

    def test_remove_missing_role_is_noop(self, db_engine, author, moderator):
        user = admin_service.remove_role(
            db_engine, actor_id=moderator.id, user_id=author.id, role_name="admin",
        )
        assert user.role_names == []
        assert admin_service.list_audit(db_engine)[0] == 0

    def test_unknown_role_name(self, db_engine, author, moderator):
        with pytest.raises(ValidationError):
            admin_service.assign_role(
                db_engine, actor_id=moderator.id, user_id=author.id, role_name="owner",
            )

    def test_unknown_user(self, db_engine, moderator):
        with pytest.raises(NotFoundError):
            admin_service.assign_role(
                db_engine, actor_id=moderator.id, user_id=999, role_name="editor",
            )

    def test_list_users_includes_roles(self, db_engine, author, moderator):
        users = {u.username: u for u in admin_service.list_users(db_engine)}
        assert users["moddy"].role_names == ["admin"]
        assert users["alice"].role_names == []


class TestAuditLog:
    def test_newest_first_and_paged(self, db_engine, author, moderator):
        for i in range(3):
            theory_service.submit(db_engine, author_id=author.id, content=f"t{i}")
        pending = theory_service.list_pending(db_engine)
        for theory in pending:
            theory_service.set_title(
                db_engine, actor_id=moderator.id, theory_id=theory.id, title=f"Title {theory.id}",
            )

        total, rows = admin_service.list_audit(db_engine, page=1, page_size=2)
        assert total == 3
        assert len(rows) == 2
        assert rows[0].id > rows[1].id
        assert rows[0].target_table == "theories"
