"""
tests/test_identity_service.py — Identity Resolution & Usernames
=================================================================
Service-level tests for identity_service against in-memory SQLite.
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from lorekeeper.config import LorekeeperConfig
from lorekeeper.database.models import User
from lorekeeper.errors import ConflictError, NotFoundError, ValidationError
from lorekeeper.services import identity_service


def _user_count(engine) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(User))


class TestResolve:
    def test_creates_user_on_first_sight(self, db_engine, config):
        user = identity_service.resolve(db_engine, config, "sub-1", "Someone@Example.com")
        assert user.id is not None
        assert user.identity_id == "sub-1"
        assert user.email == "someone@example.com"
        assert user.username is None
        assert user.role_names == []

    def test_second_resolve_returns_same_row(self, db_engine, config):
        first = identity_service.resolve(db_engine, config, "sub-1")
        second = identity_service.resolve(db_engine, config, "sub-1")
        assert first.id == second.id
        assert _user_count(db_engine) == 1

    def test_allow_listed_email_gets_admin(self, db_engine, config):
        user = identity_service.resolve(db_engine, config, "sub-mod", "MOD@example.com")
        assert user.role_names == ["admin"]

    def test_admin_granted_once(self, db_engine, config):
        identity_service.resolve(db_engine, config, "sub-mod", "mod@example.com")
        user = identity_service.resolve(db_engine, config, "sub-mod", "mod@example.com")
        assert user.role_names == ["admin"]

    def test_backfills_email_and_rechecks_allow_list(self, db_engine, config):
        first = identity_service.resolve(db_engine, config, "sub-mod")
        assert first.email is None
        assert first.role_names == []

        later = identity_service.resolve(db_engine, config, "sub-mod", "mod@example.com")
        assert later.email == "mod@example.com"
        assert later.role_names == ["admin"]

    def test_existing_email_is_not_overwritten(self, db_engine, config):
        identity_service.resolve(db_engine, config, "sub-1", "first@example.com")
        user = identity_service.resolve(db_engine, config, "sub-1", "second@example.com")
        assert user.email == "first@example.com"

    def test_allow_list_comes_from_injected_config(self, db_engine):
        cfg = LorekeeperConfig(community_name="Other", admin_emails=frozenset())
        user = identity_service.resolve(db_engine, cfg, "sub-mod", "mod@example.com")
        assert user.role_names == []

    def test_find_user_does_not_create(self, db_engine):
        assert identity_service.find_user(db_engine, "ghost") is None
        assert _user_count(db_engine) == 0


class TestClaimUsername:
    def test_claim_lowercases(self, db_engine, config):
        user = identity_service.resolve(db_engine, config, "sub-1")
        claimed = identity_service.claim_username(db_engine, user.id, "Dustin_H")
        assert claimed.username == "dustin_h"

    def test_reclaiming_same_name_is_noop(self, db_engine, config):
        user = identity_service.resolve(db_engine, config, "sub-1")
        identity_service.claim_username(db_engine, user.id, "dustin")
        again = identity_service.claim_username(db_engine, user.id, "DUSTIN")
        assert again.username == "dustin"

    def test_cannot_rename(self, db_engine, config):
        user = identity_service.resolve(db_engine, config, "sub-1")
        identity_service.claim_username(db_engine, user.id, "dustin")
        with pytest.raises(ValidationError, match="already been set"):
            identity_service.claim_username(db_engine, user.id, "steve")

    def test_taken_name_conflicts(self, db_engine, config):
        a = identity_service.resolve(db_engine, config, "sub-a")
        b = identity_service.resolve(db_engine, config, "sub-b")
        identity_service.claim_username(db_engine, a.id, "robin")
        with pytest.raises(ConflictError):
            identity_service.claim_username(db_engine, b.id, "Robin")

    def test_invalid_format(self, db_engine, config):
        user = identity_service.resolve(db_engine, config, "sub-1")
        with pytest.raises(ValidationError):
            identity_service.claim_username(db_engine, user.id, "no spaces")

    def test_unknown_user(self, db_engine):
        with pytest.raises(NotFoundError):
            identity_service.claim_username(db_engine, 999, "nobody")
