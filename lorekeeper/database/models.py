"""
lorekeeper.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- users          — One row per verified identity (created on first request)
- roles          — Fixed role set (admin, editor, reader)
- user_roles     — Role grants
- tags           — Unique lower-case tag names
- theories       — Fan theories and their moderation state
- theory_tags    — Explicit theory ↔ tag join
- votes          — One current vote per (user, theory)
- contributions  — Idempotent credit ledger, one row per (user, theory, type)
- admin_log      — Append-only audit trail of moderator actions
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Lorekeeper ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class TheoryStatus(enum.StrEnum):
    """Moderation states of a theory."""
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class ContributionType(enum.StrEnum):
    """Credit-worthy facts recorded in the contribution ledger."""
    THEORY_APPROVED = "theory_approved"
    THEORY_VOTE = "theory_vote"


class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    MODERATE = "MODERATE"
    SPLIT = "SPLIT"
    GRANT_ROLE = "GRANT_ROLE"
    REVOKE_ROLE = "REVOKE_ROLE"


# ---------------------------------------------------------------------------
# Users: one row per verified external identity
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(320), default=None)
    name: Mapped[str | None] = mapped_column(String(100), default=None)
    username: Mapped[str | None] = mapped_column(String(20), default=None, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user_roles: Mapped[list[UserRole]] = relationship(
        back_populates="user", cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def role_names(self) -> list[str]:
        return sorted(ur.role.name for ur in self.user_roles)

    @property
    def display_name(self) -> str:
        return self.username or self.name or self.email or ""

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r}>"


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)

    def __repr__(self) -> str:
        return f"<Role id={self.id} name={self.name!r}>"


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    role_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True
    )
    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="user_roles")
    role: Mapped[Role] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<UserRole user={self.user_id} role={self.role_id}>"


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------
class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Tag id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Theories
# ---------------------------------------------------------------------------
class Theory(Base):
    """A fan theory.

    ``status == approved`` with a NULL ``title`` is a tolerated transient
    state: such rows are hidden from public listings and surfaced to admins
    as needing a title.
    """
    __tablename__ = "theories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_by_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str | None] = mapped_column(String(140), default=None)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=TheoryStatus.PENDING.value
    )
    denial_reason: Mapped[str | None] = mapped_column(Text, default=None)
    moderated_by_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    moderated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    author: Mapped[User] = relationship(foreign_keys=[created_by_id])
    theory_tags: Mapped[list[TheoryTag]] = relationship(
        back_populates="theory", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_theories_status_created", "status", "created_at"),
        Index("ix_theories_created_by", "created_by_id"),
        # split deletes then inserts; ids must never be reused
        {"sqlite_autoincrement": True},
    )

    @property
    def tags(self) -> list[Tag]:
        return sorted((tt.tag for tt in self.theory_tags), key=lambda t: t.name)

    def __repr__(self) -> str:
        return f"<Theory id={self.id} status={self.status!r} title={self.title!r}>"


class TheoryTag(Base):
    __tablename__ = "theory_tags"

    theory_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("theories.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True
    )

    theory: Mapped[Theory] = relationship(back_populates="theory_tags")
    tag: Mapped[Tag] = relationship(lazy="joined")

    __table_args__ = (
        Index("ix_theory_tags_tag", "tag_id"),
    )

    def __repr__(self) -> str:
        return f"<TheoryTag theory={self.theory_id} tag={self.tag_id}>"


# ---------------------------------------------------------------------------
# Votes: current vote per (user, theory)
# ---------------------------------------------------------------------------
class Vote(Base):
    __tablename__ = "votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    theory_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("theories.id", ondelete="CASCADE"), nullable=False
    )
    value: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "theory_id", name="uq_votes_user_theory"),
        CheckConstraint("value IN (-1, 1)", name="ck_votes_value"),
        Index("ix_votes_theory", "theory_id"),
    )

    def __repr__(self) -> str:
        return f"<Vote user={self.user_id} theory={self.theory_id} value={self.value}>"


# ---------------------------------------------------------------------------
# Contributions: idempotent credit ledger
# ---------------------------------------------------------------------------
class Contribution(Base):
    """Write-once credit row.  Never updated, never retracted."""
    __tablename__ = "contributions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    theory_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("theories.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "theory_id", "type", name="uq_contributions_user_theory_type",
        ),
        Index("ix_contributions_user_type", "user_id", "type"),
    )

    def __repr__(self) -> str:
        return (
            f"<Contribution user={self.user_id} theory={self.theory_id} "
            f"type={self.type!r}>"
        )


# ---------------------------------------------------------------------------
# AdminLog: append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"
