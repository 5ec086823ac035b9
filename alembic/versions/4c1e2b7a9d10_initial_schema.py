"""Initial schema: users, roles, tags, theories, votes, contributions, admin_log

Revision ID: 4c1e2b7a9d10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4c1e2b7a9d10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    """Create the full Lorekeeper schema and seed the fixed role set."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("identity_id", sa.String(255), nullable=False, unique=True),
        sa.Column("email", sa.String(320)),
        sa.Column("name", sa.String(100)),
        sa.Column("username", sa.String(20), unique=True),
        _created_at(),
        _created_at("updated_at"),
    )

    roles = op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(30), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
    )

    op.create_table(
        "user_roles",
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "role_id", sa.Integer(),
            sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True,
        ),
        _created_at("granted_at"),
    )

    op.create_table(
        "tags",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(64), nullable=False, unique=True),
        _created_at(),
    )

    op.create_table(
        "theories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "created_by_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("title", sa.String(140)),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("denial_reason", sa.Text()),
        sa.Column(
            "moderated_by_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
        ),
        sa.Column("moderated_at", sa.DateTime(timezone=True)),
        _created_at(),
    )
    op.create_index("ix_theories_status_created", "theories", ["status", "created_at"])
    op.create_index("ix_theories_created_by", "theories", ["created_by_id"])

    op.create_table(
        "theory_tags",
        sa.Column(
            "theory_id", sa.Integer(),
            sa.ForeignKey("theories.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "tag_id", sa.Integer(),
            sa.ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True,
        ),
    )
    op.create_index("ix_theory_tags_tag", "theory_tags", ["tag_id"])

    op.create_table(
        "votes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "theory_id", sa.Integer(),
            sa.ForeignKey("theories.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("value", sa.SmallInteger(), nullable=False),
        _created_at(),
        _created_at("updated_at"),
        sa.UniqueConstraint("user_id", "theory_id", name="uq_votes_user_theory"),
        sa.CheckConstraint("value IN (-1, 1)", name="ck_votes_value"),
    )
    op.create_index("ix_votes_theory", "votes", ["theory_id"])

    op.create_table(
        "contributions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "theory_id", sa.Integer(),
            sa.ForeignKey("theories.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("type", sa.String(32), nullable=False),
        _created_at(),
        sa.UniqueConstraint(
            "user_id", "theory_id", "type", name="uq_contributions_user_theory_type",
        ),
    )
    op.create_index(
        "ix_contributions_user_type", "contributions", ["user_id", "type"],
    )

    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.Integer(), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100)),
        sa.Column("before_snapshot", postgresql.JSONB()),
        sa.Column("after_snapshot", postgresql.JSONB()),
        sa.Column("reason", sa.Text()),
        _created_at("timestamp"),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"],
    )

    op.bulk_insert(roles, [
        {"name": "admin", "description": "Moderates theories and manages tags and roles"},
        {"name": "editor", "description": "Can retitle and edit theories"},
        {"name": "reader", "description": "Read-only access"},
    ])


def downgrade() -> None:
    """Drop every Lorekeeper table."""
    op.drop_index("ix_admin_log_target", table_name="admin_log")
    op.drop_index("ix_admin_log_actor_time", table_name="admin_log")
    op.drop_table("admin_log")
    op.drop_index("ix_contributions_user_type", table_name="contributions")
    op.drop_table("contributions")
    op.drop_index("ix_votes_theory", table_name="votes")
    op.drop_table("votes")
    op.drop_index("ix_theory_tags_tag", table_name="theory_tags")
    op.drop_table("theory_tags")
    op.drop_index("ix_theories_created_by", table_name="theories")
    op.drop_index("ix_theories_status_created", table_name="theories")
    op.drop_table("theories")
    op.drop_table("tags")
    op.drop_table("user_roles")
    op.drop_table("roles")
    op.drop_table("users")
