"""
lorekeeper.services.admin_service — Audit Log & Role Administration
====================================================================

Every admin write in Lorekeeper follows the pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Apply change
  4. Write admin_log with before/after JSON in the same transaction
  5. Commit

The audit helpers here are shared by the theory and tag services; role
administration lives here too.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from lorekeeper.constants import ROLE_DESCRIPTIONS
from lorekeeper.database.models import AdminActionType, AdminLog, Role, Theory, User
from lorekeeper.errors import NotFoundError, ValidationError, translate_db_errors
from lorekeeper.services.identity_service import get_user, grant_role, revoke_role

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------
def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def theory_snapshot(theory: Theory | None) -> dict | None:
    """Row snapshot plus the attached tag ids."""
    snap = row_to_dict(theory)
    if snap is not None:
        snap["tag_ids"] = sorted(tt.tag_id for tt in theory.theory_tags)
    return snap


def log_admin_action(
    session: Session,
    *,
    actor_id: int,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def list_audit(engine: Engine, *, page: int = 1, page_size: int = 50) -> tuple[int, list[AdminLog]]:
    """Audit rows newest first.  Returns (total, rows)."""
    with Session(engine, expire_on_commit=False) as session:
        total = session.scalar(select(func.count()).select_from(AdminLog)) or 0
        rows = session.scalars(
            select(AdminLog)
            .order_by(AdminLog.timestamp.desc(), AdminLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return total, list(rows)


# ---------------------------------------------------------------------------
# Users & roles
# ---------------------------------------------------------------------------
def list_users(engine: Engine) -> list[User]:
    """All users, newest first, with roles loaded."""
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(User).order_by(User.created_at.desc(), User.id.desc())
        ).all())


def list_roles(engine: Engine) -> list[Role]:
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(select(Role).order_by(Role.name)).all())


def _check_role_name(session: Session, role_name: str) -> Role:
    if role_name not in ROLE_DESCRIPTIONS:
        raise ValidationError.for_field(
            "role_name", f"Role must be one of: {', '.join(sorted(ROLE_DESCRIPTIONS))}",
        )
    role = session.scalar(select(Role).where(Role.name == role_name))
    if role is None:
        raise NotFoundError("Role", role_name)
    return role


def assign_role(engine: Engine, *, actor_id: int, user_id: int, role_name: str) -> User:
    """Grant a role.  Idempotent — granting an existing role is a no-op."""
    with Session(engine, expire_on_commit=False) as session, translate_db_errors("Assign role"):
        _check_role_name(session, role_name)
        user = get_user(session, user_id)
        before = {"roles": user.role_names}
        if grant_role(session, user, role_name):
            log_admin_action(
                session,
                actor_id=actor_id,
                action_type=AdminActionType.GRANT_ROLE,
                target_table="user_roles",
                target_id=str(user.id),
                before=before,
                after={"roles": user.role_names},
            )
            logger.info("Admin %d granted %r to user %d", actor_id, role_name, user.id)
        session.commit()
        session.refresh(user)
        return user


def remove_role(engine: Engine, *, actor_id: int, user_id: int, role_name: str) -> User:
    """Revoke a role.  Revoking a role the user doesn't hold is a no-op."""
    with Session(engine, expire_on_commit=False) as session, translate_db_errors("Remove role"):
        _check_role_name(session, role_name)
        user = get_user(session, user_id)
        before = {"roles": user.role_names}
        if revoke_role(session, user, role_name):
            log_admin_action(
                session,
                actor_id=actor_id,
                action_type=AdminActionType.REVOKE_ROLE,
                target_table="user_roles",
                target_id=str(user.id),
                before=before,
                after={"roles": user.role_names},
            )
            logger.info("Admin %d revoked %r from user %d", actor_id, role_name, user.id)
        session.commit()
        session.refresh(user)
        return user
