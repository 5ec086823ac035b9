"""
lorekeeper.services.identity_service — Verified Identity → User
================================================================

Maps the subject id of a verified token to an internal :class:`User`,
creating the row on first sight and granting the admin role when the
e-mail is on the configured allow-list.  Token verification itself
happens in :mod:`lorekeeper.api.deps`; this module only ever sees the
already-verified subject id and e-mail claim.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lorekeeper.constants import ROLE_ADMIN
from lorekeeper.database.models import User, UserRole
from lorekeeper.database.seed import ensure_role
from lorekeeper.engine.lifecycle import clean_username
from lorekeeper.errors import ConflictError, NotFoundError, ValidationError, translate_db_errors

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from lorekeeper.config import LorekeeperConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Role helpers (operate inside the caller's session)
# ---------------------------------------------------------------------------
def grant_role(session: Session, user: User, role_name: str) -> bool:
    """Attach *role_name* to *user*.  Returns False if already granted."""
    role = ensure_role(session, role_name)
    if any(ur.role_id == role.id for ur in user.user_roles):
        return False
    user.user_roles.append(UserRole(role=role))
    session.flush()
    return True


def revoke_role(session: Session, user: User, role_name: str) -> bool:
    """Detach *role_name* from *user*.  Returns False if it wasn't granted."""
    for ur in list(user.user_roles):
        if ur.role.name == role_name:
            user.user_roles.remove(ur)
            session.flush()
            return True
    return False


def require_username(user: User) -> None:
    """Authoring and voting need a claimed username."""
    if not user.username:
        raise ValidationError.for_field(
            "username", "Claim a username before submitting theories or voting",
        )


def get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def find_user(engine: Engine, subject_id: str) -> User | None:
    """Look up a user by identity without creating one."""
    with Session(engine, expire_on_commit=False) as session:
        return session.scalar(select(User).where(User.identity_id == subject_id))


# ---------------------------------------------------------------------------
# Resolve
# ---------------------------------------------------------------------------
def _insert_user(session: Session, subject_id: str, email: str | None) -> User:
    """Insert a new user, falling back to the existing row if a concurrent
    request won the race on ``identity_id``."""
    user = User(identity_id=subject_id, email=email)
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(user)
            session.flush()
    except IntegrityError:
        existing = session.scalar(select(User).where(User.identity_id == subject_id))
        if existing is None:
            raise
        return existing
    logger.info("Created user %d for identity %s", user.id, subject_id)
    return user


def resolve(
    engine: Engine,
    config: LorekeeperConfig,
    subject_id: str,
    email_hint: str | None = None,
) -> User:
    """Return the user for *subject_id*, creating it on first sight.

    * New user: stored with *email_hint*; admin granted if allow-listed.
    * Existing user without an e-mail: *email_hint* is backfilled.
    * Either way the allow-list is checked against the stored e-mail.

    The returned user is detached with ``user_roles`` loaded.
    """
    email = email_hint.strip().lower() if email_hint and email_hint.strip() else None

    with Session(engine, expire_on_commit=False) as session, translate_db_errors("Resolve user"):
        user = session.scalar(select(User).where(User.identity_id == subject_id))
        if user is None:
            user = _insert_user(session, subject_id, email)
        elif user.email is None and email is not None:
            user.email = email
            logger.info("Backfilled e-mail for user %d", user.id)

        if config.is_admin_email(user.email) and grant_role(session, user, ROLE_ADMIN):
            logger.info("Granted admin to user %d via e-mail allow-list", user.id)

        session.commit()
        session.refresh(user)
        return user


# ---------------------------------------------------------------------------
# Username claim
# ---------------------------------------------------------------------------
def claim_username(engine: Engine, user_id: int, username: str) -> User:
    """One-time username claim, case-folded to lower case.

    Raises
    ------
    ValidationError
        Bad format, or the user already claimed a different name.
    ConflictError
        Another user holds the name.
    """
    wanted = clean_username(username)

    with Session(engine, expire_on_commit=False) as session, translate_db_errors("Claim username"):
        user = get_user(session, user_id)
        if user.username == wanted:
            return user
        if user.username is not None:
            raise ValidationError.for_field("username", "Username has already been set")

        taken = session.scalar(
            select(User.id).where(User.username == wanted, User.id != user_id)
        )
        if taken is not None:
            raise ConflictError("Username is already taken")

        user.username = wanted
        session.commit()
        logger.info("User %d claimed username %r", user.id, wanted)
        return user
