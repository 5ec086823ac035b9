"""
lorekeeper.database.seed — Role Seeder
=======================================

Inserts the fixed role set (admin, editor, reader) on startup.
Idempotent — only inserts roles that don't already exist.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from lorekeeper.constants import ROLE_DESCRIPTIONS
from lorekeeper.database.models import Role

logger = logging.getLogger(__name__)


def ensure_role(session: Session, name: str) -> Role:
    """Fetch a role by name, inserting it if missing (within *session*)."""
    role = session.scalar(select(Role).where(Role.name == name))
    if role is None:
        role = Role(name=name, description=ROLE_DESCRIPTIONS.get(name))
        session.add(role)
        session.flush()
    return role


def seed_roles(engine: Engine) -> None:
    """Insert any missing roles from :data:`ROLE_DESCRIPTIONS`."""
    session = Session(engine)
    inserted = 0
    try:
        existing = set(session.scalars(select(Role.name)).all())
        for name, description in ROLE_DESCRIPTIONS.items():
            if name not in existing:
                session.add(Role(name=name, description=description))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d roles.", inserted)
