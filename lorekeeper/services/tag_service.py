"""
lorekeeper.services.tag_service — Tag Registry
===============================================

Named tags with idempotent create-by-name.  Names are trimmed and
lower-cased; creating an existing name returns the existing tag.
Deleting a tag detaches it from every theory but leaves the theories
themselves (and their status) untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from sqlalchemy import delete, select, text
from sqlalchemy.orm import Session

from lorekeeper.database.models import AdminActionType, Tag, TheoryTag
from lorekeeper.errors import NotFoundError, ValidationError, translate_db_errors
from lorekeeper.services.admin_service import log_admin_action, row_to_dict

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

TAG_NAME_MAX_LENGTH = 64


def normalize_tag_name(name: str | None) -> str:
    cleaned = (name or "").strip().lower()
    if not cleaned:
        raise ValidationError.for_field("name", "Tag name required")
    if len(cleaned) > TAG_NAME_MAX_LENGTH:
        raise ValidationError.for_field(
            "name", f"Tag name must be at most {TAG_NAME_MAX_LENGTH} characters",
        )
    return cleaned


def load_tags(session: Session, tag_ids: Iterable[int]) -> list[Tag]:
    """Fetch tags by id, raising NotFoundError for any unknown id."""
    wanted = list(dict.fromkeys(tag_ids))
    if not wanted:
        return []
    found = {t.id: t for t in session.scalars(select(Tag).where(Tag.id.in_(wanted))).all()}
    missing = [tid for tid in wanted if tid not in found]
    if missing:
        raise NotFoundError("Tag", missing[0])
    return [found[tid] for tid in wanted]


def ensure(engine: Engine, name: str, *, actor_id: int | None = None) -> Tag:
    """Create the tag if absent and return it."""
    cleaned = normalize_tag_name(name)

    with Session(engine, expire_on_commit=False) as session, translate_db_errors("Create tag"):
        result = session.execute(
            text("""
                INSERT INTO tags (name) VALUES (:name)
                ON CONFLICT (name) DO NOTHING
            """),
            {"name": cleaned},
        )
        tag = session.scalar(select(Tag).where(Tag.name == cleaned))
        if result.rowcount == 1:
            if actor_id is not None:
                log_admin_action(
                    session,
                    actor_id=actor_id,
                    action_type=AdminActionType.CREATE,
                    target_table="tags",
                    target_id=str(tag.id),
                    before=None,
                    after=row_to_dict(tag),
                )
            logger.info("Created tag %r (id=%d)", tag.name, tag.id)
        session.commit()
        return tag


def list_tags(engine: Engine) -> list[Tag]:
    """All tags, name ascending."""
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(select(Tag).order_by(Tag.name)).all())


def delete_tag(engine: Engine, tag_id: int, *, actor_id: int) -> None:
    """Detach a tag from all theories and remove it."""
    with Session(engine) as session, translate_db_errors("Delete tag"):
        tag = session.get(Tag, tag_id)
        if tag is None:
            raise NotFoundError("Tag", tag_id)

        detached = session.execute(
            delete(TheoryTag).where(TheoryTag.tag_id == tag_id)
        ).rowcount
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.DELETE,
            target_table="tags",
            target_id=str(tag_id),
            before={**row_to_dict(tag), "detached_theories": detached},
            after=None,
        )
        session.delete(tag)
        session.commit()
        logger.info("Deleted tag %d, detached from %d theories", tag_id, detached)
