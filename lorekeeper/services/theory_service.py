"""
lorekeeper.services.theory_service — Theory Moderation State Machine
=====================================================================

Owns every write to a theory: submission, approve/deny, split, and the
admin title/content edits.  Transition rules live in
:mod:`lorekeeper.engine.lifecycle`; this module applies them inside one
transaction per operation.

Concurrency: moderation reads the theory with ``SELECT … FOR UPDATE`` so
two moderators acting on the same theory are serialized, and the
"was it already approved?" check that gates the author's approval credit
is made against the locked row.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from lorekeeper.constants import MAX_PAGE_SIZE
from lorekeeper.database.models import (
    AdminActionType,
    ContributionType,
    Tag,
    Theory,
    TheoryStatus,
    TheoryTag,
    User,
)
from lorekeeper.engine.lifecycle import (
    ModerationDecision,
    SplitPart,
    can_transition,
    clean_content,
    clean_denial_reason,
    clean_title,
    earns_approval_credit,
    ensure_splittable,
    target_status,
    validate_split_parts,
)
from lorekeeper.errors import NotFoundError, ValidationError, translate_db_errors
from lorekeeper.services import contribution_service
from lorekeeper.services.admin_service import log_admin_action, theory_snapshot
from lorekeeper.services.identity_service import get_user, require_username
from lorekeeper.services.tag_service import load_tags

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------
def _theory_select():
    return select(Theory).options(
        selectinload(Theory.author),
        selectinload(Theory.theory_tags).selectinload(TheoryTag.tag),
    )


def _load_stmt(theory_id: int, *, lock: bool = False):
    """SELECT for one theory; with *lock*, FOR UPDATE OF theories."""
    stmt = _theory_select().where(Theory.id == theory_id).execution_options(
        populate_existing=True,
    )
    if lock:
        stmt = stmt.with_for_update(of=Theory)
    return stmt


def _load(session: Session, theory_id: int, *, lock: bool = False) -> Theory:
    """Fetch a theory with author and tags loaded, optionally row-locked."""
    theory = session.scalar(_load_stmt(theory_id, lock=lock))
    if theory is None:
        raise NotFoundError("Theory", theory_id)
    return theory


def _replace_tags(session: Session, theory: Theory, tags: Iterable[Tag]) -> None:
    theory.theory_tags.clear()
    session.flush()
    theory.theory_tags.extend(TheoryTag(tag=tag) for tag in tags)
    session.flush()


def _optional_title(title: str | None) -> str | None:
    if title is None or not title.strip():
        return None
    return clean_title(title)


def get_theory(engine: Engine, theory_id: int) -> Theory:
    with Session(engine, expire_on_commit=False) as session:
        return _load(session, theory_id)


# ---------------------------------------------------------------------------
# Submit
# ---------------------------------------------------------------------------
def submit(engine: Engine, *, author_id: int, content: str) -> Theory:
    """Create a pending theory authored by *author_id*.

    Raises
    ------
    ValidationError
        Content out of bounds, or the author has no username.
    """
    text = clean_content(content)

    with Session(engine, expire_on_commit=False) as session, translate_db_errors("Submit theory"):
        author = get_user(session, author_id)
        require_username(author)

        theory = Theory(
            created_by_id=author.id,
            content=text,
            status=TheoryStatus.PENDING.value,
        )
        session.add(theory)
        session.flush()
        theory = _load(session, theory.id)
        session.commit()

    logger.info("User %d submitted theory %d", author_id, theory.id)
    return theory


# ---------------------------------------------------------------------------
# Moderate (approve / deny)
# ---------------------------------------------------------------------------
def moderate(
    engine: Engine,
    *,
    moderator_id: int,
    theory_id: int,
    decision: ModerationDecision | str,
    title: str | None = None,
    tag_ids: Sequence[int] | None = None,
    denial_reason: str | None = None,
) -> Theory:
    """Approve or deny a theory.

    ``approve`` needs a title (given now or already stored), replaces the
    whole tag set with *tag_ids* (``None`` meaning empty), and credits the
    author once on the first entry into ``approved``.

    ``deny`` records the optional reason and leaves tags and contribution
    credit untouched.  Denying an approved theory is the "remove" action.
    """
    new_status = target_status(decision)
    new_title = _optional_title(title)
    reason = clean_denial_reason(denial_reason)

    with Session(engine, expire_on_commit=False) as session, translate_db_errors("Moderate theory"):
        theory = _load(session, theory_id, lock=True)
        get_user(session, moderator_id)

        previous = theory.status
        if not can_transition(previous, new_status):
            raise NotFoundError(
                "Theory", theory_id,
                f"Theory cannot move from '{previous}' to '{new_status}'",
            )
        before = theory_snapshot(theory)

        if new_status == TheoryStatus.APPROVED:
            final_title = new_title or theory.title
            if not final_title:
                raise ValidationError.for_field(
                    "title", "A title is required to approve a theory",
                )
            tags = load_tags(session, tag_ids or ())
            theory.title = final_title
            theory.denial_reason = None
            _replace_tags(session, theory, tags)
        else:
            theory.denial_reason = reason

        theory.status = new_status.value
        theory.moderated_by_id = moderator_id
        theory.moderated_at = datetime.now(UTC)

        credited = False
        if earns_approval_credit(previous, new_status):
            credited = contribution_service.credit(
                session, theory.created_by_id, theory.id, ContributionType.THEORY_APPROVED,
            )

        session.flush()
        log_admin_action(
            session,
            actor_id=moderator_id,
            action_type=AdminActionType.MODERATE,
            target_table="theories",
            target_id=str(theory.id),
            before=before,
            after=theory_snapshot(theory),
            reason=reason,
        )
        theory = _load(session, theory.id)
        session.commit()

    logger.info(
        "Moderator %d set theory %d %s → %s%s",
        moderator_id, theory_id, previous, new_status.value,
        " (author credited)" if credited else "",
    )
    return theory


# ---------------------------------------------------------------------------
# Split
# ---------------------------------------------------------------------------
def split(
    engine: Engine,
    *,
    moderator_id: int,
    theory_id: int,
    parts: Sequence[SplitPart | dict],
) -> list[Theory]:
    """Replace a pending theory with ``len(parts)`` new pending theories.

    Each new theory keeps the original author and gets its own title,
    content and tag set.  The delete and all inserts share one transaction.

    Raises
    ------
    ValidationError
        Fewer than two parts, or a part with a bad title/content.
    NotFoundError
        Theory unknown or not pending, or an unknown tag id.
    """
    cleaned = validate_split_parts(parts)

    with Session(engine, expire_on_commit=False) as session, translate_db_errors("Split theory"):
        original = _load(session, theory_id, lock=True)
        ensure_splittable(theory_id, original.status)
        get_user(session, moderator_id)

        tags_by_part = [load_tags(session, part.tag_ids) for part in cleaned]
        before = theory_snapshot(original)
        author_id = original.created_by_id

        session.delete(original)
        session.flush()

        replacements = []
        for part, tags in zip(cleaned, tags_by_part):
            theory = Theory(
                created_by_id=author_id,
                title=part.title,
                content=part.content,
                status=TheoryStatus.PENDING.value,
            )
            theory.theory_tags = [TheoryTag(tag=tag) for tag in tags]
            replacements.append(theory)
        session.add_all(replacements)
        session.flush()

        new_ids = [t.id for t in replacements]
        log_admin_action(
            session,
            actor_id=moderator_id,
            action_type=AdminActionType.SPLIT,
            target_table="theories",
            target_id=str(theory_id),
            before=before,
            after={"theory_ids": new_ids},
        )
        result = [_load(session, tid) for tid in new_ids]
        session.commit()

    logger.info("Moderator %d split theory %d into %s", moderator_id, theory_id, new_ids)
    return result


# ---------------------------------------------------------------------------
# Metadata edits
# ---------------------------------------------------------------------------
def set_title(
    engine: Engine,
    *,
    actor_id: int,
    theory_id: int,
    title: str,
    tag_ids: Sequence[int] | None = None,
) -> Theory:
    """Retitle (and optionally retag) any theory without changing status."""
    new_title = clean_title(title)

    with Session(engine, expire_on_commit=False) as session, translate_db_errors("Set title"):
        theory = _load(session, theory_id, lock=True)
        before = theory_snapshot(theory)

        theory.title = new_title
        if tag_ids is not None:
            _replace_tags(session, theory, load_tags(session, tag_ids))

        session.flush()
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.UPDATE,
            target_table="theories",
            target_id=str(theory.id),
            before=before,
            after=theory_snapshot(theory),
        )
        theory = _load(session, theory.id)
        session.commit()

    logger.info("Admin %d retitled theory %d", actor_id, theory_id)
    return theory


def set_content(engine: Engine, *, actor_id: int, theory_id: int, content: str) -> Theory:
    """Replace a theory's content; status, title and tags are untouched."""
    text = clean_content(content)

    with Session(engine, expire_on_commit=False) as session, translate_db_errors("Set content"):
        theory = _load(session, theory_id, lock=True)
        before = theory_snapshot(theory)

        theory.content = text
        session.flush()
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.UPDATE,
            target_table="theories",
            target_id=str(theory.id),
            before=before,
            after=theory_snapshot(theory),
        )
        theory = _load(session, theory.id)
        session.commit()

    logger.info("Admin %d edited content of theory %d", actor_id, theory_id)
    return theory


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------
def list_pending(engine: Engine) -> list[Theory]:
    """Pending theories, newest first."""
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            _theory_select()
            .where(Theory.status == TheoryStatus.PENDING.value)
            .order_by(Theory.created_at.desc(), Theory.id.desc())
        ).all())


def list_missing_title(engine: Engine) -> list[Theory]:
    """Approved theories without a title, most recently moderated first."""
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            _theory_select()
            .where(
                Theory.status == TheoryStatus.APPROVED.value,
                Theory.title.is_(None),
            )
            .order_by(Theory.moderated_at.desc().nulls_last(), Theory.id.desc())
        ).all())


def _like_pattern(search: str) -> str:
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def list_approved(
    engine: Engine,
    *,
    search: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[int, list[Theory]]:
    """Titled approved theories, newest first, with optional search.

    *search* is a case-insensitive substring match over title, content,
    author username/name/e-mail and tag names.  Returns (total, page rows).
    """
    if page < 1:
        raise ValidationError.for_field("page", "Page must be at least 1")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValidationError.for_field(
            "page_size", f"Page size must be between 1 and {MAX_PAGE_SIZE}",
        )

    conditions = [
        Theory.status == TheoryStatus.APPROVED.value,
        Theory.title.is_not(None),
    ]
    term = (search or "").strip()
    if term:
        pattern = _like_pattern(term)
        conditions.append(or_(
            Theory.title.ilike(pattern, escape="\\"),
            Theory.content.ilike(pattern, escape="\\"),
            Theory.author.has(or_(
                User.username.ilike(pattern, escape="\\"),
                User.name.ilike(pattern, escape="\\"),
                User.email.ilike(pattern, escape="\\"),
            )),
            Theory.theory_tags.any(
                TheoryTag.tag.has(Tag.name.ilike(pattern, escape="\\"))
            ),
        ))

    with Session(engine, expire_on_commit=False) as session:
        total = session.scalar(
            select(func.count()).select_from(Theory).where(*conditions)
        ) or 0
        rows = session.scalars(
            _theory_select()
            .where(*conditions)
            .order_by(Theory.created_at.desc(), Theory.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return total, list(rows)
