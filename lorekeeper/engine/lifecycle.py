"""
lorekeeper.engine.lifecycle — Theory Status Transitions & Input Checks
======================================================================

Pure rules for the moderation state machine.  No DB I/O.

States::

    pending ──approve──▶ approved ──deny (remove)──▶ denied
       │                    ▲                          │
       ├──deny──────────────┼──────────▶ denied        │
       │                    └────────approve───────────┘
       └──split──▶ (deleted, replaced by N new pending theories)

Approval credit is granted only on the transition *into* ``approved``;
re-approving an approved theory never credits twice.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from lorekeeper.constants import (
    CONTENT_MAX_LENGTH,
    CONTENT_MIN_LENGTH,
    DENIAL_REASON_MAX_LENGTH,
    MIN_SPLIT_PARTS,
    TITLE_MAX_LENGTH,
    TITLE_MIN_LENGTH,
    USERNAME_MAX_LENGTH,
    USERNAME_MIN_LENGTH,
    USERNAME_PATTERN,
    VOTE_VALUES,
)
from lorekeeper.database.models import TheoryStatus
from lorekeeper.errors import NotFoundError, ValidationError

__all__ = [
    "ModerationDecision",
    "SplitPart",
    "VALID_TRANSITIONS",
    "can_transition",
    "clean_content",
    "clean_denial_reason",
    "clean_title",
    "clean_username",
    "clean_vote_value",
    "earns_approval_credit",
    "ensure_splittable",
    "ensure_votable",
    "target_status",
    "validate_split_parts",
]


class ModerationDecision(enum.StrEnum):
    APPROVE = "approve"
    DENY = "deny"


# Moderation decisions allowed from each state.  Split is separate and only
# legal from ``pending``.
VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    TheoryStatus.PENDING: frozenset({TheoryStatus.APPROVED, TheoryStatus.DENIED}),
    TheoryStatus.APPROVED: frozenset({TheoryStatus.APPROVED, TheoryStatus.DENIED}),
    TheoryStatus.DENIED: frozenset({TheoryStatus.APPROVED, TheoryStatus.DENIED}),
}


def target_status(decision: ModerationDecision | str) -> TheoryStatus:
    try:
        decision = ModerationDecision(decision)
    except ValueError:
        raise ValidationError.for_field(
            "decision", f"Decision must be one of: {', '.join(d.value for d in ModerationDecision)}",
        ) from None
    if decision is ModerationDecision.APPROVE:
        return TheoryStatus.APPROVED
    return TheoryStatus.DENIED


def can_transition(current: str, target: str) -> bool:
    return target in VALID_TRANSITIONS.get(current, frozenset())


def earns_approval_credit(previous: str, new: str) -> bool:
    """True only when a theory enters ``approved`` from another state."""
    return new == TheoryStatus.APPROVED and previous != TheoryStatus.APPROVED


def ensure_votable(theory_id: int, status: str | None) -> None:
    """Votes are only accepted on approved theories."""
    if status != TheoryStatus.APPROVED:
        raise NotFoundError("Theory", theory_id, "Theory not found or not approved")


def ensure_splittable(theory_id: int, status: str | None) -> None:
    """Only pending theories may be split."""
    if status != TheoryStatus.PENDING:
        raise NotFoundError("Theory", theory_id, "Theory not found or not pending")


# ---------------------------------------------------------------------------
# Field checks: each returns the cleaned value or raises ValidationError
# ---------------------------------------------------------------------------
def clean_content(content: str | None, field_name: str = "content") -> str:
    text = (content or "").strip()
    if len(text) < CONTENT_MIN_LENGTH:
        raise ValidationError.for_field(field_name, "Content is required")
    if len(text) > CONTENT_MAX_LENGTH:
        raise ValidationError.for_field(
            field_name, f"Content must be at most {CONTENT_MAX_LENGTH} characters",
        )
    return text


def clean_title(title: str | None, field_name: str = "title") -> str:
    text = (title or "").strip()
    if not text:
        raise ValidationError.for_field(field_name, "Title is required")
    if not TITLE_MIN_LENGTH <= len(text) <= TITLE_MAX_LENGTH:
        raise ValidationError.for_field(
            field_name,
            f"Title must be {TITLE_MIN_LENGTH}-{TITLE_MAX_LENGTH} characters",
        )
    return text


def clean_denial_reason(reason: str | None) -> str | None:
    text = (reason or "").strip()
    if not text:
        return None
    if len(text) > DENIAL_REASON_MAX_LENGTH:
        raise ValidationError.for_field(
            "denial_reason",
            f"Denial reason must be at most {DENIAL_REASON_MAX_LENGTH} characters",
        )
    return text


def clean_username(username: str | None) -> str:
    text = (username or "").strip()
    if not USERNAME_MIN_LENGTH <= len(text) <= USERNAME_MAX_LENGTH:
        raise ValidationError.for_field(
            "username",
            f"Username must be {USERNAME_MIN_LENGTH}-{USERNAME_MAX_LENGTH} characters",
        )
    if not USERNAME_PATTERN.match(text):
        raise ValidationError.for_field(
            "username", "Username may only contain letters, numbers and underscores",
        )
    return text.lower()


def clean_vote_value(value: int) -> int:
    if value not in VOTE_VALUES:
        raise ValidationError.for_field("value", "Vote value must be 1 or -1")
    return value


# ---------------------------------------------------------------------------
# Split
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SplitPart:
    """One replacement theory produced by a split."""

    title: str
    content: str
    tag_ids: tuple[int, ...] = field(default_factory=tuple)


def validate_split_parts(parts: Sequence[SplitPart | dict]) -> list[SplitPart]:
    """Clean every part, collecting all field errors before raising."""
    if len(parts) < MIN_SPLIT_PARTS:
        raise ValidationError.for_field(
            "parts", f"A split needs at least {MIN_SPLIT_PARTS} parts",
        )

    cleaned: list[SplitPart] = []
    details: list[dict[str, str]] = []
    for i, part in enumerate(parts):
        if isinstance(part, dict):
            title, content = part.get("title"), part.get("content")
            tag_ids: Iterable[int] = part.get("tag_ids") or ()
        else:
            title, content, tag_ids = part.title, part.content, part.tag_ids
        try:
            cleaned.append(SplitPart(
                title=clean_title(title, f"parts[{i}].title"),
                content=clean_content(content, f"parts[{i}].content"),
                tag_ids=tuple(dict.fromkeys(tag_ids)),
            ))
        except ValidationError as exc:
            details.extend(exc.details)

    if details:
        raise ValidationError("Invalid split parts", details)
    return cleaned
