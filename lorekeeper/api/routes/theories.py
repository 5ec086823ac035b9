"""
lorekeeper.api.routes.theories — Public theory listing, submit & vote
======================================================================
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import Engine

from lorekeeper.api.deps import get_current_user, get_engine, get_optional_user
from lorekeeper.database.models import Theory, User
from lorekeeper.engine.ranking import SortMode, TheoryScore
from lorekeeper.services import ranking_service, theory_service, vote_service

router = APIRouter(prefix="/theories", tags=["theories"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class TheoryCreate(BaseModel):
    content: str


class VoteCast(BaseModel):
    value: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _score_dict(s: TheoryScore) -> dict:
    return {
        "score": s.score,
        "upvotes": s.upvotes,
        "downvotes": s.downvotes,
        "caller_vote": s.caller_vote,
    }


def theory_dict(t: Theory, score: TheoryScore | None = None) -> dict:
    """Serialize a theory with author and tags; vote tallies if *score* given."""
    data = {
        "id": t.id,
        "title": t.title,
        "content": t.content,
        "status": t.status,
        "denial_reason": t.denial_reason,
        "author": {
            "id": t.author.id,
            "username": t.author.username,
            "display_name": t.author.display_name,
        },
        "moderated_by_id": t.moderated_by_id,
        "moderated_at": t.moderated_at.isoformat() if t.moderated_at else None,
        "created_at": t.created_at.isoformat() if t.created_at else None,
        "tags": [{"id": tag.id, "name": tag.name} for tag in t.tags],
    }
    if score is not None:
        data.update(_score_dict(score))
    return data


# ---------------------------------------------------------------------------
# GET /theories/top
# ---------------------------------------------------------------------------
@router.get("/top")
def top_theories(
    engine: Annotated[Engine, Depends(get_engine)],
    caller: Annotated[User | None, Depends(get_optional_user)],
    mode: str = Query(SortMode.TOP.value),
    tag_id: int | None = Query(None),
):
    """Approved, titled theories ranked by score (``top``) or recency (``new``)."""
    rows = ranking_service.top_theories(
        engine, mode=mode, tag_id=tag_id, caller_id=caller.id if caller else None,
    )
    return {"mode": mode, "theories": [theory_dict(t, s) for t, s in rows]}


# ---------------------------------------------------------------------------
# POST /theories
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def submit_theory(
    body: TheoryCreate,
    user: Annotated[User, Depends(get_current_user)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    theory = theory_service.submit(engine, author_id=user.id, content=body.content)
    return {"theory": theory_dict(theory)}


# ---------------------------------------------------------------------------
# POST /theories/{id}/vote
# ---------------------------------------------------------------------------
@router.post("/{theory_id}/vote")
def vote(
    theory_id: int,
    body: VoteCast,
    user: Annotated[User, Depends(get_current_user)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    score = vote_service.cast_vote(
        engine, voter_id=user.id, theory_id=theory_id, value=body.value,
    )
    return {"theory_id": theory_id, **_score_dict(score)}
