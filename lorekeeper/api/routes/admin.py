"""
lorekeeper.api.routes.admin — Moderation, tag & role endpoints (admin only)
============================================================================
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from lorekeeper.api.auth import user_dict
from lorekeeper.api.deps import get_config, get_current_admin, get_engine
from lorekeeper.api.routes.theories import theory_dict
from lorekeeper.config import LorekeeperConfig
from lorekeeper.constants import MAX_PAGE_SIZE
from lorekeeper.database.models import Tag, User
from lorekeeper.engine.lifecycle import SplitPart
from lorekeeper.services import admin_service, tag_service, theory_service

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ModerateBody(BaseModel):
    decision: str
    title: str | None = None
    tag_ids: list[int] | None = None
    denial_reason: str | None = None


class SplitPartBody(BaseModel):
    title: str
    content: str
    tag_ids: list[int] = Field(default_factory=list)


class SplitBody(BaseModel):
    parts: list[SplitPartBody]


class TitleUpdate(BaseModel):
    title: str
    tag_ids: list[int] | None = None


class ContentUpdate(BaseModel):
    content: str


class TagCreate(BaseModel):
    name: str


class RoleAssign(BaseModel):
    role_name: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _tag_dict(t: Tag) -> dict:
    return {
        "id": t.id,
        "name": t.name,
        "created_at": t.created_at.isoformat() if t.created_at else None,
    }


# ---------------------------------------------------------------------------
# Theory queues
# ---------------------------------------------------------------------------
@router.get("/theories/pending")
def list_pending(
    admin: Annotated[User, Depends(get_current_admin)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    """Moderation queue, newest first."""
    return {"theories": [theory_dict(t) for t in theory_service.list_pending(engine)]}


@router.get("/theories/missing-title")
def list_missing_title(
    admin: Annotated[User, Depends(get_current_admin)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    """Approved theories hidden from the public list until titled."""
    return {
        "theories": [theory_dict(t) for t in theory_service.list_missing_title(engine)],
    }


@router.get("/theories/approved")
def list_approved(
    admin: Annotated[User, Depends(get_current_admin)],
    engine: Annotated[Engine, Depends(get_engine)],
    cfg: Annotated[LorekeeperConfig, Depends(get_config)],
    search: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1, le=MAX_PAGE_SIZE),
):
    size = page_size or cfg.approved_page_size
    total, theories = theory_service.list_approved(
        engine, search=search, page=page, page_size=size,
    )
    return {
        "total": total,
        "page": page,
        "page_size": size,
        "theories": [theory_dict(t) for t in theories],
    }


# ---------------------------------------------------------------------------
# Theory moderation
# ---------------------------------------------------------------------------
@router.post("/theories/{theory_id}/moderate")
def moderate_theory(
    theory_id: int,
    body: ModerateBody,
    admin: Annotated[User, Depends(get_current_admin)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    theory = theory_service.moderate(
        engine,
        moderator_id=admin.id,
        theory_id=theory_id,
        decision=body.decision,
        title=body.title,
        tag_ids=body.tag_ids,
        denial_reason=body.denial_reason,
    )
    return {"theory": theory_dict(theory)}


@router.post("/theories/{theory_id}/split", status_code=201)
def split_theory(
    theory_id: int,
    body: SplitBody,
    admin: Annotated[User, Depends(get_current_admin)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    parts = [
        SplitPart(title=p.title, content=p.content, tag_ids=tuple(p.tag_ids))
        for p in body.parts
    ]
    theories = theory_service.split(
        engine, moderator_id=admin.id, theory_id=theory_id, parts=parts,
    )
    return {"theories": [theory_dict(t) for t in theories]}


@router.patch("/theories/{theory_id}/title")
def set_title(
    theory_id: int,
    body: TitleUpdate,
    admin: Annotated[User, Depends(get_current_admin)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    theory = theory_service.set_title(
        engine, actor_id=admin.id, theory_id=theory_id,
        title=body.title, tag_ids=body.tag_ids,
    )
    return {"theory": theory_dict(theory)}


@router.patch("/theories/{theory_id}/content")
def set_content(
    theory_id: int,
    body: ContentUpdate,
    admin: Annotated[User, Depends(get_current_admin)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    theory = theory_service.set_content(
        engine, actor_id=admin.id, theory_id=theory_id, content=body.content,
    )
    return {"theory": theory_dict(theory)}


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------
@router.get("/tags")
def list_tags(
    admin: Annotated[User, Depends(get_current_admin)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    return {"tags": [_tag_dict(t) for t in tag_service.list_tags(engine)]}


@router.post("/tags", status_code=201)
def create_tag(
    body: TagCreate,
    admin: Annotated[User, Depends(get_current_admin)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    """Create-if-absent; an existing name returns the existing tag."""
    tag = tag_service.ensure(engine, body.name, actor_id=admin.id)
    return {"tag": _tag_dict(tag)}


@router.delete("/tags/{tag_id}")
def delete_tag(
    tag_id: int,
    admin: Annotated[User, Depends(get_current_admin)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    tag_service.delete_tag(engine, tag_id, actor_id=admin.id)
    return {"deleted": tag_id}


# ---------------------------------------------------------------------------
# Users & roles
# ---------------------------------------------------------------------------
@router.get("/users")
def list_users(
    admin: Annotated[User, Depends(get_current_admin)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    return {"users": [user_dict(u) for u in admin_service.list_users(engine)]}


@router.get("/roles")
def list_roles(
    admin: Annotated[User, Depends(get_current_admin)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    return {
        "roles": [
            {"id": r.id, "name": r.name, "description": r.description}
            for r in admin_service.list_roles(engine)
        ],
    }


@router.post("/users/{user_id}/roles")
def assign_role(
    user_id: int,
    body: RoleAssign,
    admin: Annotated[User, Depends(get_current_admin)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    user = admin_service.assign_role(
        engine, actor_id=admin.id, user_id=user_id, role_name=body.role_name,
    )
    return {"user": user_dict(user)}


@router.delete("/users/{user_id}/roles/{role_name}")
def remove_role(
    user_id: int,
    role_name: str,
    admin: Annotated[User, Depends(get_current_admin)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    user = admin_service.remove_role(
        engine, actor_id=admin.id, user_id=user_id, role_name=role_name,
    )
    return {"user": user_dict(user)}


# ---------------------------------------------------------------------------
# Audit Log
# ---------------------------------------------------------------------------
@router.get("/audit")
def get_audit_log(
    admin: Annotated[User, Depends(get_current_admin)],
    engine: Annotated[Engine, Depends(get_engine)],
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=MAX_PAGE_SIZE),
):
    """Paginated admin audit log."""
    total, rows = admin_service.list_audit(engine, page=page, page_size=page_size)
    return {
        "total": total,
        "page": page,
        "page_size": page_size,
        "entries": [
            {
                "id": r.id,
                "actor_id": r.actor_id,
                "action_type": r.action_type,
                "target_table": r.target_table,
                "target_id": r.target_id,
                "before_snapshot": r.before_snapshot,
                "after_snapshot": r.after_snapshot,
                "reason": r.reason,
                "timestamp": r.timestamp.isoformat() if r.timestamp else None,
            }
            for r in rows
        ],
    }
