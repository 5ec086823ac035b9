"""
lorekeeper.api.auth — Current user & username claim
====================================================
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import Engine

from lorekeeper.api.deps import get_current_user, get_engine
from lorekeeper.database.models import User
from lorekeeper.services import identity_service

router = APIRouter(prefix="/auth", tags=["auth"])


class UsernameClaim(BaseModel):
    username: str


def user_dict(u: User) -> dict:
    return {
        "id": u.id,
        "identity_id": u.identity_id,
        "email": u.email,
        "name": u.name,
        "username": u.username,
        "display_name": u.display_name,
        "roles": u.role_names,
        "created_at": u.created_at.isoformat() if u.created_at else None,
    }


def _me(u: User) -> dict:
    return {**user_dict(u), "needs_username": u.username is None}


@router.get("/me")
def me(user: Annotated[User, Depends(get_current_user)]):
    """Resolve the caller, creating the user on first sight."""
    return _me(user)


@router.post("/username")
def claim_username(
    body: UsernameClaim,
    user: Annotated[User, Depends(get_current_user)],
    engine: Annotated[Engine, Depends(get_engine)],
):
    updated = identity_service.claim_username(engine, user.id, body.username)
    return _me(updated)
