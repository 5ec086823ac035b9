"""
lorekeeper.api.routes.contributions — Leaderboard & stats
==========================================================
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from lorekeeper.api.deps import get_config, get_engine, get_optional_user
from lorekeeper.config import LorekeeperConfig
from lorekeeper.database.models import User
from lorekeeper.services import contribution_service, ranking_service

router = APIRouter(prefix="/contributions", tags=["contributions"])


@router.get("/stats")
def stats(engine: Annotated[Engine, Depends(get_engine)]):
    """Landing-page counters: total contributions and distinct contributors."""
    return contribution_service.stats(engine)


@router.get("/leaderboard")
def leaderboard(
    engine: Annotated[Engine, Depends(get_engine)],
    config: Annotated[LorekeeperConfig, Depends(get_config)],
    caller: Annotated[User | None, Depends(get_optional_user)],
):
    return ranking_service.leaderboard(
        engine,
        limit=config.leaderboard_limit,
        caller_id=caller.id if caller else None,
    )
