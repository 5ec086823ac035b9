"""
lorekeeper.database.engine — Database Connection & Async Helper
================================================================

Every moderation, vote and contribution write runs inside exactly one
SQLAlchemy transaction.  The engine defaults to ``SERIALIZABLE`` isolation
so no concurrent reader ever observes a half-applied split or a vote
without its contribution credit.  Serialization failures surface as
:class:`~lorekeeper.errors.ConflictError` and are never retried here.

SQLAlchemy + psycopg2 is **synchronous**.  Sync route handlers already run
on FastAPI's threadpool; async handlers hand blocking work to
:func:`run_db`, which ships it to a worker thread via
``asyncio.to_thread()``.

Usage::

    from lorekeeper.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS + roles

    # Inside an async route:
    user = await run_db(identity_service.resolve, engine, cfg, sub, email)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from lorekeeper.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_ISOLATION_LEVEL = "SERIALIZABLE"


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine() -> Engine:
    """Build a SQLAlchemy :class:`Engine` from the ``DATABASE_URL`` env var.

    * ``pool_size=5`` / ``max_overflow=10`` — sized for a small community site.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.
    * ``isolation_level`` — ``DB_ISOLATION_LEVEL`` env var, default
      ``SERIALIZABLE``.

    Raises
    ------
    RuntimeError
        If ``DATABASE_URL`` is not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    isolation_level = os.getenv("DB_ISOLATION_LEVEL", DEFAULT_ISOLATION_LEVEL).upper()

    engine = create_engine(
        url,
        echo=False,        # Set True for SQL debugging
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
        isolation_level=isolation_level,
    )
    logger.info(
        "Database engine created → %s (isolation=%s)", engine.url.host, isolation_level,
    )
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables and seed the fixed role set.

    Safe to call on every startup.  In production the schema is managed by
    Alembic (``alembic upgrade head``); ``create_all`` is kept for dev/test.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from lorekeeper.database.seed import seed_roles

    seed_roles(engine)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that auto-commits on success and rolls back
    on exception.

    Usage::

        with get_session(engine) as session:
            session.add(Tag(name="upside-down"))
            # commit happens automatically on block exit
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Parameters
    ----------
    func:
        Any sync callable (typically a service function taking the engine).
    *args, **kwargs:
        Forwarded to *func*.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
