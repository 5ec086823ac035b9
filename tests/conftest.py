"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of lorekeeper.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine, event  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from lorekeeper.config import LorekeeperConfig  # noqa: E402
from lorekeeper.database.models import Base, User  # noqa: E402
from lorekeeper.database.seed import seed_roles  # noqa: E402
from lorekeeper.services import identity_service  # noqa: E402

ADMIN_EMAIL = "mod@example.com"


def _sqlite_engine() -> Engine:
    """In-memory SQLite with real SAVEPOINT support and FK enforcement.

    pysqlite's own transaction handling is switched off so SQLAlchemy emits
    BEGIN itself; otherwise ``begin_nested()`` releases into autocommit.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Lorekeeper tables and roles.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in the API dependencies).
    """
    engine = _sqlite_engine()
    Base.metadata.create_all(engine)
    seed_roles(engine)
    return engine


@pytest.fixture
def config() -> LorekeeperConfig:
    return LorekeeperConfig(
        community_name="Test Board",
        admin_emails=frozenset({ADMIN_EMAIL}),
    )


def make_user(
    engine: Engine,
    config: LorekeeperConfig,
    subject: str,
    *,
    username: str | None = None,
    email: str | None = None,
) -> User:
    """Resolve a user and optionally claim a username.  Usable as a factory."""
    user = identity_service.resolve(engine, config, subject, email)
    if username is not None:
        user = identity_service.claim_username(engine, user.id, username)
    return user


@pytest.fixture
def author(db_engine, config) -> User:
    return make_user(db_engine, config, "sub-author", username="alice", email="alice@example.com")


@pytest.fixture
def voter(db_engine, config) -> User:
    return make_user(db_engine, config, "sub-voter", username="victor", email="victor@example.com")


@pytest.fixture
def moderator(db_engine, config) -> User:
    return make_user(db_engine, config, "sub-mod", username="moddy", email=ADMIN_EMAIL)


def make_token(sub: str = "sub-author", email: str | None = None) -> str:
    """Create an HS256 identity token.  Usable as both a fixture and a factory."""
    import jwt

    from lorekeeper.api.deps import JWT_ALGORITHM, JWT_SECRET

    claims: dict = {"sub": sub}
    if email is not None:
        claims["email"] = email
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db_engine, config):
    """FastAPI TestClient wired to the in-memory engine and test config."""
    from fastapi.testclient import TestClient

    from lorekeeper.api.deps import get_config, get_engine
    from lorekeeper.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: config
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
