"""
lorekeeper.api.deps — FastAPI dependency injection
===================================================

Bearer tokens are verified here and never leave this module: routes only
see a :class:`VerifiedIdentity` (subject id + optional e-mail) or the
resolved :class:`~lorekeeper.database.models.User`.

Two verification modes:

* ``IDENTITY_JWKS_URL`` set — tokens are checked against the identity
  provider's published keys (RS256/ES256), with optional
  ``IDENTITY_ISSUER`` / ``IDENTITY_AUDIENCE`` claims.
* otherwise — HS256 with the shared ``JWT_SECRET``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header
from sqlalchemy import Engine

from lorekeeper.config import LorekeeperConfig, load_config
from lorekeeper.constants import ROLE_ADMIN
from lorekeeper.database.engine import create_db_engine, run_db
from lorekeeper.database.models import User
from lorekeeper.errors import AuthorizationError
from lorekeeper.services import identity_service

logger = logging.getLogger(__name__)

_WEAK_SECRETS = frozenset({
    "lorekeeper-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"
JWKS_ALGORITHMS = ["RS256", "ES256"]


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> LorekeeperConfig:
    return load_config()


@lru_cache(maxsize=1)
def _jwks_client() -> jwt.PyJWKClient | None:
    url = os.getenv("IDENTITY_JWKS_URL", "").strip()
    if not url:
        return None
    logger.info("Verifying identity tokens against JWKS at %s", url)
    return jwt.PyJWKClient(url)


# ---------------------------------------------------------------------------
# Token verification
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class VerifiedIdentity:
    subject_id: str
    email: str | None = None


def verify_token(token: str) -> VerifiedIdentity:
    """Verify *token* and extract the subject and e-mail claims.

    Raises :class:`AuthorizationError` (401) on any verification failure.
    """
    issuer = os.getenv("IDENTITY_ISSUER") or None
    audience = os.getenv("IDENTITY_AUDIENCE") or None
    client = _jwks_client()
    try:
        if client is not None:
            key = client.get_signing_key_from_jwt(token).key
            algorithms = JWKS_ALGORITHMS
        else:
            key, algorithms = JWT_SECRET, [JWT_ALGORITHM]
        payload = jwt.decode(
            token,
            key,
            algorithms=algorithms,
            issuer=issuer,
            audience=audience,
            options={"verify_aud": audience is not None},
        )
    except jwt.PyJWTError as exc:
        logger.debug("Token rejected: %s", exc)
        raise AuthorizationError.unauthenticated("Invalid token") from exc

    subject = payload.get("sub")
    if not subject or not isinstance(subject, str):
        raise AuthorizationError.unauthenticated("Invalid token: missing subject")
    email = payload.get("email")
    return VerifiedIdentity(
        subject_id=subject,
        email=email if isinstance(email, str) else None,
    )


def _bearer(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


def get_identity(
    authorization: Annotated[str | None, Header()] = None,
) -> VerifiedIdentity:
    """Require a valid bearer token.  Raises 401 otherwise."""
    token = _bearer(authorization)
    if token is None:
        raise AuthorizationError.unauthenticated("Missing token")
    return verify_token(token)


def get_optional_identity(
    authorization: Annotated[str | None, Header()] = None,
) -> VerifiedIdentity | None:
    """Like :func:`get_identity` but anonymous callers get ``None``.

    An invalid token is treated the same as no token.
    """
    token = _bearer(authorization)
    if token is None:
        return None
    try:
        return verify_token(token)
    except AuthorizationError:
        return None


# ---------------------------------------------------------------------------
# User resolution
# ---------------------------------------------------------------------------
async def get_current_user(
    identity: Annotated[VerifiedIdentity, Depends(get_identity)],
    engine: Annotated[Engine, Depends(get_engine)],
    config: Annotated[LorekeeperConfig, Depends(get_config)],
) -> User:
    """Resolve (or create on first sight) the caller's user record."""
    return await run_db(
        identity_service.resolve, engine, config, identity.subject_id, identity.email,
    )


async def get_optional_user(
    identity: Annotated[VerifiedIdentity | None, Depends(get_optional_identity)],
    engine: Annotated[Engine, Depends(get_engine)],
) -> User | None:
    """Look up the caller without creating a user row."""
    if identity is None:
        return None
    return await run_db(identity_service.find_user, engine, identity.subject_id)


def get_current_admin(
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Require the admin role.  Raises 403 otherwise."""
    if ROLE_ADMIN not in user.role_names:
        raise AuthorizationError("Admin access required")
    return user
