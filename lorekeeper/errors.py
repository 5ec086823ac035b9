"""
lorekeeper.errors — Error Taxonomy
===================================

Every service operation either returns its result or raises one of the
errors below.  The API layer renders them uniformly as::

    {"error": {"type": "<error_type>", "message": "...", "details": [...]}}

``details`` is a list of ``{"field": ..., "message": ...}`` entries and is
only populated for validation failures on structured input.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATEs for serialization_failure and deadlock_detected
_RETRYABLE_PGCODES = frozenset({"40001", "40P01"})


class LorekeeperError(Exception):
    """Base class for all errors surfaced to API callers."""

    error_type = "lorekeeper_error"
    status_code = 500

    def __init__(self, message: str, details: list[dict[str, str]] | None = None):
        self.message = message
        self.details = details or []
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.error_type,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(LorekeeperError):
    """Malformed input; always fixable by the caller."""

    error_type = "validation_error"
    status_code = 400

    @classmethod
    def for_field(cls, field: str, message: str) -> ValidationError:
        return cls(message, [{"field": field, "message": message}])


class NotFoundError(LorekeeperError):
    """Referenced entity is missing, or is in the wrong state for the operation."""

    error_type = "not_found"
    status_code = 404

    def __init__(self, entity: str, identifier: object | None = None, message: str | None = None):
        if message is None:
            message = (
                f"{entity} '{identifier}' not found" if identifier is not None
                else f"{entity} not found"
            )
        super().__init__(message)
        self.entity = entity
        self.identifier = identifier


class AuthorizationError(LorekeeperError):
    """Caller is unauthenticated (401) or lacks the admin role (403)."""

    error_type = "forbidden"
    status_code = 403

    @classmethod
    def unauthenticated(cls, message: str = "Authentication required") -> AuthorizationError:
        err = cls(message)
        err.error_type = "unauthorized"
        err.status_code = 401
        return err


class ConflictError(LorekeeperError):
    """Uniqueness violation or concurrent write surfaced by the datastore."""

    error_type = "conflict"
    status_code = 409


class UnexpectedError(LorekeeperError):
    """Anything else.  The caller only ever sees a generic message."""

    error_type = "unexpected_error"
    status_code = 500

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message)


# ---------------------------------------------------------------------------
# Datastore error translation
# ---------------------------------------------------------------------------
@contextmanager
def translate_db_errors(operation: str) -> Iterator[None]:
    """Map SQLAlchemy failures raised inside a transaction to the taxonomy.

    Domain errors raised inside the block pass through untouched.
    """
    try:
        yield
    except IntegrityError as exc:
        logger.warning("%s: constraint violation (%s)", operation, exc.orig)
        raise ConflictError(f"{operation} conflicted with a concurrent change") from exc
    except OperationalError as exc:
        if getattr(exc.orig, "pgcode", None) in _RETRYABLE_PGCODES:
            logger.warning("%s: serialization failure, caller may retry", operation)
            raise ConflictError(
                f"{operation} conflicted with a concurrent change, please retry"
            ) from exc
        logger.exception("%s: database error", operation)
        raise UnexpectedError() from exc
    except SQLAlchemyError as exc:
        logger.exception("%s: database error", operation)
        raise UnexpectedError() from exc
