"""
lorekeeper.api.main — FastAPI application entry point
======================================================

Run with::

    uvicorn lorekeeper.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from lorekeeper import __version__  # noqa: E402
from lorekeeper.api.auth import router as auth_router  # noqa: E402
from lorekeeper.api.deps import get_engine  # noqa: E402
from lorekeeper.api.routes.admin import router as admin_router  # noqa: E402
from lorekeeper.api.routes.contributions import router as contributions_router  # noqa: E402
from lorekeeper.api.routes.theories import router as theories_router  # noqa: E402
from lorekeeper.errors import LorekeeperError, UnexpectedError, ValidationError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    logger.info("Lorekeeper API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Lorekeeper API shutting down")


app = FastAPI(
    title="Lorekeeper API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error rendering: every failure becomes {"error": {type, message, details}}
# ---------------------------------------------------------------------------
def _error_response(exc: LorekeeperError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(LorekeeperError)
async def lorekeeper_error_handler(request: Request, exc: LorekeeperError):
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            # drop the leading "body"/"query"/"path" segment
            "field": ".".join(str(part) for part in err["loc"][1:]) or str(err["loc"][0]),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    return _error_response(ValidationError("Invalid request", details))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(UnexpectedError())


# Mount routers
app.include_router(auth_router, prefix="/api")
app.include_router(theories_router, prefix="/api")
app.include_router(contributions_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
