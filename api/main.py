"""
api/main.py -- FastAPI application entry point for the static-admin auth service.

Exposes the auth subsystem (password login, sessions, password reset, user
administration, first-run setup and GitHub OAuth) over HTTP for the admin UI.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware  -- adds CORS headers for allowed browser origins
  2. log_requests    -- one log line per request with latency

Lifespan builds the AuthManager (schema + migrations), the optional mail
service and the optional GitHub OAuth config, and closes the database on
shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.github import router as github_router
from api.routes.v1.install import router as install_router
from api.routes.v1.users import router as users_router
from auth.errors import (
    AuthError,
    InvalidCredentials,
    InvariantViolation,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from auth.mail import create_mail_service
from auth.manager import AuthManager
from core.config import auth_config_from_settings, get_settings, github_config_from_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("static_admin.api")

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build shared resources on startup and release them on shutdown.

    AuthManager.initialize() is idempotent, so every start runs the schema
    and migration pass. A failure here aborts startup rather than serving
    requests against a half-migrated database.
    """
    settings = get_settings()
    if settings.debug:
        logging.getLogger("static_admin").setLevel(logging.DEBUG)
    logger.info("static-admin auth API starting up")

    auth = AuthManager(auth_config_from_settings(settings))
    auth.initialize()
    app.state.auth = auth
    app.state.mail = create_mail_service(settings)
    app.state.github_config = github_config_from_settings(settings)
    logger.info(
        "Auth initialized (backend=%s, github=%s, needs_setup=%s)",
        "remote" if settings.database_remote_url else "sqlite",
        app.state.github_config is not None,
        not auth.has_any_users(),
    )

    yield

    auth.close()
    logger.info("static-admin auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="static-admin auth API",
    description="Users, sessions, password reset and GitHub OAuth for the static-admin panel.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(github_router, prefix="/api/v1", tags=["GitHub OAuth"])
app.include_router(install_router, prefix="/api/v1", tags=["Install"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

# Most specific first: LastAdminError is an InvariantViolation.
_AUTH_ERROR_STATUS: tuple[tuple[type[AuthError], int], ...] = (
    (ValidationError, 400),
    (InvalidCredentials, 401),
    (NotFoundError, 404),
    (InvariantViolation, 409),
    (ProviderError, 502),
)


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump(exclude_none=True),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map the auth error taxonomy to HTTP statuses.

    StorageError and any unmapped AuthError are server faults: logged with
    the traceback, answered with the generic 500 body.
    """
    for exc_type, status_code in _AUTH_ERROR_STATUS:
        if isinstance(exc, exc_type):
            return _error_response(status_code, exc.code, exc.message)
    logger.error("Auth backend failure on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Unique-constraint races (e.g. two creates with one email) become 409.

    The SQL statement is in str(exc); it goes to the log only.
    """
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return _error_response(409, "conflict", "A record with these values already exists")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers and dependencies raise HTTPException with a
    {"code", "message"} dict as detail; use it directly as the error field.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
            headers=getattr(exc, "headers", None),
        )
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body:
    database errors carry SQL text and parameters.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)
