"""
api/main.py -- FastAPI application entry point for the Wendessen admin API.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan validates the permission catalog, opens the stores, and creates the
first admin account on an empty database. Shutdown closes the stores.

auth/ raises typed AuthError subclasses; the exception handlers below are
the only place they become HTTP responses.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.logs import router as logs_router
from api.routes.v1.permissions import router as permissions_router
from api.routes.v1.users import router as users_router
from audit.store import AuditLog
from auth.authenticator import Authenticator
from auth.catalog import validate_catalog
from auth.credentials import hash_password
from auth.errors import AuthError, PasswordChangeRequired
from auth.store import UserStore
from core.config import get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("wendessen.api")

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Catalog validation first -- a bad role default must stop the boot
         before any request can be denied because of it.
      2. Stores second -- UserStore seeds the roles table on open.
      3. Bootstrap last -- needs the super_admin role row.
    """
    logger.info("Wendessen admin API starting up")
    validate_catalog()
    app.state.user_store = UserStore()
    app.state.audit = AuditLog()
    app.state.authenticator = Authenticator(app.state.user_store)

    initial_password = app.state.user_store.ensure_admin(hash_password)
    if initial_password:
        # Shown once so the operator can log in; the account must change it.
        logger.warning("DEFAULT ADMIN CREATED -- username=admin password=%s", initial_password)

    yield

    app.state.user_store.close()
    app.state.audit.close()
    logger.info("Wendessen admin API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Wendessen Admin API",
    description="Authentication, user and permission management for the Wendessen back-office.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() calls are applied outermost-first from the caller's
# perspective. Register in the order you want the request to encounter
# them: TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

_settings = get_settings()

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


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

app.include_router(auth_router, prefix="/api/admin", tags=["Auth"])
app.include_router(users_router, prefix="/api/admin", tags=["Users"])
app.include_router(permissions_router, prefix="/api/admin", tags=["Permissions"])
app.include_router(logs_router, prefix="/api/admin", tags=["Logs"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map core auth failures to responses.

    Unauthorized (401) and Forbidden (403) stay distinct so the UI can choose
    between a login prompt and a permission-denied page. PasswordChangeRequired
    is a 303 deflection to the change-password page, with the error envelope
    as body for API clients that do not follow redirects.
    """
    response = JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(),
    )
    if isinstance(exc, PasswordChangeRequired):
        response.headers["Location"] = exc.redirect_to
    if exc.status_code >= 500:
        logger.error("%s on %s %s", exc, request.method, request.url.path, exc_info=exc.__cause__)
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


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

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the server log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit and no auth -- load balancers must always reach it.
# ---------------------------------------------------------------------------


@app.get("/api/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and a database round-trip check."""
    db_status = "ok"
    try:
        with request.app.state.user_store.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        db_status = "error"
    return HealthResponse(
        status="healthy",
        version=__version__,
        components={"app": "ok", "database": db_status},
    )
