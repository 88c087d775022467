"""
api/main.py -- FastAPI application entry point for Foundry Admin.

Exposes the admin JSON API: sessions, user management, the audit trail,
collection content, the about page and site settings, reordering and the
public contact form.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- default limits; per-route limits come from @limiter.limit

Service lifecycle:
  The lifespan builds every process-wide handle (user store, document store,
  audit store + logger, response cache, session verifier) from Settings and
  hands them to attach_services(), which is the only place app.state is
  populated. Shutdown closes them in reverse order. Tests swap the lifespan
  and call attach_services() with in-memory stores and fakes.
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
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.audit import router as audit_router
from api.routes.auth import router as auth_router
from api.routes.contact import router as contact_router
from api.routes.content import router as content_router
from api.routes.reorder import router as reorder_router
from api.routes.site import router as site_router
from api.routes.users import router as users_router
from audit.logger import AuditLogger
from audit.store import AuditStore
from auth.session import SessionVerifier
from auth.store import UserStore
from cache.store import ResponseCache
from content.store import DocumentStore
from core.config import get_settings
from core.errors import STATUS_BY_KIND, AppError, ErrorKind

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("foundry.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def attach_services(
    app: FastAPI,
    *,
    user_store: UserStore,
    documents: DocumentStore,
    audit_store: AuditStore,
    cache: ResponseCache,
) -> None:
    """Populate app.state with the service handles every route depends on."""
    app.state.user_store = user_store
    app.state.documents = documents
    app.state.audit_store = audit_store
    app.state.audit = AuditLogger(audit_store)
    app.state.cache = cache
    app.state.session_verifier = SessionVerifier(user_store)


def close_services(app: FastAPI) -> None:
    app.state.cache.close()
    app.state.audit_store.close()
    app.state.documents.close()
    app.state.user_store.close()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build service handles on startup and release them on shutdown.

    All three stores share DATABASE_URL; each owns its engine and tables.
    """
    logger.info("Foundry Admin API starting up")
    attach_services(
        app,
        user_store=UserStore(_settings.database_url),
        documents=DocumentStore(_settings.database_url),
        audit_store=AuditStore(_settings.database_url),
        cache=ResponseCache(ttl=_settings.cache_ttl_seconds),
    )
    if not app.state.user_store.has_super_admin():
        logger.warning("No super admin exists yet -- run `python main.py bootstrap` or POST /api/bootstrap")
    logger.info("Services initialized")

    yield

    close_services(app)
    logger.info("Foundry Admin API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Foundry Admin API",
    description="Admin content management with role-based access control and an audit trail.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


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

app.include_router(auth_router, prefix="/api", tags=["Sessions"])
app.include_router(users_router, prefix="/api", tags=["Users"])
app.include_router(audit_router, prefix="/api", tags=["Audit"])
app.include_router(reorder_router, prefix="/api", tags=["Content"])
app.include_router(contact_router, prefix="/api", tags=["Contact"])
app.include_router(content_router, prefix="/api", tags=["Content"])
app.include_router(site_router, prefix="/api", tags=["Content"])
# The admin route guard and web pages are mounted by asgi.py, not here.

# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler returns the same ErrorResponse envelope. Status codes come
# from core.errors.STATUS_BY_KIND -- never from inspecting message text.
# ---------------------------------------------------------------------------


def _error_response(kind: ErrorKind, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_KIND[kind],
        content=ErrorResponse(error=ErrorDetail(code=kind.value, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.kind is ErrorKind.internal_error:
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc.message)
    return _error_response(exc.kind, exc.message, exc.detail)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and params are validation errors (400)."""
    return _error_response(ErrorKind.validation_error, "Request validation failed.", str(exc.errors()))


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded.

    Sync because SlowAPIMiddleware calls this handler directly, without awaiting.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(code="rate_limited", message="Too many requests. Please try again later.", detail=str(exc))
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail))).model_dump(),
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Backing-store failures are internal errors. Details stay in the server log."""
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _error_response(ErrorKind.internal_error, "An unexpected error occurred.")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. The client gets a generic message only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(ErrorKind.internal_error, "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness, version, and a database reachability check."""
    database_ok = request.app.state.user_store.ping()
    return HealthResponse(
        version=VERSION,
        components={"app": "ok", "database": "ok" if database_ok else "error"},
    )
