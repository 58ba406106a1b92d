"""
api/main.py -- FastAPI application entry point for the portfolio CMS API.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- CORS headers and preflight for the configured origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter
  3. log_requests       -- one log line per request with latency and client IP

Lifespan handles startup (stores, RBAC seed, purge task) and shutdown
(cancel purge task, close DB connections) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.about import router as about_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.experiences import router as experiences_router
from api.routes.v1.projects import router as projects_router
from api.routes.v1.users import router as users_router
from auth.rbac import seed_rbac
from auth.sessions import get_client_ip
from auth.store import UserStore
from content.store import ContentStore
from core.config import get_settings
from core.errors import AppError

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("portfolio.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------

_PURGE_INTERVAL_SECONDS = 6 * 60 * 60


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired refresh tokens every 6 hours.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(_PURGE_INTERVAL_SECONDS)
        removed = app.state.user_store.purge_expired_refresh_tokens()
        logger.info("Purged %d expired refresh tokens", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open both stores, seed RBAC, start the purge task; undo it all on shutdown.

    Seeding runs before the first request so role and permission checks never
    see an empty catalogue.
    """
    logger.info("Portfolio API starting up (env=%s)", _settings.app_env)
    app.state.user_store = UserStore(_settings.database_url)
    app.state.content_store = ContentStore(_settings.database_url)

    if _settings.seed_on_startup:
        counts = seed_rbac(app.state.user_store)
        logger.info("RBAC seeded: %s", counts)

    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.content_store.close()
    app.state.user_store.close()
    logger.info("Portfolio API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Portfolio CMS API",
    description="Portfolio content management with JWT authentication and role-based access control.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette wraps each newly added middleware around the existing stack, so
# registration runs innermost first: log_requests, SlowAPI, then CORS outermost.
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
        get_client_ip(request),
    )
    return response


app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Admin: Users"])
app.include_router(about_router, prefix="/api/v1", tags=["About"])
app.include_router(projects_router, prefix="/api/v1", tags=["Projects"])
app.include_router(experiences_router, prefix="/api/v1", tags=["Experiences"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump(),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return _error_response(exc.status_code, exc.code, exc.message)


# Sync on purpose: SlowAPIMiddleware invokes this handler without awaiting it.
@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with the route's configured message and a Retry-After hint."""
    response = _error_response(429, "TOO_MANY_REQUESTS", str(exc.detail))
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60)))
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 VALIDATION_ERROR carrying the first failing field's message."""
    errors = exc.errors()
    message = "Request validation failed"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return _error_response(400, "VALIDATION_ERROR", message)


_HTTP_CODES = {404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap framework-raised HTTP errors (unknown route, wrong method) in the envelope."""
    code = _HTTP_CODES.get(exc.status_code, f"HTTP_{exc.status_code}")
    response = _error_response(exc.status_code, code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. The exception is logged, never returned."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit and no auth: load balancers must always reach it.
# ---------------------------------------------------------------------------


def _database_ok(request: Request) -> bool:
    try:
        return request.app.state.user_store.ping() and request.app.state.content_store.ping()
    except SQLAlchemyError as exc:
        logger.error("Health check database ping failed: %s", exc)
        return False


@app.get("/api/v1/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Return liveness, version, environment and a database round-trip result.

    A failed database ping still returns the payload, with status "unhealthy"
    and HTTP 503.
    """
    db_ok = _database_ok(request)
    payload = HealthResponse(
        status="ok" if db_ok else "unhealthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        environment=_settings.app_env,
        version=API_VERSION,
        database="ok" if db_ok else "error",
    )
    return JSONResponse(status_code=200 if db_ok else 503, content=payload.model_dump())
