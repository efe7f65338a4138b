"""
api/main.py -- FastAPI application entry point for Jesusgram.

Exposes the SocialService operation set over HTTP as JSON.

Run with:      python main.py [port]
               uvicorn api.main:app --reload

Starlette wraps each added middleware around the previous ones, so a request
meets log_requests, SlowAPI, CORS and TrustedHost in that order.

Lifespan handles startup (store + service, optional guest account) and
shutdown (dispose the connection pool) symmetrically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from core.config import get_settings
from core.errors import AppError
from social.services import SocialService
from social.store import SocialStore

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("jesusgram.api")

_settings = get_settings()

# Taxonomy name -> HTTP status.
_STATUS_BY_ERROR: dict[str, int] = {
    "FAIL": 500,
    "BAD_REQUEST": 400,
    "NOT_FOUND": 404,
    "ALREADY_EXISTS": 409,
    "EXT_SVC_FAIL": 503,
    "UNAUTHENTICATED": 401,
    "FORBIDDEN": 403,
}

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage the store's connection pool across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The store is created once here and shared by every request via
    app.state -- no per-request connect/disconnect.
    """
    logger.info("Jesusgram API starting up")
    app.state.social_store = SocialStore(_settings.database_url)
    app.state.social_service = SocialService(app.state.social_store)
    logger.info("Store initialized")
    if _settings.guest_enabled:
        app.state.social_service.ensure_guest(
            _settings.guest_user_id,
            _settings.guest_user_name,
            _settings.guest_password,
        )

    yield

    app.state.social_store.close()
    logger.info("Jesusgram API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Jesusgram API",
    description="Post short messages, follow people, read your dashboard.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# The last one added is the outermost.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPIMiddleware reads the limiter from app.state.
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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error leaves as {"error": {"code", "message", "detail"}}.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Map a taxonomy error to its HTTP status and the shared envelope.

    EXT_SVC_FAIL and FAIL hide their info from the client; it is logged
    where it was raised.
    """
    status_code = _STATUS_BY_ERROR.get(exc.name, 500)
    info = exc.info if status_code < 500 else None
    response = _error_response(status_code, exc.name, exc.message, {"code": exc.code, "info": info})
    if status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    if request.url.path.endswith("/auth/login"):
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render body/param validation failures as one BAD_REQUEST listing every field.

    Same shape as SocialService.check_bad_request() so clients see a single
    format whichever layer caught the problem.
    """
    info: dict[str, str] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        info[".".join(loc) or "body"] = err.get("msg", "invalid")
    return _error_response(400, "BAD_REQUEST", "The request is bad", {"code": 1001, "info": info})


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for FastAPI/Starlette HTTP exceptions (404 routes, 405...)."""
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unexpected becomes FAIL. Details go to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "FAIL", "An error occurred")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Not rate limited. Reports degraded instead of failing when the DB is down.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    db_ok = request.app.state.social_store.ping()
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=__version__,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
