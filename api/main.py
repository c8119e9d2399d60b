"""
api/main.py -- FastAPI application entry point for Skillink.

Exposes the JSON API (/api/v1) and owns everything both layers share:
logging setup, middleware, exception handlers and the backend client on
app.state. The HTML routes in web/ are mounted onto this app by asgi.py.

Run with:  uvicorn asgi:app --reload
           python main.py migrate   (first run, and after every upgrade)

Middleware (registration order):
  TrustedHostMiddleware -- rejects requests with unexpected Host headers
  CORSMiddleware        -- adds CORS headers for allowed browser origins
  SlowAPIMiddleware     -- enforces per-route rate limits from auth.limiter
  SessionMiddleware     -- signed cookie carrying one-shot toast messages

Lifespan builds the backend client at startup (refusing to start against an
out-of-date local schema) and closes it on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.products import router as products_router
from api.routes.v1.session import router as session_router
from auth.limiter import limiter
from backend.factory import create_backend, ensure_schema
from core.config import get_settings

VERSION = "0.2.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("skillink.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the backend client on startup and release it on shutdown.

    A local database behind the latest migration aborts startup with
    BackendError unless AUTO_MIGRATE=true.
    """
    logger.info("Skillink starting up (backend=%s)", _settings.backend)
    backend = create_backend(_settings)
    try:
        ensure_schema(backend, auto_migrate=_settings.auto_migrate)
    except Exception:
        backend.close()
        raise
    app.state.backend = backend

    yield

    app.state.backend.close()
    logger.info("Skillink shutdown complete")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Skillink API",
    description="Marketplace for homeowners, construction professionals and material vendors.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Each add_middleware() call wraps the stack built so far. SessionMiddleware
# goes on after the others so the toast session reaches every route and
# exception handler.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# Toasts are one-shot messages queued by a POST handler and shown by the next
# rendered page. They ride in Starlette's signed session cookie.
app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    session_cookie="skillink_flash",
    same_site="lax",
    https_only=_settings.secure_cookies,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Access log: one line per request with status and latency.
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

app.include_router(session_router, prefix="/api/v1", tags=["Auth"])
app.include_router(products_router, prefix="/api/v1", tags=["Products"])
# web.routes is included by asgi.py; api/ never imports web/.


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every JSON error uses the ErrorResponse envelope. asgi.py wraps
# http_exception_handler so unknown HTML routes get a page.
# ---------------------------------------------------------------------------


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
    """422 for bodies and query parameters that fail pydantic validation."""
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


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap HTTPException in the envelope.

    A dict detail (ErrorDetail(...).model_dump()) is used as the error body
    as-is; anything else becomes code "http_<status>".
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the traceback and return a generic 500."""
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
# Not rate limited. Always 200; "degraded" when the backend does not answer.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and whether the backend answers its ping."""
    backend_ok = request.app.state.backend.ping()
    return HealthResponse(
        status="ok" if backend_ok else "degraded",
        version=VERSION,
        backend=_settings.backend,
        backend_ok=backend_ok,
    )
