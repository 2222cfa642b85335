"""
api/main.py -- FastAPI application entry point for SupaGate.

SupaGate is a thin layer in front of the hosted platform: the platform
verifies tokens, stores accounts and profiles and signs upload URLs; this
app resolves roles and reshapes JSON.

Run with:  python main.py serve
           uvicorn asgi:app --reload

Middleware stack:
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. SessionMiddleware     -- signed cookie holding the OAuth PKCE verifier

Lifespan builds the platform clients and the collaborators every request
needs (settings, verifier, profile store, upload signer) and stores them on
app.state. Tests swap the lifespan for one that installs fakes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.admin import router as admin_router
from api.routes.auth import router as auth_router
from api.routes.documents import router as documents_router
from auth.store import SqlProfileStore, SupabaseProfileStore
from auth.verifier import SupabaseIdentityVerifier
from core.clients import create_anon_client, create_service_client
from core.config import Settings, get_settings
from uploads.signer import UploadSigner

__version__ = "1.0.0"


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("supagate.api")

_settings = get_settings()


def _build_profile_store(settings: Settings, service_client):
    if settings.profile_backend == "sql":
        return SqlProfileStore(settings.database_url)
    return SupabaseProfileStore(service_client)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create process-wide collaborators on startup; release them on shutdown.

    Settings are read once here and handed to request code through
    app.state.settings. Nothing downstream reads the environment.
    """
    settings = get_settings()
    logger.info("SupaGate starting (environment=%s, port=%d)", settings.environment, settings.port)

    anon_client = create_anon_client(settings)
    service_client = create_service_client(settings)

    app.state.settings = settings
    app.state.verifier = SupabaseIdentityVerifier(settings, anon_client, service_client)
    app.state.profile_store = _build_profile_store(settings, service_client)
    app.state.upload_signer = UploadSigner(service_client)
    logger.info(
        "Profiles backend: %s; fail-safe admin %s",
        settings.profile_backend,
        "configured" if settings.super_admin_email else "not configured",
    )

    yield

    app.state.profile_store.close()
    logger.info("SupaGate shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SupaGate API",
    description="Role-aware middleware in front of a hosted Supabase backend.",
    version=__version__,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette wraps in reverse registration order: the last add_middleware()
# call is the outermost layer.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# Session cookie for the PKCE flow: the code verifier is written to it when
# the sign-in starts and popped by the callback. The cookie is signed with
# SECRET_KEY, so clients cannot swap in their own verifier.
app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    https_only=_settings.secure_cookies,
    same_site="lax",
    max_age=600,
)

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

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(documents_router, prefix="/api", tags=["Documents"])
app.include_router(admin_router, prefix="/api", tags=["Admin"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every 4xx/5xx leaves through _error_response so clients parse one
# envelope: {"error": {"code", "message", "detail"?}}.
# ---------------------------------------------------------------------------


def _error_response(
    status_code: int,
    code: str,
    message: str,
    detail: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True), headers=headers)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    client = request.client.host if request.client else "unknown"
    logger.warning("Rate limit hit on %s from %s", request.url.path, client)
    retry_after = int(getattr(exc, "retry_after", 60))
    return _error_response(
        429, "rate_limited", "Too many requests.", detail=str(exc), headers={"Retry-After": str(retry_after)}
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(422, "validation_error", "Request validation failed.", detail=str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Unwrap the {"code", "message"} detail routes raise with.

    Plain-string details get a generic "http_<status>" code.
    """
    headers = getattr(exc, "headers", None)
    if isinstance(exc.detail, dict):
        return _error_response(
            exc.status_code,
            exc.detail.get("code", f"http_{exc.status_code}"),
            exc.detail.get("message", ""),
            detail=exc.detail.get("detail"),
            headers=headers,
        )
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort. The traceback goes to the log, never into the response."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health and index
#
# Defined directly in main.py (not in a router) so they are always reachable.
# No rate limit -- load balancer probes must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and the profile store's reachability."""
    profile_store = getattr(request.app.state, "profile_store", None)
    store_ok = profile_store is not None and profile_store.ping()
    return HealthResponse(
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
        components={"app": "ok", "profile_store": "ok" if store_ok else "error"},
    )


@app.get("/", tags=["Health"])
async def index() -> dict:
    """Describe the service and its endpoints."""
    return {
        "message": "SupaGate API",
        "version": __version__,
        "endpoints": {
            "health": "GET /health",
            "register": "POST /api/register",
            "me": "GET /api/me (requires auth)",
            "upload": "POST /api/documents/upload (requires auth)",
            "adminDashboard": "GET /api/admin/dashboard (requires admin role)",
            "oauthProviders": "GET /api/auth/providers",
            "oauthStart": "GET /api/auth/oauth/{provider}",
        },
    }
