"""
api/main.py -- FastAPI application entry point for MemberDesk.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. log_requests          -- method, path, status, latency; flags over-budget requests

Lifespan builds every service from one Settings instance and stores it on
app.state; route handlers read services from there and never build their own.
Shutdown cancels the expiry sweep and closes stores symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.contact import router as contact_router
from api.routes.v1.images import router as images_router
from api.routes.v1.users import router as users_router
from auth.archive import ArchivalService
from auth.errors import IdentityError
from auth.lifecycle import IdentityLifecycle
from auth.store import IdentityStore, to_iso, utcnow
from core.blobstore import BlobStoreError, ImgbbBlobStore
from core.config import Settings, get_settings
from core.notifier import LogNotifier, SmtpNotifier
from media.store import ImageStore

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("memberdesk.api")

# Read once at process start; everything downstream receives it explicitly.
settings = get_settings()

# ---------------------------------------------------------------------------
# Background expiry sweep
# ---------------------------------------------------------------------------


async def _sweep_loop(app: FastAPI) -> None:
    """Clear expired signup codes, reset codes and reset grants periodically.

    Readers already treat expired records as absent, so a missed sweep only
    costs disk space. The store call is blocking and is pushed to a thread.
    Cancellation waits for an in-flight purge so the store is never closed
    underneath it.
    """
    interval = app.state.settings.otp_sweep_interval_seconds
    while True:
        await asyncio.sleep(interval)
        purge = asyncio.ensure_future(
            asyncio.to_thread(app.state.identity_store.purge_expired, to_iso(utcnow()))
        )
        try:
            removed = await asyncio.shield(purge)
        except asyncio.CancelledError:
            try:
                await purge
            except Exception:
                logger.exception("Expiry sweep failed during shutdown")
            raise
        except Exception:
            logger.exception("Expiry sweep failed")
            continue
        if removed:
            logger.info("Expiry sweep cleared %d records", removed)


async def _stop_sweep(task: asyncio.Task) -> None:
    task.cancel()
    with suppress(asyncio.CancelledError):
        await task


def build_notifier(cfg: Settings):
    if cfg.smtp_configured:
        return SmtpNotifier(
            host=cfg.smtp_host,
            port=cfg.smtp_port,
            username=cfg.smtp_user,
            password=cfg.smtp_password,
            sender=cfg.email_from,
        )
    if not cfg.debug:
        logger.warning("SMTP_HOST is not set -- emails will only be written to the log")
    return LogNotifier()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build stores, gateways and services on startup; tear them down on shutdown."""
    logger.info("MemberDesk API starting up")
    app.state.settings = settings
    app.state.identity_store = IdentityStore(settings.database_url)
    app.state.image_store = ImageStore(settings.database_url)
    app.state.notifier = build_notifier(settings)
    app.state.blob_store = ImgbbBlobStore(settings.imgbb_api_key)
    app.state.lifecycle = IdentityLifecycle(
        app.state.identity_store,
        app.state.notifier,
        secret_key=settings.secret_key,
        otp_ttl_seconds=settings.otp_ttl_seconds,
        reset_grant_ttl_seconds=settings.reset_grant_ttl_seconds,
    )
    app.state.archival = ArchivalService(app.state.identity_store)
    logger.info("Stores initialized (%s)", app.state.identity_store.engine.url.render_as_string(hide_password=True))
    app.state.sweep_task = asyncio.create_task(_sweep_loop(app))

    yield

    await _stop_sweep(app.state.sweep_task)
    app.state.blob_store.close()
    app.state.image_store.close()
    app.state.identity_store.close()
    logger.info("MemberDesk API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="MemberDesk API",
    description="Member signup with email OTP, login, password reset, directory and gallery uploads.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        elapsed * 1000,
        request.client.host if request.client else "unknown",
    )
    budget = settings.request_time_budget_seconds
    if elapsed > budget:
        logger.warning(
            "Request timed out: %s %s took %.1fs (budget %.0fs)",
            request.method,
            request.url.path,
            elapsed,
            budget,
        )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(images_router, prefix="/api/v1", tags=["Images"])
app.include_router(contact_router, prefix="/api/v1", tags=["Contact"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            message=message,
            error=ErrorDetail(code=code, message=message, detail=detail),
        ).model_dump(),
    )


@app.exception_handler(IdentityError)
async def identity_error_handler(request: Request, exc: IdentityError) -> JSONResponse:
    """Render auth.errors failures. 5xx ones were already logged with context where raised."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return _error_response(exc.status_code, exc.code, exc.message, exc.detail)


@app.exception_handler(BlobStoreError)
async def blob_store_error_handler(request: Request, exc: BlobStoreError) -> JSONResponse:
    return _error_response(500, "upload_failed", "Failed to upload image.", str(exc))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with structured error when the request body or params fail validation."""
    return _error_response(400, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with detail=ErrorDetail(...).model_dump().
    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.detail.get("message", ""), "error": exc.detail},
        )
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    try:
        request.app.state.identity_store.ping()
        database = "ok"
    except Exception:
        logger.exception("Health check: database unreachable")
        database = "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})
