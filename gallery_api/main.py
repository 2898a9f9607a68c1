"""
Gallery Access API application.

Configures:
- API routers
- Database lifecycle
- Logging
- Exception handlers
- Prometheus metrics
- Rate limiting
- Graceful shutdown
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gallery_api.config import get_settings
from gallery_api.database import init_db, close_db
from gallery_api.exceptions import ConfigurationError, LedgerInvariantError, StorageConflict
from gallery_api.routers import (
    analytics_router,
    auth_router,
    galleries_router,
    health_router,
    invitations_router,
    share_router,
)
from gallery_api.utils.config_validator import validate_all_config
from gallery_api.utils.prometheus_metrics import exceptions_total, ready, setup_prometheus
from gallery_api.middlewares.rate_limit_middleware import setup_rate_limiting
from gallery_api.middlewares.logging_middleware import LoggingMiddleware
from gallery_api.middlewares.request_tracking_middleware import (
    RequestTrackingMiddleware,
    request_tracker,
)
from gallery_api.utils.logger import setup_logging, get_request_id, log_critical, log_error, log_info

settings = get_settings()
logger = logging.getLogger("gallery_api")

setup_logging()

SHUTDOWN_WAIT_SECONDS = 30.0
STORAGE_RETRY_AFTER_SECONDS = 1


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Startup: validate configuration, create tables, mark ready.
    Shutdown: fail health checks, drain in-flight requests, close the engine.
    """
    config_ok, config_errors = validate_all_config(settings)
    if not config_ok:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in config_errors)
        log_critical(
            "Startup failed: configuration validation errors",
            error_message=error_msg,
            event="lifecycle",
        )
        raise ConfigurationError(error_msg)

    await init_db()
    ready.set(1)
    log_info(
        "Application startup completed",
        event="lifecycle",
        version=settings.app_version,
        environment=settings.environment.value,
        permission_policy=settings.permission_policy.value,
    )

    yield

    ready.set(0)
    log_info("Application shutdown initiated", event="lifecycle")
    await request_tracker.wait_for_requests(timeout=SHUTDOWN_WAIT_SECONDS)
    await close_db()
    log_info("Graceful shutdown completed", event="lifecycle")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
## Gallery Access API

Photographers publish private galleries to clients through share links and
invitation codes.

### Features
- **Galleries**: access policy (password, invite-only, expiration) and photos
- **Share links**: optional password, expiry and view limit
- **Invitations**: single-use, multi-use and time-limited codes with a permission set
- **Analytics**: invitation usage per gallery

### Authentication
Photographer endpoints require a Bearer token from `/auth/login`.
`/share/{token}` is public.
    """,
    openapi_tags=[
        {"name": "Authentication", "description": "Photographer registration and login"},
        {"name": "Galleries", "description": "Gallery, photo and share link management"},
        {"name": "Invitations", "description": "Invitation codes for invite-only galleries"},
        {"name": "Analytics", "description": "Invitation statistics"},
        {"name": "Shared Galleries", "description": "Public access through share links"},
    ],
    lifespan=lifespan,
)

setup_prometheus(app)
setup_rate_limiting(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestTrackingMiddleware)


@app.exception_handler(StorageConflict)
async def storage_conflict_handler(request: Request, exc: StorageConflict):
    """Transient storage failure after retries: ask the client to retry."""
    log_error(
        "Storage conflict",
        error_type=type(exc).__name__,
        error_message=str(exc),
        request_id=get_request_id(),
        event="db",
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage temporarily unavailable, please retry", "retryable": True},
        headers={"Retry-After": str(STORAGE_RETRY_AFTER_SECONDS)},
    )


@app.exception_handler(ConfigurationError)
@app.exception_handler(LedgerInvariantError)
async def fatal_error_handler(request: Request, exc: Exception):
    """Misconfiguration or a broken usage counter: needs an operator."""
    exceptions_total.inc()
    rid = get_request_id()
    log_critical(
        "Fatal access engine error",
        error_type=type(exc).__name__,
        error_message=str(exc),
        http_method=request.method,
        request_id=rid,
        event="exception",
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "request_id": rid},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Unhandled exceptions: log with the request id, answer 500 with it.
    """
    exceptions_total.inc()
    rid = get_request_id()

    log_error(
        "Unhandled exception occurred",
        error_type=type(exc).__name__,
        error_message=str(exc),
        error_code="INTERNAL_SERVER_ERROR",
        http_method=request.method,
        http_path=request.url.path,
        request_id=rid,
        event="exception",
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "request_id": rid,
        },
    )


app.include_router(health_router)
app.include_router(auth_router)
app.include_router(galleries_router)
app.include_router(share_router)
app.include_router(invitations_router)
app.include_router(analytics_router)


@app.get(
    "/",
    tags=["Root"],
    summary="API information",
)
async def root():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
