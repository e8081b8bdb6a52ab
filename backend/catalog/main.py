"""
App Catalog Backend — FastAPI Application Factory
==================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes middleware registration, route mounting, exception mapping
       and lifecycle management (including the store sync scheduler).
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn catalog.main:app).

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware:  Request ID → Logging → GZip → CORS    │
    │                                                     │
    │  Routes:                                            │
    │    /api/app/*      catalog CRUD, search, sync-store │
    │    /api/public/*   unauthenticated city data        │
    │    /health                                          │
    │                                                     │
    │  Background:                                        │
    │    AsyncIOScheduler → daily bulk store sync         │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:   logging → config validation → start cron scheduler
    Shutdown:  stop scheduler → stop sync runs and wait for the current
               batch (bounded) → close store clients → dispose engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from catalog import __version__
from catalog.config import settings
from catalog.database import dispose_engine
from catalog.exceptions import (
    AuthenticationError,
    AuthorizationError,
    CatalogError,
    CatalogFetchError,
    NotFoundError,
    RepositoryError,
    ValidationError,
)
from catalog.jobs import build_scheduler
from catalog.middleware.logging import RequestLoggingMiddleware
from catalog.middleware.request_id import RequestIDMiddleware, request_id_var
from catalog.routes import apps, health, public
from catalog.services.sync_service import sync_service

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure root logging once at startup.

    Format: 2024-01-15T12:00:00 [INFO] catalog.services.sync_service: message
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries that log every operation
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup: configure logging, validate settings, start the cron scheduler.
    Shutdown: wait for in-progress batches before closing clients and the engine.
    """
    setup_logging()
    logger.info("=" * 60)
    logger.info("App Catalog Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving /health and public reads; authenticated routes answer 401
        logger.error("Configuration error: %s", str(e))

    app.state.scheduler = None
    if settings.sync_scheduler_enabled:
        scheduler = build_scheduler(settings.sync_cron)
        scheduler.start()
        app.state.scheduler = scheduler
        logger.info("Store sync scheduled with cron '%s' (UTC)", settings.sync_cron)
    else:
        logger.info("Store sync scheduler disabled")

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("App Catalog Backend shutting down...")

    # Cron first so no new run starts, then let the current batch finish
    if app.state.scheduler is not None:
        app.state.scheduler.shutdown(wait=False)
    await sync_service.shutdown(settings.sync_shutdown_timeout)
    await sync_service.lookup.aclose()
    await dispose_engine()

    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    error: str,
    message: str,
    details: dict = None,
    headers: dict = None,
) -> JSONResponse:
    content = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the CatalogError hierarchy to HTTP responses.

        ValidationError      → 400
        AuthenticationError  → 401
        AuthorizationError   → 403
        NotFoundError        → 404
        RepositoryError      → 500 (generic message, context logged)
        CatalogFetchError    → 500
        CatalogError (base)  → 500
        Exception (fallback) → 500

    Internal details (SQL, stack traces) are logged server-side only.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, "validation_error", exc.message, details=exc.context)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return _error_response(
            401, "unauthorized", exc.message, headers={"WWW-Authenticate": "ApiKey"}
        )

    @app.exception_handler(AuthorizationError)
    async def handle_authorization_error(request: Request, exc: AuthorizationError):
        logger.warning(
            "[%s] Forbidden: %s %s requires %s",
            request_id_var.get(""),
            request.method,
            request.url.path,
            exc.required,
        )
        return _error_response(403, "forbidden", exc.message, details=exc.context)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc.message)

    @app.exception_handler(RepositoryError)
    async def handle_repository_error(request: Request, exc: RepositoryError):
        logger.error(
            "[%s] Repository error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(
            500, "server_error", "An internal error occurred. Please try again later."
        )

    @app.exception_handler(CatalogFetchError)
    async def handle_catalog_fetch_error(request: Request, exc: CatalogFetchError):
        logger.error("[%s] %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error_response(500, "sync_not_started", exc.message)

    @app.exception_handler(CatalogError)
    async def handle_catalog_error(request: Request, exc: CatalogError):
        logger.error("[%s] Unhandled catalog error: %s", request_id_var.get(""), exc.message)
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return _error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """Assemble middleware, exception handlers and routers."""
    app = FastAPI(
        title="App Catalog API",
        description=(
            "Catalog of city and tenant apps, enriched with App Store and "
            "Google Play metadata by a paced background sync."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Last added runs first: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(apps.router)
    app.include_router(public.router)
    app.include_router(health.router)

    return app


app = create_app()
