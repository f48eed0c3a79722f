"""
M-Hike API: FastAPI Application Factory
=========================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app(settings) returns a configured FastAPI
       instance. The lifespan opens the Database and AssetStorage handles,
       attaches them to app.state, and runs the orphan sweeper.
Who:   Called by uvicorn (uvicorn mhike.main:app) and by the test suite,
       which passes its own Settings.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────────┐ ┌─────────────────┐ ┌──────┐ ┌──────┐ │
    │  │ Req ID   │→│  Logging        │→│ GZip │→│ CORS │ │
    │  └──────────┘ └─────────────────┘ └──────┘ └──────┘ │
    │                                                     │
    │  Routes:                                            │
    │  /api/auth/*   /api/hikes/*   /api/health           │
    │  /uploads/<name>  (StaticFiles)                     │
    │                                                     │
    │  app.state: settings, database, storage, sweeper    │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Configure logging, warn about insecure settings
    2. Open the Database (create tables when db_create_all)
    3. Ensure the upload directory exists
    4. Sweep orphaned uploads once, then schedule the periodic sweep

    Shutdown:
    1. Cancel the periodic sweep
    2. Dispose the database engine (close all connections)
"""

import asyncio
import contextlib
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from mhike import __version__
from mhike.config import Settings, settings as default_settings
from mhike.database import Database
from mhike.exceptions import (
    DatabaseError,
    MHikeError,
    StorageError,
    UploadRejected,
    ValidationFailed,
)
from mhike.middleware.logging import RequestLoggingMiddleware
from mhike.middleware.request_id import RequestIDMiddleware, request_id_var
from mhike.routes import auth, health, hikes, observations
from mhike.schemas.common import error_list
from mhike.services.orphan_sweeper import OrphanSweeper
from mhike.services.storage import AssetStorage

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(settings: Settings) -> None:
    """
    Configure logging for the entire application.

    Called once during startup, before anything else logs.

    Format: 2024-05-01T09:30:00 [INFO] mhike.services.storage: Upload stored: ...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # These log every operation at DEBUG/INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(settings)
    logger.info("=" * 60)
    logger.info("M-Hike API %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving; a development setup runs on the defaults
        logger.warning("%s", str(e))

    database = Database(settings)
    if settings.db_create_all:
        await database.create_all()

    storage = AssetStorage.from_settings(settings)
    storage.ensure_directory()
    logger.info("Upload directory: %s", storage.upload_dir)

    sweeper = OrphanSweeper(database, storage, grace_minutes=settings.orphan_grace_minutes)
    app.state.database = database
    app.state.storage = storage
    app.state.sweeper = sweeper

    if settings.orphan_sweep_on_startup:
        try:
            await sweeper.sweep()
        except SQLAlchemyError as e:
            logger.error("Startup orphan sweep failed: %s", str(e))

    sweep_task: Optional[asyncio.Task] = None
    if settings.orphan_sweep_interval_minutes > 0:
        sweep_task = asyncio.create_task(
            sweeper.run_periodically(settings.orphan_sweep_interval_minutes),
            name="orphan-sweeper",
        )

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield  # Application runs here

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("M-Hike API shutting down...")
    if sweep_task is not None:
        sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep_task

    await database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(error: str, message: str, details: Optional[dict] = None) -> dict:
    body = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and one response format:
    {error, message, details?, request_id}.

    Handler hierarchy:
        RequestValidationError  → 400 (same body as ValidationFailed)
        UploadRejected          → 400
        ValidationFailed        → 400
        DatabaseError           → 500, generic message
        StorageError            → 500, generic message
        MHikeError (base)       → exc.status_code (401/403/404/409)
        SQLAlchemyError         → 500, generic message
        Exception (fallback)    → 500, generic message

    Internal details (SQL, paths, stack traces) are logged, never returned.
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = error_list(exc.errors())
        logger.warning("[%s] Request validation failed: %s", request_id_var.get(""), errors)
        return JSONResponse(
            status_code=400,
            content=_error_body(
                "validation_error",
                errors[0]["msg"] if len(errors) == 1 else "Validation failed",
                {"errors": errors},
            ),
        )

    @app.exception_handler(UploadRejected)
    async def handle_upload_rejected(request: Request, exc: UploadRejected):
        logger.warning("[%s] Upload rejected: %s", request_id_var.get(""), exc.message)
        details = {"field": exc.field} if exc.field else None
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error_code, exc.message, details),
        )

    @app.exception_handler(ValidationFailed)
    async def handle_validation_failed(request: Request, exc: ValidationFailed):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error_code, exc.message, {"errors": exc.errors}),
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context
        )
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", "Server error"),
        )

    @app.exception_handler(StorageError)
    async def handle_storage_error(request: Request, exc: StorageError):
        logger.error(
            "[%s] Storage error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(exc.error_code, exc.message),
        )

    @app.exception_handler(MHikeError)
    async def handle_domain_error(request: Request, exc: MHikeError):
        logger.info("[%s] %s: %s", request_id_var.get(""), exc.error_code, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error_code, exc.message),
        )

    @app.exception_handler(SQLAlchemyError)
    async def handle_sqlalchemy_error(request: Request, exc: SQLAlchemyError):
        logger.error("[%s] Unhandled database error: %s", request_id_var.get(""), str(exc))
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", "Server error"),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body("internal_server_error", "An unexpected error occurred."),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        app_settings: Settings to build the app with. Defaults to the
                      environment-derived module singleton.
    """
    settings = app_settings or default_settings

    app = FastAPI(
        title="M-Hike API",
        description=(
            "Hiking log backend: accounts, hikes and trail observations, with "
            "avatar and photo uploads."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in REVERSE order of addition:
    # RequestID → Logging → GZip → CORS → route
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.cors_origins_list != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(observations.router)
    app.include_router(hikes.router)
    app.include_router(health.router)

    # Stored avatars and photos; the directory is created by the lifespan
    app.mount(
        settings.upload_url_prefix,
        StaticFiles(directory=str(settings.upload_path), check_dir=False),
        name="uploads",
    )

    return app


# uvicorn expects `mhike.main:app` to be importable
app = create_app()
