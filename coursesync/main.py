"""Main FastAPI application entry point.

Builds one application per node. The node's mode (master or client), shared
secret and sync policy come from ``SYNC_*`` environment variables; services
are created once here and handed to routers through ``app.state.services``.
"""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
import subprocess
from datetime import datetime
from typing import Optional

import httpx
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursesync.config import SyncSettings
from coursesync.db.config import build_engine, build_session_factory
from coursesync.errors import (
    AuthenticationError,
    ConfigurationError,
    ContentNotFoundError,
    ContentTypeMismatch,
    PersistenceError,
    TransportError,
)
from coursesync.models.records import Base
from coursesync.routers import clients, content, health, sync
from coursesync.services.container import SyncServices
from coursesync.utils.rate_limit import limiter, rate_limit_exceeded_handler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Application metadata
APP_NAME = "Course Sync API"
VERSION = "1.0.0"
DESCRIPTION = """
Course content replication between a master site and its client sites.

## Features

* **Push**: the master exports course trees and delivers them to every client
* **Pull**: a client pages through the master's content on demand or on a schedule
* **Stable identifiers**: content keeps one UUID across every site
* **Audit log**: every synced item is recorded with its outcome
"""

_TRUTHY = {"1", "true", "yes"}

_ERROR_STATUS = (
    (ContentNotFoundError, 404),
    (ContentTypeMismatch, 400),
    (ConfigurationError, 400),
    (PersistenceError, 409),
    (TransportError, 502),
)


def _error_body(request, message) -> dict:
    return {
        "success": False,
        "error": message,
        "timestamp": datetime.utcnow().isoformat(),
        "path": str(request.url)
    }


def _run_migrations() -> None:
    logger.info("AUTO_MIGRATE enabled: running 'alembic upgrade head'")
    try:
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            cwd=os.path.join(os.path.dirname(__file__), ".."),
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError:
        logger.error(
            "Alembic not found - ensure it's installed in the environment"
        )
        return
    if result.returncode != 0:
        logger.error(
            "Alembic upgrade failed (code %s): %s\n%s",
            result.returncode,
            result.stdout,
            result.stderr,
        )
    else:
        logger.info("Alembic migration applied successfully")


def create_app(
    settings: Optional[SyncSettings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or SyncSettings.from_env()
    engine = None
    if session_factory is None:
        engine = build_engine()
        session_factory = build_session_factory(engine)

    app = FastAPI(
        title=APP_NAME,
        description=DESCRIPTION,
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )
    app.state.services = SyncServices.build(settings, session_factory, transport)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # CORS middleware configuration
    cors_origins = os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://localhost:3001"
    ).split(",")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):
        """Handle HTTP exceptions with consistent error format"""
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.detail),
        )

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(request, exc):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, str(exc)),
        )

    for error_class, status_code in _ERROR_STATUS:
        async def handler(request, exc, status_code=status_code):
            return JSONResponse(
                status_code=status_code,
                content=_error_body(request, str(exc)),
            )
        app.add_exception_handler(error_class, handler)

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        """Handle general exceptions"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body(request, "Internal server error"),
        )

    # Include routers
    app.include_router(health.router, prefix="/api/v1", tags=["Health"])
    app.include_router(content.router, prefix="/api/v1")
    app.include_router(sync.router, prefix="/api/v1")
    app.include_router(clients.router, prefix="/api/v1")

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information"""
        return {
            "name": APP_NAME,
            "version": VERSION,
            "mode": settings.mode,
            "status": "running",
            "environment": os.getenv("ENVIRONMENT", "development"),
            "timestamp": datetime.utcnow().isoformat(),
            "docs": "/docs",
            "health": "/api/v1/health"
        }

    @app.on_event("startup")
    async def startup_event():
        """Application startup tasks"""
        services = app.state.services
        logger.info(f"Starting {APP_NAME} v{VERSION} in {settings.mode} mode")
        logger.info(f"Environment: {os.getenv('ENVIRONMENT', 'development')}")
        if os.getenv("AUTO_MIGRATE", "false").lower() in _TRUTHY:
            _run_migrations()
        if engine is not None and \
                os.getenv("AUTO_CREATE_TABLES", "true").lower() in _TRUTHY:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        await services.sync_log.clear_older_than(settings.log_retention_days)
        if services.scheduler is not None:
            services.scheduler.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Application shutdown tasks"""
        logger.info(f"Shutting down {APP_NAME}")
        if app.state.services.scheduler is not None:
            await app.state.services.scheduler.stop()
        if engine is not None:
            await engine.dispose()

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    host = os.getenv("HOST", "0.0.0.0")

    uvicorn.run(
        "coursesync.main:app",
        host=host,
        port=port,
        reload=True,
        log_level="info"
    )
