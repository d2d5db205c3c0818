"""
FastAPI application for triggering Killboard Data syncs.

Designed to be called by an external scheduler (cron) or by hand:
- POST /sync/pvp, /sync/guilds, /sync/builds run one engine each
- GET /sync/runs lists the audit trail
- GET /health is unauthenticated for liveness probes
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import msgspec
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from ..core.config import get_settings
from .errors import APIError, api_error_handler, error_body
from .routers import sync

logger = logging.getLogger(__name__)


class MSGSpecResponse(Response):
    """Custom response class using msgspec for JSON serialization."""

    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        if content is None:
            return b""
        return msgspec.json.encode(content)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle.

    Startup opens the database pool so the first trigger does not pay
    for it; shutdown closes it.
    """
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Starting %s (%s)...", settings.app_name, settings.environment)

    try:
        from .dependencies import get_db

        db = get_db()
        db.fetchone("SELECT 1")
        logger.info("Database connection pool ready")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        # Don't fail startup, let requests handle connection errors

    yield

    logger.info("Shutting down %s...", settings.app_name)
    try:
        from .dependencies import close_db

        close_db()
    except Exception as e:
        logger.warning(f"Error closing database connections: {e}")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = get_settings()
    app = FastAPI(
        title="Killboard Data Sync API",
        description="Trigger surface for PvP ingestion, guild snapshots and meta build aggregation",
        version=settings.app_version,
        default_response_class=MSGSpecResponse,
        lifespan=lifespan,
    )

    app.add_exception_handler(APIError, api_error_handler)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions with consistent format."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        show_detail = settings.debug and settings.environment != "production"
        return JSONResponse(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(
                "INTERNAL_ERROR",
                "An internal error occurred",
                str(exc) if show_detail else None,
            ),
        )

    @app.get("/health", tags=["health"])
    async def health_check():
        """Basic health check endpoint."""
        return {"status": "healthy", "timestamp": datetime.now(tz=timezone.utc).isoformat()}

    app.include_router(sync.router, prefix="/sync", tags=["sync"])

    return app


# Create app instance
app = create_app()
