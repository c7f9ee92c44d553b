"""
Main FastAPI application entry point.

The episode engine runs in Celery. This process seeds the runtime settings on
startup, creates tables in development and exposes a health endpoint for the
container orchestrator.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.env_validation import validate_or_exit
from app.core.errors import init_sentry, report_exception
from app.core.logging import get_logger, setup_logging
from app.db.redis import check_redis_health, close_redis
from app.db.session import AsyncSessionLocal, check_db_health, close_db, init_db
from app.services.settings_store import SettingsStore

VERSION = "0.1.0"

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan events.
    Handles startup and shutdown tasks.
    """
    # Startup
    logger.info(
        "starting_application",
        app_name=settings.APP_NAME,
        environment=settings.APP_ENV,
        version=VERSION,
    )

    validate_or_exit()
    init_sentry()

    await init_db()

    async with AsyncSessionLocal() as db:
        seeded = await SettingsStore(db).seed_defaults()
    logger.info("settings_seeded", inserted=seeded)

    yield

    # Shutdown
    logger.info("shutting_down_application")

    await close_redis()
    await close_db()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Anime episode discovery and notification engine",
    version=VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check() -> JSONResponse:
    """
    Health check endpoint for monitoring.
    Includes database and Redis connectivity checks.
    """
    db_healthy = await check_db_health()
    redis_healthy = await check_redis_health()
    healthy = db_healthy and redis_healthy

    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "app_name": settings.APP_NAME,
            "environment": settings.APP_ENV,
            "version": VERSION,
            "database": "connected" if db_healthy else "disconnected",
            "redis": "connected" if redis_healthy else "disconnected",
        }
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled errors.
    """
    report_exception(exc, path=request.url.path, method=request.method)

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
            }
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
    )
