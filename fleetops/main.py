"""
FastAPI Production Application

Main entry point for the Fleet Operations API.

The aggregates live in this process. They are rebuilt from the record store
at startup and kept current by every mutation served here, so all writes
must go through a single process (see gunicorn.conf.py).
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
import structlog

from fleetops.aggregation import backfill_all, build_registry
from fleetops.config import get_settings
from fleetops.config.logging import configure_logging
from fleetops.database.connection import init_database, close_database, get_db
from fleetops.serving.api.main import create_api_app
from fleetops.serving.cache import init_redis, close_redis

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()

    # Configure logging first
    configure_logging(settings.monitoring.log_level, settings.monitoring.log_format)

    logger.info("Starting Fleet Operations API", environment=settings.app_env)

    # Initialize services
    await init_database()
    logger.info("Database initialized")

    # Load aggregates from the record store
    registry = build_registry()
    if settings.metrics.backfill_on_startup:
        async with get_db() as db:
            await backfill_all(db, registry, chunk_size=settings.metrics.backfill_chunk_size)
    else:
        logger.warning("Startup backfill disabled, aggregates start empty")
    app.state.registry = registry

    if settings.redis.enabled:
        try:
            await init_redis()
            logger.info("Redis initialized")
        except Exception as e:
            logger.warning("Redis init failed, analytics will not be cached", error=str(e))

    yield

    # Cleanup
    logger.info("Shutting down...")
    app.state.registry = None
    await close_database()
    await close_redis()


# Create FastAPI application
app = create_api_app(lifespan=lifespan)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
