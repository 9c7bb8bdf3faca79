"""
Database Connection Management

Async SQLAlchemy 2.0 engine and session lifecycle for the record store
(PostgreSQL via asyncpg in production, SQLite via aiosqlite for local runs
and tests).
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from fleetops.config import get_settings
from fleetops.database.models import Base

logger = structlog.get_logger(__name__)

# Global engine and session factory
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _engine_options(url: str, echo: bool) -> dict:
    options = {"echo": echo, "pool_pre_ping": True}
    if url.startswith("sqlite") and ":memory:" in url:
        # every checkout must see the same in-memory database
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}
    else:
        # asyncpg pools internally
        options["poolclass"] = NullPool
    return options


async def init_database(url: Optional[str] = None, create_tables: Optional[bool] = None) -> AsyncEngine:
    """
    Create the engine and session factory, and verify connectivity.

    Args:
        url: Async database URL; defaults to the configured one
        create_tables: Create missing tables; defaults to DATABASE_CREATE_TABLES
    """
    global _engine, _session_factory

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    db_settings = get_settings().database
    database_url = url or db_settings.async_url
    if create_tables is None:
        create_tables = db_settings.create_tables

    # Engine configuration
    engine = create_async_engine(database_url, **_engine_options(database_url, db_settings.echo))
    # Verify connection
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if create_tables:
                await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.error("Record store unreachable", error=str(e))
        await engine.dispose()
        raise

    _engine = engine
    _session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    logger.info(
        "Database connection established",
        dialect=engine.dialect.name,
        database=engine.url.database,
        create_tables=create_tables,
    )
    return engine


async def close_database() -> None:
    global _engine, _session_factory

    if _engine is None:
        return

    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Database engine disposed")


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Session scope: commit on success, roll back on error, always close.

    Mutations that touch aggregates commit earlier through an
    AggregateUnitOfWork, which makes the commit here a no-op.

    Example:
        async with get_db() as db:
            await backfill_all(db, registry)
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    session = _session_factory()
    try:
        yield session
        await session.commit()
    except Exception as e:
        logger.error("Rolling back session", error=str(e), error_type=type(e).__name__)
        await session.rollback()
        raise
    finally:
        await session.close()


async def get_db_dependency() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with get_db() as session:
        yield session


async def check_database_health() -> dict:
    """Round-trip a trivial query and report its latency."""
    started = time.perf_counter()
    try:
        async with get_db() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
    }
