"""
Database connection and session management for Supabase PostgreSQL.

This module provides:
- Async database connection management
- Session factory and dependency injection
- Database initialization and health checks
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool, StaticPool
from sqlalchemy import text

from .core.config import settings

logger = logging.getLogger(__name__)

# Create declarative base for models
Base = declarative_base()

# Global engine and session factory
engine: Optional[AsyncEngine] = None
async_session_factory: Optional[async_sessionmaker] = None


def normalize_database_url(database_url: str) -> str:
    """Use the asyncpg driver for plain Postgres URLs; leave other drivers alone."""
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if "://" not in database_url:
        return f"postgresql+asyncpg://{database_url}"
    return database_url


def create_database_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Create async database engine with proper configuration."""
    url = normalize_database_url(database_url or settings.database_url)

    if url.startswith("sqlite"):
        return create_async_engine(
            url,
            echo=settings.debug,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    engine_config = {
        "echo": settings.debug,  # Log SQL queries in debug mode
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "connect_args": {
            "server_settings": {
                "application_name": "stories_fun_api",
            }
        }
    }

    # Supabase pooler handles connection reuse in deployed environments
    if settings.environment in ["production", "staging"]:
        engine_config["poolclass"] = NullPool
    else:
        engine_config.update({
            "pool_size": 5,
            "max_overflow": 10,
            "pool_timeout": 30,
        })

    return create_async_engine(url, **engine_config)


async def init_db() -> None:
    """Initialize database connection and create tables if needed."""
    global engine, async_session_factory

    try:
        logger.info("Initializing database connection...")

        engine = create_database_engine()
        async_session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=True,
        )

        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("Database connection established successfully")

        # Import models to ensure they're registered
        from . import models  # noqa: F401

        if settings.environment in ["development", "testing"]:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
                logger.info("Database tables created/verified")

    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


async def close_db() -> None:
    """Close database connections."""
    if engine:
        await engine.dispose()
        logger.info("Database connections closed")


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Get database session with automatic cleanup.

    Usage:
        async with get_db_session() as db:
            result = await db.execute(query)
    """
    if not async_session_factory:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Database session error: {e}")
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database sessions.

    Usage in FastAPI routes:
        @router.get("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with get_db_session() as session:
        yield session


async def check_db_health(db: Optional[AsyncSession] = None) -> dict:
    """Check database health and return status, using db when given."""
    health_info = {
        "status": "unknown",
        "connection": False,
        "latency_ms": None,
        "error": None
    }

    try:
        start_time = asyncio.get_event_loop().time()

        if db is not None:
            row = (await db.execute(text("SELECT 1 AS test"))).fetchone()
        else:
            async with get_db_session() as session:
                row = (await session.execute(text("SELECT 1 AS test"))).fetchone()

        if row and row.test == 1:
            end_time = asyncio.get_event_loop().time()
            health_info.update({
                "status": "healthy",
                "connection": True,
                "latency_ms": round((end_time - start_time) * 1000, 2)
            })
        else:
            health_info.update({
                "status": "unhealthy",
                "error": "Invalid query result"
            })

    except Exception as e:
        health_info.update({
            "status": "unhealthy",
            "error": str(e)
        })

    return health_info
