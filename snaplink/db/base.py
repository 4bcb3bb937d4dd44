"""Database base configuration for SQLAlchemy with SQLModel.

This module provides the shared async engine and session factory used by the
API process and the analytics worker. It includes:
- Engine configuration per environment
- Session factory
- Schema creation helper
"""

from typing import AsyncGenerator, Dict
import logging
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from snaplink.core.config import settings

logger = logging.getLogger(__name__)

# Mapping of environment to SQLAlchemy engine configurations
ENGINE_CONFIGS: Dict[str, Dict] = {
    "development": {
        "pool_size": settings.POSTGRES_POOL_SIZE,
        "max_overflow": settings.POSTGRES_POOL_MAX_OVERFLOW,
        "pool_timeout": settings.POSTGRES_POOL_TIMEOUT,
        "pool_recycle": settings.POSTGRES_POOL_RECYCLE,
        "pool_pre_ping": True,
    },
    "staging": {
        "pool_size": settings.POSTGRES_POOL_SIZE,
        "max_overflow": settings.POSTGRES_POOL_MAX_OVERFLOW,
        "pool_timeout": settings.POSTGRES_POOL_TIMEOUT,
        "pool_recycle": settings.POSTGRES_POOL_RECYCLE,
        "pool_pre_ping": True,
    },
    "production": {
        "pool_size": settings.POSTGRES_POOL_SIZE,
        "max_overflow": settings.POSTGRES_POOL_MAX_OVERFLOW,
        "pool_timeout": settings.POSTGRES_POOL_TIMEOUT,
        "pool_recycle": settings.POSTGRES_POOL_RECYCLE,
        "pool_pre_ping": True,
    },
    "testing": {
        "poolclass": NullPool,
    },
}


def get_engine_config(database_url: str) -> Dict:
    """Get the appropriate engine configuration based on the environment.

    SQLite URLs never receive queue pool arguments since aiosqlite does not
    support them.

    Args:
        database_url: The URL the engine will connect to

    Returns:
        Dict: Engine configuration parameters for the current environment.
    """
    if database_url.startswith("sqlite"):
        return {"poolclass": NullPool}
    env = settings.ENVIRONMENT.value
    return ENGINE_CONFIGS.get(env, ENGINE_CONFIGS["development"])


def get_engine() -> AsyncEngine:
    """Create and configure an async SQLAlchemy engine.

    Returns:
        AsyncEngine: Configured SQLAlchemy async engine instance.
    """
    engine_url = str(settings.SQLALCHEMY_DATABASE_URI)
    engine_config = get_engine_config(engine_url)

    logger.info(f"Creating database engine for {engine_url.split('@')[-1]}")

    return create_async_engine(
        engine_url,
        echo=settings.DB_ECHO,
        **engine_config,
    )


# Shared async engine instance
engine = get_engine()

# Async session factory
async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get async session with proper error handling and cleanup.

    Yields:
        AsyncSession: SQLAlchemy async session
    """
    session = async_session_factory()
    try:
        yield session
    finally:
        await session.close()


async def create_db_and_tables(bind: AsyncEngine = engine) -> None:
    """Create the short_urls and analytics_events tables if they are missing."""
    # Register table metadata before create_all
    from snaplink import models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
