"""
Async SQLAlchemy engine and sessions.

One session is one transaction: a request (or a job) either commits all of
its ledger writes or none of them.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from coursehub.config import settings

logger = logging.getLogger(__name__)


def _connect_args() -> dict:
    if settings.database_url.startswith("postgresql+asyncpg"):
        # Prepared statements break behind pgbouncer in transaction mode
        return {"statement_cache_size": 0}
    return {}


# NullPool: pooling is left to pgbouncer in front of Postgres
engine = create_async_engine(
    settings.database_url,
    poolclass=NullPool,
    echo=settings.log_level.upper() == "DEBUG",
    connect_args=_connect_args(),
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Transactional session for scheduler jobs, startup and scripts.

    Commits on normal exit, rolls back and re-raises on error.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            logger.debug("Session rolled back")
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: the request's transaction, committed after the handler returns."""
    async with get_db_context() as session:
        yield session
