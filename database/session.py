"""
Async database session management for the lead intelligence engine.

Provides the async engine, session factory and a transactional session
scope. One Database instance is created per application.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine,
)
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


def normalize_database_url(database_url: str) -> str:
    """Ensure an async driver is named in the URL."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


class Database:
    """Owns the async engine and session factory."""

    def __init__(self, database_url: str, pool_size: int = 5, max_overflow: int = 10):
        """
        Args:
            database_url: Connection string (postgresql or sqlite)
            pool_size: Connection pool size (ignored for sqlite)
            max_overflow: Max overflow connections (ignored for sqlite)
        """
        self.database_url = normalize_database_url(database_url)
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    async def init(self, create_tables: bool = True) -> None:
        """Create the engine and, optionally, the tables."""
        if self.is_sqlite:
            # In-memory sqlite must share one connection across sessions
            kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
        else:
            kwargs = {"pool_size": self.pool_size, "max_overflow": self.max_overflow}

        self._engine = create_async_engine(self.database_url, echo=False, **kwargs)
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        # Create tables (use Alembic in production)
        if create_tables:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        logger.info("Database initialized")

    async def close(self) -> None:
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Transactional scope: commit on success, roll back on error."""
        if not self._session_factory:
            raise RuntimeError("Database not initialized. Call init() first.")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
