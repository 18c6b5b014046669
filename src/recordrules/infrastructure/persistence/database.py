"""Database abstraction layer using SQLAlchemy 2.0 async.

This module provides the database session management and engine configuration
used to persist record rule definitions. It supports both SQLite (aiosqlite)
and PostgreSQL (asyncpg) drivers.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from recordrules.core.config import Settings, get_settings
from recordrules.core.logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class DatabaseManager:
    """Database connection and session manager.

    This class manages the async database engine and session factory.
    """

    def __init__(self, settings: Settings | None = None, database_url: str | None = None) -> None:
        """Initialize the database manager.

        Args:
            settings: Settings instance, loaded from the environment when omitted.
            database_url: Overrides ``settings.database_url``.
        """
        self.settings = settings or get_settings()
        self.database_url = database_url or self.settings.database_url
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        """Get or create the database engine."""
        if self._engine is None:
            self._engine = create_async_engine(
                self.database_url,
                echo=self.settings.db_echo,
                # SQLite-specific settings
                connect_args={
                    "check_same_thread": False,
                }
                if self.database_url.startswith("sqlite")
                else {},
            )
            logger.info(
                "Database engine created",
                database_url=self._engine.url.render_as_string(hide_password=True),
            )
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
            logger.debug("Database session factory created")
        return self._session_factory

    async def create_tables(self) -> None:
        """Create all database tables.

        In production, use migrations instead.
        """
        # Register models with Base.metadata
        from recordrules.infrastructure.persistence.models import RecordRuleModel  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created")

    async def drop_tables(self) -> None:
        """Drop all database tables.

        WARNING: This will delete all data. Only use in testing!
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            logger.warning("Database tables dropped")

    async def disconnect(self) -> None:
        """Close the database engine and all connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine disposed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for database operations.

        Yields:
            AsyncSession: SQLAlchemy async session.

        Example:
            async with db.session() as session:
                repo = RecordRuleRepository(session)
                await repo.load_into(store)
        """
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def check_connection(self) -> bool:
        """Check if database connection is working.

        Returns:
            bool: True if connection is successful, False otherwise.
        """
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
                logger.debug("Database connection check successful")
                return True
        except Exception as e:
            logger.error("Database connection check failed", error=str(e))
            return False
