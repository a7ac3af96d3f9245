"""Database session management."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from petal.config import DatabaseSettings

logger = logging.getLogger(__name__)


class Database:
    """Database connection and session manager.

    Hey future me - the sync stores open ONE short session_scope() per storage
    operation. There's no long transaction around a sync pass on purpose: every
    upsert commits on its own so an aborted sync leaves only complete rows behind.
    """

    def __init__(self, settings: DatabaseSettings) -> None:
        """Initialize database with settings."""
        self.settings = settings

        engine_kwargs: dict[str, Any] = {
            "echo": settings.echo,
            "pool_pre_ping": settings.pool_pre_ping,
        }

        if self.is_postgresql:
            engine_kwargs.update(
                {
                    "pool_size": settings.pool_size,
                    "max_overflow": settings.max_overflow,
                    "pool_timeout": settings.pool_timeout,
                    "pool_recycle": settings.pool_recycle,
                }
            )
        elif self.is_sqlite:
            engine_kwargs["connect_args"] = {
                "check_same_thread": False,
                "timeout": 30,  # Wait up to 30s for the write lock
            }

        self._engine = create_async_engine(settings.url, **engine_kwargs)

        if self.is_sqlite:
            self._enable_sqlite_foreign_keys()

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.settings.url

    @property
    def is_postgresql(self) -> bool:
        return "postgresql" in self.settings.url

    @property
    def dialect_name(self) -> str:
        """SQL dialect of the engine ("sqlite", "postgresql")."""
        return self._engine.dialect.name

    # SQLite ships with foreign keys OFF. Without this the ON DELETE CASCADE on the link
    # tables silently does nothing.
    def _enable_sqlite_foreign_keys(self) -> None:
        @event.listens_for(self._engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn: Any, _connection_record: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope: commit on success, rollback and re-raise on error."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Dispose the engine."""
        await self._engine.dispose()

    async def create_tables(self) -> None:
        """Create all tables (tests and local dev; production uses Alembic)."""
        from petal.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        """Drop all tables (tests only)."""
        from petal.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
