"""
Database Infrastructure & Connection Management
================================================
Async PostgreSQL client with:
- Connection pooling (SQLAlchemy + asyncpg)
- Health check on startup
- Session context manager with commit/rollback
- Thin statement helpers for the repositories

Architecture: Repository Pattern + Unit of Work
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from loguru import logger
from sqlalchemy import event, text
from sqlalchemy.engine import Result
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.sql import Executable

from config.settings import Settings, get_settings
from core.exceptions import DatabaseConnectionError, DatabaseQueryError
from infrastructure.schema import metadata


class DatabaseManager:
    """
    Centralized database connection and session management.

    One instance per process, owned by the dependency container.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None
        self._is_initialized: bool = False
        self._settings = settings or get_settings()

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    async def initialize(self, create_tables: bool = False) -> None:
        """
        Initialize database engine and session factory.

        Must be called during application startup.
        """
        if self._is_initialized:
            logger.warning("Database already initialized")
            return

        db = self._settings.database
        try:
            self._engine = create_async_engine(
                db.url,
                echo=db.echo_sql,
                pool_size=db.pool_size,
                max_overflow=db.max_overflow,
                pool_timeout=db.pool_timeout,
                pool_recycle=db.pool_recycle,
                pool_pre_ping=True,  # Verify connections before use
            )

            self._register_events()

            self._session_factory = async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,  # Prevent lazy loading after commit
            )

            await self.health_check()

            if create_tables:
                async with self._engine.begin() as conn:
                    await conn.run_sync(metadata.create_all)
                logger.info("Database tables ensured")

            self._is_initialized = True
            logger.info("Database initialized successfully")

        except DatabaseConnectionError:
            raise
        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            raise DatabaseConnectionError(
                "Failed to initialize database connection",
                url=db.url.split("@")[-1],
                cause=e,
            ) from e

    async def close(self) -> None:
        """Dispose the engine. Called during application shutdown."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            self._is_initialized = False
            logger.info("Database connections closed")

    def _register_events(self) -> None:
        if not self._engine:
            return

        @event.listens_for(self._engine.sync_engine, "connect")
        def receive_connect(dbapi_conn, connection_record):
            logger.debug("New database connection established")

    async def health_check(self) -> bool:
        """Verify database connectivity."""
        if not self._engine:
            raise DatabaseConnectionError("Database engine not initialized")

        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                return result.scalar() == 1
        except (OperationalError, DBAPIError, OSError) as e:
            logger.error(f"Database health check failed: {e}")
            raise DatabaseConnectionError("Database health check failed", cause=e) from e

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide async database session with automatic cleanup.

        Usage:
            async with db_manager.session() as session:
                await session.execute(stmt)

        Commits on clean exit, rolls back on error.
        """
        if not self._session_factory:
            raise DatabaseConnectionError("Database not initialized")

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Session error, rolled back: {e}")
            raise
        finally:
            await session.close()

    async def execute(self, statement: Executable, params: Optional[dict] = None) -> Result:
        """Execute a Core statement in its own transaction."""
        async with self.session() as session:
            try:
                return await session.execute(statement, params or {})
            except SQLAlchemyError as e:
                raise DatabaseQueryError(
                    "Query execution failed", query_preview=str(statement), cause=e
                ) from e

    async def fetch_one(
        self, statement: Executable, params: Optional[dict] = None
    ) -> Optional[dict[str, Any]]:
        """Execute and return the first row as a mapping, or None."""
        result = await self.execute(statement, params)
        row = result.mappings().first()
        return dict(row) if row is not None else None

    async def fetch_all(
        self, statement: Executable, params: Optional[dict] = None
    ) -> list[dict[str, Any]]:
        """Execute and return all rows as mappings."""
        result = await self.execute(statement, params)
        return [dict(row) for row in result.mappings().all()]

    @property
    def engine(self) -> AsyncEngine:
        """Get database engine (raises if not initialized)."""
        if not self._engine:
            raise DatabaseConnectionError("Database engine not initialized")
        return self._engine


__all__ = ["DatabaseManager"]
