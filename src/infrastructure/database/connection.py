# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database connection management using SQLAlchemy async.

Uses the SQLAlchemy 2.0 async API with the asyncpg driver. A ``Database``
owns one engine and sessionmaker. The API process uses a single global
instance (``init_database`` / ``get_database``); Dramatiq worker threads
each get their own through ``get_worker_database`` because async engines
are bound to the event loop that created them.

Example:
    from src.infrastructure.database.connection import init_database, get_database

    await init_database(settings)

    async with get_database().session() as session:
        result = await session.execute(select(ConceptModel))
"""

import threading
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

if TYPE_CHECKING:
    from src.core.config.settings import Settings

# Module-level state for the API process
_database: Optional["Database"] = None

# Each Dramatiq worker thread gets its own Database instance
_thread_local = threading.local()


class DatabaseError(Exception):
    """Base exception for database operations.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying SQLAlchemy or database error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class Database:
    """Async engine plus sessionmaker for the learning database.

    Attributes:
        engine: The SQLAlchemy async engine.
    """

    def __init__(self, settings: "Settings") -> None:
        """Create the connection pool.

        Raises:
            DatabaseError: If engine creation fails.
        """
        try:
            self._engine: AsyncEngine = create_async_engine(
                settings.database.url,
                pool_size=settings.database.pool_size,
                max_overflow=settings.database.max_overflow,
                pool_pre_ping=True,
                pool_recycle=1800,
                echo=settings.debug and settings.log_level == "DEBUG",
            )
            self._sessionmaker = async_sessionmaker(
                bind=self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to initialize database connection", e) from e

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Get an async session.

        The session is committed on success and rolled back on exception.

        Raises:
            DatabaseError: If a database operation fails.
        """
        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError("Database operation failed", e) from e
            except Exception:
                await session.rollback()
                raise

    async def check_connection(self) -> bool:
        """Check if the database is reachable."""
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    async def dispose(self) -> None:
        await self._engine.dispose()


async def init_database(settings: "Settings") -> Database:
    """Initialize the global database connection pool.

    Raises:
        DatabaseError: If connection pool creation fails.
    """
    global _database

    _database = Database(settings)
    return _database


async def close_database() -> None:
    """Close the global database connection pool."""
    global _database

    if _database is not None:
        await _database.dispose()
        _database = None


def get_database() -> Database:
    """Get the global database.

    Raises:
        DatabaseError: If the database has not been initialized.
    """
    if _database is None:
        raise DatabaseError("Database not initialized. Call init_database() first.")
    return _database


# =============================================================================
# WORKER THREAD-LOCAL DATABASE
# =============================================================================


def get_worker_database() -> Database:
    """Get the Database for the current worker thread.

    Created lazily on first use and bound to the thread's persistent event
    loop (see ``src.infrastructure.background.tasks.base.run_async``).
    """
    database = getattr(_thread_local, "database", None)

    if database is None:
        from src.core.config import get_settings

        database = Database(get_settings())
        _thread_local.database = database

    return database


def _clear_thread_database() -> None:
    """Forget the current thread's Database.

    Called by run_async() when a new event loop is created for a thread; the
    next access builds a fresh engine bound to the new loop.
    """
    _thread_local.database = None
