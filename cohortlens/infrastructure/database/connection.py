# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database connection management using SQLAlchemy async.

Uses SQLAlchemy 2.0 async API with the asyncpg driver. Two access paths
exist:

- ``init_database`` / ``get_session`` for a long-running process that owns
  one event loop (the scheduler process, scripts).
- ``get_worker_session`` for Dramatiq worker threads. Async engines are bound
  to the event loop they were created on, so each worker thread keeps its own
  engine, created lazily on that thread's persistent loop.

Example:
    await init_database(settings)

    async with get_session() as session:
        result = await session.execute(select(Tenant))
        tenants = result.scalars().all()
"""

import threading
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

if TYPE_CHECKING:
    from cohortlens.core.config.settings import Settings

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

# Per worker thread: engine and sessionmaker bound to that thread's loop
_thread_local = threading.local()


class DatabaseError(Exception):
    """Base exception for database operations.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying SQLAlchemy or database error.
    """

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        """Initialize the database error.

        Args:
            message: Human-readable error description.
            original_error: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


def _create_engine(settings: "Settings") -> AsyncEngine:
    return create_async_engine(
        settings.db.url,
        pool_size=settings.db.pool_size,
        max_overflow=settings.db.max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        echo=settings.debug and settings.is_development,
    )


def _create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_database(settings: "Settings") -> None:
    """Initialize the process-wide connection pool.

    Args:
        settings: Application settings containing database configuration.

    Raises:
        DatabaseError: If connection pool creation fails.
    """
    global _engine, _sessionmaker

    try:
        _engine = _create_engine(settings)
        _sessionmaker = _create_sessionmaker(_engine)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to initialize database connection", e) from e


async def close_database() -> None:
    """Dispose the process-wide connection pool."""
    global _engine, _sessionmaker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _sessionmaker = None


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the process-wide sessionmaker.

    Raises:
        DatabaseError: If the database has not been initialized.
    """
    if _sessionmaker is None:
        raise DatabaseError("Database not initialized. Call init_database() first.")
    return _sessionmaker


@asynccontextmanager
async def _session_scope(
    sessionmaker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with sessionmaker() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise DatabaseError("Database operation failed", e) from e
        except Exception:
            await session.rollback()
            raise


def get_session() -> AbstractAsyncContextManager[AsyncSession]:
    """Open a session on the process-wide pool.

    The session is committed on success and rolled back on exception;
    SQLAlchemy errors are re-raised as :class:`DatabaseError`.

    Example:
        async with get_session() as session:
            await session.execute(...)
    """
    return _session_scope(get_sessionmaker())


def get_worker_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Sessionmaker bound to the current worker thread's event loop."""
    sessionmaker = getattr(_thread_local, "sessionmaker", None)
    if sessionmaker is None:
        from cohortlens.core.config import get_settings

        engine = _create_engine(get_settings())
        sessionmaker = _create_sessionmaker(engine)
        _thread_local.engine = engine
        _thread_local.sessionmaker = sessionmaker
    return sessionmaker


def get_worker_session() -> AbstractAsyncContextManager[AsyncSession]:
    """Open a session on the current worker thread's pool.

    Same commit/rollback semantics as :func:`get_session`.
    """
    return _session_scope(get_worker_sessionmaker())


def _clear_thread_db_connections() -> None:
    """Forget the current thread's engine.

    Called when a worker thread gets a new event loop; the engine is rebuilt
    on the new loop at next use. Safe to call when no engine exists.
    """
    _thread_local.engine = None
    _thread_local.sessionmaker = None


async def check_database_connection() -> bool:
    """Check if the database is reachable.

    Returns:
        True if a trivial query succeeds, False otherwise.
    """
    if _engine is None:
        return False

    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
