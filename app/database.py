"""
Database configuration and session management

Includes automatic connection recovery when the database restarts underneath
a running process.
"""
import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.exc import (
    OperationalError,
    InterfaceError,
    DisconnectionError,
)

from app.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


# Lazy initialization of engine and session factory
_engine = None
_async_session_factory = None
_engine_lock = asyncio.Lock()

# Connection error patterns that indicate stale connections
CONNECTION_ERROR_PATTERNS = [
    "connection was closed",
    "connection is closed",
    "server closed the connection",
    "connection refused",
    "connection reset",
    "connection timed out",
    "terminating connection",
    "too many connections",
]


def _is_connection_error(error: Exception) -> bool:
    """Check if an exception is a connection-related error."""
    error_str = str(error).lower()
    return any(pattern in error_str for pattern in CONNECTION_ERROR_PATTERNS)


def _create_engine():
    """Create a new database engine."""
    options = {
        "echo": settings.debug,
        "pool_pre_ping": True,
    }
    # SQLite uses a single-file pool without sizing knobs
    if not settings.is_sqlite:
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_recycle=300,
            pool_timeout=30,
        )

    return create_async_engine(settings.async_database_url, **options)


def _create_session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine():
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        _engine = _create_engine()
    return _engine


async def reset_engine():
    """Dispose and recreate the engine (for connection recovery)."""
    global _engine, _async_session_factory

    async with _engine_lock:
        if _engine is not None:
            logger.warning("Disposing stale database engine...")
            try:
                await _engine.dispose()
            except Exception as e:
                logger.error(f"Error disposing engine: {e}")
            _engine = None
            _async_session_factory = None

        _engine = _create_engine()
        _async_session_factory = _create_session_factory(_engine)
        logger.info("Database engine recreated successfully")


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = _create_session_factory(get_engine())
    return _async_session_factory


async def _open_session(max_retries: int = 3, retry_delay: float = 1.0) -> AsyncSession:
    """
    Open a session whose connection answered a probe query.

    On connection errors, disposes the engine and retries with a fresh connection.
    """
    last_error = None

    for attempt in range(max_retries):
        session = get_session_factory()()
        try:
            await session.execute(text("SELECT 1"))
            return session
        except (OperationalError, InterfaceError, DisconnectionError) as e:
            await session.close()
            last_error = e
            logger.warning(f"DB probe failed (attempt {attempt + 1}/{max_retries}): {type(e).__name__}: {e}")
            if _is_connection_error(e) and attempt < max_retries - 1:
                await reset_engine()
                await asyncio.sleep(retry_delay * (attempt + 1))
            else:
                break

    logger.error(f"Database connection failed after {max_retries} attempts: {last_error}")
    raise ConnectionError(f"Database temporarily unavailable: {last_error}")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting database sessions.

    Commits when the request handler finishes, rolls back and re-raises
    when it fails.
    """
    from fastapi import HTTPException

    try:
        session = await _open_session()
    except ConnectionError:
        raise HTTPException(
            status_code=503,
            detail="Database temporarily unavailable. Please try again in a few seconds.",
        )

    try:
        yield session
        await session.commit()
    except Exception as e:
        logger.warning(f"get_db rollback due to: {type(e).__name__}")
        await session.rollback()
        raise
    finally:
        await session.close()


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Run a unit of work atomically on an existing session.

    Commits on success. On failure rolls back and re-raises the original error.
    """
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise


async def ping_db() -> bool:
    """Return True when the database answers a probe query."""
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database ping failed: {e}")
        return False


async def init_db() -> None:
    """Create database tables."""
    # Register models on the metadata before create_all
    import app.models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _async_session_factory = None
