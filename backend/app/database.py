"""Database configuration and session management."""

import asyncio
import logging
from typing import AsyncGenerator
from uuid import uuid4

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    """Pool options for the given URL; SQLite uses its own pool classes."""
    options = {"echo": settings.debug, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=10, max_overflow=20)
    return options


def enable_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """Turn on FK enforcement for every SQLite connection of ``async_engine``.

    SQLite ignores ``ON DELETE CASCADE`` unless the pragma is set per
    connection.
    """
    if async_engine.dialect.name != "sqlite":
        return

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Create async engine
engine = create_async_engine(
    settings.async_database_url,
    **_engine_options(settings.async_database_url),
)
enable_sqlite_foreign_keys(engine)

# Create session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Base class for models
Base = declarative_base()


def generate_id() -> str:
    """Primary key factory for string-keyed models."""
    return str(uuid4())


def _is_transient_database_startup_error(exc: BaseException) -> bool:
    """Return whether an exception is likely transient during DB startup."""
    if isinstance(exc, (ConnectionRefusedError, OperationalError)):
        return True

    if isinstance(exc, DBAPIError):
        original_error = getattr(exc, "orig", None)
        if original_error is None:
            return True

        transient_error_names = {
            "CannotConnectNowError",
            "ConnectionDoesNotExistError",
            "ConnectionFailureError",
            "ConnectionRefusedError",
            "TooManyConnectionsError",
        }
        if original_error.__class__.__name__ in transient_error_names:
            return True

        message = str(original_error).lower()
        transient_message_markers = (
            "starting up",
            "in recovery mode",
            "cannot connect now",
            "connection refused",
        )
        if any(marker in message for marker in transient_message_markers):
            return True

    return False


async def init_db(max_attempts: int = 30, initial_retry_delay_seconds: float = 1.0) -> None:
    """Create all tables, retrying while the database is still starting up."""
    # Register every model on Base.metadata before create_all.
    import app.models  # noqa: F401

    for attempt in range(1, max_attempts + 1):
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            return
        except (ConnectionRefusedError, OperationalError, DBAPIError) as exc:
            if not _is_transient_database_startup_error(exc) or attempt == max_attempts:
                raise

            retry_delay = initial_retry_delay_seconds * (2 ** (attempt - 1))
            logger.warning(
                "Database initialization attempt failed; retrying",
                extra={
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "exception_class": exc.__class__.__name__,
                    "retry_delay_seconds": retry_delay,
                },
            )
            await asyncio.sleep(retry_delay)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
