"""
M-Hike API: Database Handle & Session Management
==================================================

What:  Async SQLAlchemy engine, session factory, and FastAPI dependency.
How:   A `Database` object owns the engine. The application lifespan opens
       it once, stores it on `app.state.database`, and disposes it at
       shutdown. Request handlers receive sessions through `get_db_session`.
Who:   Used by route handlers via FastAPI's dependency injection system, and
       by the orphan sweeper, which opens its own short-lived sessions.

Transaction ownership:
    Services commit explicitly. The stale-asset reaper must only run after
    the write is durable, so the commit cannot be deferred to the end of the
    dependency. `get_db_session` only rolls back on error and closes.

Connection Pooling:
    SQLite (the default) uses SQLAlchemy's defaults for aiosqlite.
    Server databases get pool_size / max_overflow / pre_ping from settings.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from mhike.config import Settings
from mhike.exceptions import Conflict, DatabaseError, MHikeError

logger = logging.getLogger(__name__)

# Largest value a primary key or OFFSET can bind as (signed 64-bit INTEGER)
MAX_ROW_ID = 2**63 - 1


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares a single metadata object, used by `Database.create_all()` and by
    Alembic autogenerate.
    """
    pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ships with FK enforcement off; ON DELETE CASCADE needs it on.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Explicit storage-access handle with a defined lifecycle.

    Lifecycle:
        1. Database(settings)  → engine and session factory created (lazy connect)
        2. await create_all()  → optional schema creation (dev / tests)
        3. session()           → one AsyncSession per unit of work
        4. await dispose()     → all pooled connections closed
    """

    def __init__(self, settings: Settings):
        self.url = settings.database_url
        engine_kwargs = {"echo": settings.log_level == "DEBUG"}
        if not settings.is_sqlite:
            engine_kwargs.update(
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_pre_ping=settings.db_pool_pre_ping,
                pool_recycle=3600,
            )

        self.engine: AsyncEngine = create_async_engine(settings.database_url, **engine_kwargs)

        if settings.is_sqlite:
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        # expire_on_commit=False: services read row attributes after commit
        # to build responses
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        """Create any missing tables for every model registered on Base."""
        # Importing the models registers them on Base.metadata
        from mhike.models import hike, observation, user  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Yield a session that is rolled back if the block raises.

        Used directly by background jobs; request handlers go through
        `get_db_session` instead.
        """
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> bool:
        """Run SELECT 1; False when the database is unreachable."""
        from sqlalchemy import text

        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Database ping failed: %s", str(e))
            return False

    async def dispose(self) -> None:
        """Gracefully close all connections in the pool (shutdown)."""
        await self.engine.dispose()


# ── Commit Points ─────────────────────────────────────────────────────────
async def commit_or_raise(
    session: AsyncSession,
    conflict_message: str = "Resource already exists",
    operation: str = "write",
    integrity_error: Optional[MHikeError] = None,
) -> None:
    """
    Commit the session and translate failures into domain errors.

    Raises:
        Conflict:       a unique constraint rejected the write (or
                        `integrity_error`, when the caller knows better,
                        e.g. a foreign key pointing at a vanished row)
        DatabaseError:  any other database failure (details logged only)

    The session is rolled back before raising, so callers may keep using it.
    """
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        logger.info("Constraint violation during %s: %s", operation, str(e.orig))
        if integrity_error is not None:
            raise integrity_error from e
        raise Conflict(message=conflict_message, context={"operation": operation}) from e
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Database failure during %s: %s", operation, str(e))
        raise DatabaseError(
            context={"operation": operation, "db_error": str(e)},
        ) from e


# ── Request Dependencies ──────────────────────────────────────────────────
def get_database(request: Request) -> Database:
    """Return the Database opened by the application lifespan."""
    database: Optional[Database] = getattr(request.app.state, "database", None)
    if database is None:
        raise RuntimeError("Database is not open; was the application lifespan started?")
    return database


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the app's Database
        2. Yields it to the route handler (services commit explicitly)
        3. On error: rolls back anything left uncommitted
        4. Always: closes the session (returns connection to pool)

    Example usage in a route:
        @router.get("/hikes")
        async def list_hikes(db: AsyncSession = Depends(get_db_session)):
            ...
    """
    database = get_database(request)
    async with database.session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
