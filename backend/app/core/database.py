"""Database connection and session management."""

from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from backend.app.core.config import get_settings

settings = get_settings()


def configure_sqlite_locking(engine: AsyncEngine) -> AsyncEngine:
    """
    Make every SQLite transaction take the write lock up front.

    SQLite ignores SELECT ... FOR UPDATE. Emitting BEGIN IMMEDIATE instead
    serializes writers for the whole transaction, so a precondition read inside
    the transaction cannot be invalidated before commit.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        # The driver's own implicit BEGIN is deferred; we emit ours below.
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(database_url: str, **overrides) -> AsyncEngine:
    """Create the async engine with pool and locking settings for the backend in use."""
    engine_kwargs = {"echo": settings.debug}

    # SSL Configuration
    connect_args = {}
    if settings.db_ssl_mode == "require":
        connect_args["ssl"] = "require"

    if database_url.startswith("sqlite"):
        connect_args["timeout"] = settings.sqlite_busy_timeout

    if connect_args:
        engine_kwargs["connect_args"] = connect_args

    if "postgresql" in database_url:
        engine_kwargs.update({
            "pool_size": settings.database_pool_size,
            "max_overflow": settings.database_max_overflow,
            "pool_pre_ping": True, # Resilience fix
        })

    engine_kwargs.update(overrides)
    engine = create_async_engine(database_url, **engine_kwargs)

    if database_url.startswith("sqlite"):
        configure_sqlite_locking(engine)
    return engine


# Create async engine
engine = build_engine(settings.database_url)

# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency for services that open their own transactions."""
    return async_session_maker


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting database sessions."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

