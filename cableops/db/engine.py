# cableops/db/engine.py
"""
SQLModel database engine and session management.
Uses AsyncSession; every store operation opens its own short-lived session so
bulk operations can fan out concurrently.
Supports SQLite (default) and PostgreSQL via the DATABASE_URL environment variable.
"""

from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from ..core.config import get_settings

SessionFactory = async_sessionmaker[AsyncSession]


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    """Create an async engine, enabling WAL mode for file-based SQLite."""
    is_sqlite = database_url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    new_engine = create_async_engine(database_url, echo=False, connect_args=connect_args, **kwargs)

    # Activate WAL mode only for on-disk SQLite to improve concurrency
    if is_sqlite and ":memory:" not in database_url and database_url.rstrip("/") != "sqlite+aiosqlite:":
        @event.listens_for(new_engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.close()

    return new_engine


def build_session_factory(bind: AsyncEngine) -> SessionFactory:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(get_settings().resolved_database_url)

# Create session maker
async_session_maker = build_session_factory(engine)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for async SQLModel session injection.
    Usage: session: AsyncSession = Depends(get_session)
    """
    async with async_session_maker() as session:
        yield session


async def create_db_and_tables(bind: AsyncEngine | None = None):
    """
    Create all tables defined in SQLModel models.
    Call this at application startup after importing all models.
    """
    from .. import models  # noqa: F401  (registers every table on the metadata)

    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
