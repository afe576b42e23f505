"""Async SQLAlchemy session management."""

from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from keystone.config import settings


def create_engine_for(url: str, echo: bool = False, **kwargs) -> AsyncEngine:
    """Create an async engine, enabling foreign keys on SQLite."""
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            # ON DELETE CASCADE is only honoured with this pragma.
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    options = {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20, **kwargs}
    return create_async_engine(url, echo=echo, **options)


engine = create_engine_for(settings.database_url, echo=settings.keystone_debug)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async DB session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(create_tables: bool = False) -> None:
    """Initialize database connection pool (called on app startup).

    With ``create_tables`` the schema is created from the ORM metadata.
    """
    from keystone.models.db import Base

    async with engine.begin() as conn:
        if create_tables:
            await conn.run_sync(Base.metadata.create_all)
        else:
            # Just verify the connection works
            await conn.run_sync(lambda _: None)


async def close_db() -> None:
    """Close the database engine (called on app shutdown)."""
    await engine.dispose()
