"""
Database engine and session factories.

No module-level engine: callers build one from Settings and pass the session
factory to the stores that need it.
"""
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from order_ledger.config import Settings, get_settings
from order_ledger.database.models import Base


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """
    Create the async database engine.

    SQLite (aiosqlite) does not accept pool sizing arguments, so those are
    only passed for server databases.

    Returns:
        AsyncEngine: SQLAlchemy async engine instance
    """
    settings = settings or get_settings()
    kwargs: dict[str, Any] = {"echo": settings.database_echo}
    if not settings.is_sqlite:
        kwargs.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,  # Verify connections before using
            pool_recycle=3600,  # Recycle connections after 1 hour
        )
    return create_async_engine(settings.database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Create a session factory bound to ``engine``.

    Returns:
        async_sessionmaker: SQLAlchemy async session factory
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables defined in models if they don't exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
