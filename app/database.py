"""
Database Configuration

Async SQLAlchemy engine, session factory and declarative base.
Each store operation opens its own session from the factory so that
concurrent background writes never share a session.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.config import DATABASE_URL

Base = declarative_base()


def create_engine_from_url(database_url: str = DATABASE_URL, **kwargs) -> AsyncEngine:
    """
    Create the async engine.

    Args:
        database_url: SQLAlchemy URL with an async driver
            (e.g. "postgresql+asyncpg://...", "sqlite+aiosqlite://")
        **kwargs: Extra create_async_engine options

    Returns:
        AsyncEngine: Configured engine
    """
    if database_url.startswith("postgresql"):
        kwargs.setdefault("pool_pre_ping", True)
        kwargs.setdefault("pool_size", 10)
        kwargs.setdefault("max_overflow", 20)
    return create_async_engine(database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory bound to the engine; objects stay usable after commit."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables (tests and local development; production uses Alembic)."""
    import app.models  # noqa: F401  registers models on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
