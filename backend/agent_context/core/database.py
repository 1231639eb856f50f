"""
Database engine and session factory.
Clients are built here and passed explicitly to the stores that use them.
"""
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from agent_context.core.config import Settings, settings as default_settings
from agent_context.core.logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


def create_engine(
    settings: Optional[Settings] = None,
    url: Optional[str] = None
) -> AsyncEngine:
    """
    Create the async engine for the durable store.

    Args:
        settings: Settings to read connection options from
        url: Override for DATABASE_URL

    Returns:
        AsyncEngine
    """
    settings = settings or default_settings
    url = url or settings.DATABASE_URL

    kwargs = {"echo": settings.DATABASE_ECHO}

    if url.startswith("postgresql+asyncpg"):
        kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
        kwargs["pool_pre_ping"] = True
        kwargs["connect_args"] = {
            "timeout": settings.DATABASE_TIMEOUT_SECONDS,
            "command_timeout": settings.DATABASE_TIMEOUT_SECONDS,
        }

    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory whose objects stay usable after commit."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create the vector extension (PostgreSQL only) and all tables."""
    # Import models so they register on Base.metadata
    from agent_context import models  # noqa: F401

    async with engine.begin() as conn:
        if engine.dialect.name == "postgresql":
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized", dialect=engine.dialect.name)
