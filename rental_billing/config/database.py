"""
Database configuration for the invoice settings store.
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ..models.database import Base


class DatabaseConfig:
    """Database configuration management."""

    def __init__(self):
        self.async_database_url = self._get_async_database_url()
        self.echo = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    def _get_async_database_url(self) -> str:
        """Get asynchronous database URL from environment."""
        if os.getenv("TESTING", "false").lower() == "true":
            return "sqlite+aiosqlite:///:memory:"
        url = os.getenv("ASYNC_DATABASE_URL")
        if url:
            return url
        url = os.getenv("DATABASE_URL")
        if not url:
            return "sqlite+aiosqlite:///./rental_billing.db"
        # Convert sync driver URLs to their async counterparts
        if url.startswith("postgresql+psycopg://"):
            return url.replace("postgresql+psycopg://", "postgresql+asyncpg://")
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://")
        if url.startswith("sqlite:///"):
            return url.replace("sqlite:///", "sqlite+aiosqlite:///")
        return url


def create_engine_from_env(config: Optional[DatabaseConfig] = None) -> AsyncEngine:
    config = config or DatabaseConfig()
    if ":memory:" in config.async_database_url:
        # One shared connection, otherwise every checkout sees an empty database
        return create_async_engine(
            config.async_database_url,
            echo=config.echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(config.async_database_url, echo=config.echo)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_database_tables(engine: AsyncEngine) -> None:
    """Create the settings table if missing (no migrations for a single table)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def session_scope(factory: async_sessionmaker) -> AsyncIterator[AsyncSession]:
    """Yield a session that commits on success and rolls back on error."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


__all__ = [
    "DatabaseConfig",
    "create_engine_from_env",
    "create_session_factory",
    "create_database_tables",
    "session_scope",
]
