"""Database module with async SQLAlchemy engine and session management."""

from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .settings import get_settings

settings = get_settings()

# SQLAlchemy base for models
Base = declarative_base()

# Async engine
async_engine = create_async_engine(
    settings.db_url,
    echo=settings.debug,
    pool_size=10,
    max_overflow=20,
)

# Async session maker
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def ping_db() -> None:
    """Run a trivial query to verify the connection."""
    async with async_engine.begin() as conn:
        await conn.execute(text("SELECT 1"))


async def create_all():
    """Create all tables in the database."""
    # Models must be imported so their tables are registered on Base.metadata
    from trendpulse.core import models  # noqa: F401

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
