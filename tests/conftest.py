"""Shared fixtures for TrendPulse tests."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from trendpulse.core import models  # noqa: F401  registers the tables
from trendpulse.core.db import Base


@pytest.fixture
def now():
    """Fixed reference instant."""
    return datetime(2025, 9, 12, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def session():
    """Mock async session; repositories are patched in the tests that use it."""
    return AsyncMock()


@pytest_asyncio.fixture
async def db_session(tmp_path):
    """Real async session on a throwaway SQLite database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'trendpulse.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as db:
        yield db

    await engine.dispose()


def make_snapshot(views=0, shares=0, comments=0, at=None):
    return SimpleNamespace(views_30m=views, shares_30m=shares, comments_30m=comments, snapshot_at=at)


def make_item(id, title="Item", source="rss:example", published_at=None, url=None, raw_text=None, embedding=None):
    return SimpleNamespace(
        id=id,
        title=title,
        source=source,
        url=url,
        published_at=published_at,
        raw_text=raw_text,
        embedding=embedding,
    )
