"""Repository tests against a real async session (SQLite via aiosqlite)."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from trendpulse.core.config import load_pipeline_config
from trendpulse.core.models import ContentItem, HeatRecord, MetricSnapshot, Trend
from trendpulse.core.repositories import (
    get_config_values,
    get_hot_content,
    get_items_with_embeddings,
    get_items_without_embeddings,
    get_latest_snapshots,
    get_recent_content_items,
    get_recent_heat_scores,
    insert_content_item,
    insert_metric_snapshot,
    insert_trend,
    set_config_value,
    set_item_embedding,
    update_trend_status
)
from trendpulse.core.schemas import ContentItemIn, ContentRecord, MetricSnapshotIn
from trendpulse.core.time import utc_now


async def add_item(db, id, published_at=None, created_at=None, embedding=None, source="rss:example"):
    db.add(ContentItem(
        id=id,
        title=f"Story {id}",
        source=source,
        url=f"https://example.com/{id}",
        published_at=published_at,
        created_at=created_at or published_at or utc_now(),
        embedding=embedding,
    ))
    await db.commit()


async def add_heat(db, content_id, score, at, growth=0.0, breaking=False):
    db.add(HeatRecord(
        content_id=content_id,
        heat_score=score,
        growth_rate=growth,
        is_breaking=breaking,
        generated_at=at,
    ))
    await db.commit()


# ==========================================
# INGESTION
# ==========================================

@pytest.mark.asyncio
async def test_insert_content_item_is_idempotent(db_session, now):
    item = ContentItemIn(id="x", title="Trailer drops", source="reddit_movies", published_at=now)

    created, _ = await insert_content_item(db_session, item)
    again, existing = await insert_content_item(db_session, item.model_copy(update={"title": "Changed"}))

    assert created is True
    assert again is False
    assert existing.title == "Trailer drops"


@pytest.mark.asyncio
async def test_snapshot_for_unknown_item_rejected(db_session):
    with pytest.raises(LookupError):
        await insert_metric_snapshot(db_session, "missing", MetricSnapshotIn(views_30m=5))


# ==========================================
# HEAT SCORING
# ==========================================

@pytest.mark.asyncio
async def test_recent_content_items_window_and_order(db_session, now):
    await add_item(db_session, "old", published_at=now - timedelta(hours=30))
    await add_item(db_session, "mid", published_at=now - timedelta(hours=5))
    await add_item(db_session, "new", published_at=now - timedelta(hours=1))

    items = await get_recent_content_items(db_session, hours=24, now=now)

    assert [i.id for i in items] == ["new", "mid"]
    assert all(isinstance(i, ContentRecord) for i in items)


@pytest.mark.asyncio
async def test_fetched_items_readable_after_rollback(db_session, now):
    await add_item(db_session, "a", published_at=now - timedelta(hours=1))

    items = await get_recent_content_items(db_session, hours=24, now=now)
    await db_session.rollback()

    assert items[0].id == "a"
    assert items[0].title == "Story a"
    assert items[0].url == "https://example.com/a"


@pytest.mark.asyncio
async def test_latest_snapshots_newest_first(db_session, now):
    await add_item(db_session, "a", published_at=now - timedelta(hours=2))
    for minutes, views in [(60, 100), (0, 300), (30, 200)]:
        await insert_metric_snapshot(
            db_session, "a", MetricSnapshotIn(views_30m=views, snapshot_at=now - timedelta(minutes=minutes))
        )

    snapshots = await get_latest_snapshots(db_session, "a", limit=2)

    assert [s.views_30m for s in snapshots] == [300, 200]


@pytest.mark.asyncio
async def test_latest_snapshots_same_instant_prefers_last_inserted(db_session, now):
    await add_item(db_session, "a", published_at=now)
    for views in (10, 20):
        db_session.add(MetricSnapshot(content_id="a", views_30m=views, snapshot_at=now))
        await db_session.commit()

    snapshots = await get_latest_snapshots(db_session, "a", limit=1)

    assert snapshots[0].views_30m == 20


@pytest.mark.asyncio
async def test_recent_heat_scores_positive_within_window(db_session, now):
    await add_item(db_session, "a", published_at=now)
    await add_heat(db_session, "a", 120.0, now - timedelta(days=1))
    await add_heat(db_session, "a", 80.0, now - timedelta(days=3))
    await add_heat(db_session, "a", 0.0, now - timedelta(days=2))
    await add_heat(db_session, "a", 300.0, now - timedelta(days=8))

    scores = await get_recent_heat_scores(db_session, days=7, now=now)

    assert sorted(scores) == [80.0, 120.0]


@pytest.mark.asyncio
async def test_hot_content_uses_latest_record_per_item(db_session):
    current = utc_now()
    await add_item(db_session, "a", published_at=current - timedelta(hours=1))
    await add_item(db_session, "b", published_at=current - timedelta(hours=2))
    await add_item(db_session, "c", published_at=current - timedelta(hours=3))
    await add_item(db_session, "gone", published_at=current - timedelta(hours=72))

    await add_heat(db_session, "a", 50.0, current - timedelta(hours=2))
    await add_heat(db_session, "a", 150.0, current - timedelta(minutes=30), growth=40.0, breaking=True)
    await add_heat(db_session, "b", 80.0, current - timedelta(minutes=30))
    await add_heat(db_session, "gone", 999.0, current - timedelta(minutes=30))

    hot = await get_hot_content(db_session, hours=48, limit=50)

    assert [h['id'] for h in hot] == ["a", "b", "c"]
    assert [h['heat_score'] for h in hot] == [150.0, 80.0, 0.0]
    assert hot[0]['is_breaking'] is True
    assert hot[0]['growth_rate'] == 40.0
    assert hot[2]['is_breaking'] is False
    assert hot[2]['generated_at'] is None


@pytest.mark.asyncio
async def test_hot_content_empty_window(db_session):
    assert await get_hot_content(db_session) == []


# ==========================================
# EMBEDDINGS
# ==========================================

@pytest.mark.asyncio
async def test_items_without_embeddings(db_session):
    current = utc_now()
    await add_item(db_session, "pending", created_at=current - timedelta(hours=1))
    await add_item(db_session, "done", created_at=current - timedelta(hours=2), embedding=[0.1, 0.2])
    await add_item(db_session, "expired", created_at=current - timedelta(hours=72))

    items = await get_items_without_embeddings(db_session, hours=48, limit=50)

    assert [i.id for i in items] == ["pending"]
    assert isinstance(items[0], ContentRecord)


@pytest.mark.asyncio
async def test_embedding_stored_once(db_session):
    await add_item(db_session, "a", created_at=utc_now())

    assert await set_item_embedding(db_session, "a", [0.1, 0.2]) is True
    assert await set_item_embedding(db_session, "a", [0.9, 0.9]) is False

    stored = (await db_session.execute(
        select(ContentItem.embedding).where(ContentItem.id == "a")
    )).scalar_one()
    assert stored == [0.1, 0.2]

    embedded = await get_items_with_embeddings(db_session, hours=24)
    assert [i.id for i in embedded] == ["a"]
    assert embedded[0].embedding == [0.1, 0.2]


# ==========================================
# TRENDS
# ==========================================

@pytest.mark.asyncio
async def test_trend_status_lifecycle(db_session):
    trend = await insert_trend(
        db_session,
        topic="Sequel announced",
        trend_score=0.37,
        sources=["rss:variety", "reddit"],
        supporting_items=[{"id": "1", "title": "Sequel announced", "url": None, "source": "rss:variety"}],
    )

    assert await update_trend_status(db_session, trend.id, "used") is True
    assert await update_trend_status(db_session, trend.id + 100, "ignored") is False
    with pytest.raises(ValueError):
        await update_trend_status(db_session, trend.id, "new")

    status = (await db_session.execute(select(Trend.status).where(Trend.id == trend.id))).scalar_one()
    assert status == "used"


# ==========================================
# CONFIG STORE
# ==========================================

@pytest.mark.asyncio
async def test_config_store_round_trip(db_session):
    await set_config_value(db_session, "trend_config", {"min_sources": 3})
    await set_config_value(db_session, "trend_config", {"min_sources": 4})

    values = await get_config_values(db_session, ["trend_config", "heat_config"])
    config = await load_pipeline_config(db_session)

    assert values == {"trend_config": {"min_sources": 4}}
    assert config.trends.min_sources == 4
    assert config.heat.min_history == 5
