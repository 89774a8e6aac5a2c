"""Repository layer for database operations.

Provides async reads and inserts for content items, metric snapshots, heat
records, trends and the key/value config store. Snapshots, heat records and
trends are insert-only; embeddings are attached once and never overwritten.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, update, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from trendpulse.core.logging import get_logger
from trendpulse.core.models import ContentItem, MetricSnapshot, HeatRecord, Trend, SystemConfig
from trendpulse.core.schemas import ContentItemIn, ContentRecord, MetricSnapshotIn
from trendpulse.core.time import utc_now, hours_ago

logger = get_logger(__name__)


# =============================================================================
# CONFIG STORE
# =============================================================================

async def get_config_values(session: AsyncSession, keys: Iterable[str]) -> Dict[str, Any]:
    """
    Get raw values for the requested config keys.

    Args:
        session: Database session
        keys: Config keys to read

    Returns:
        Mapping of key to stored value; absent keys are omitted
    """
    stmt = select(SystemConfig.key, SystemConfig.value).where(SystemConfig.key.in_(list(keys)))
    result = await session.execute(stmt)
    return {row[0]: row[1] for row in result.fetchall()}


async def set_config_value(session: AsyncSession, key: str, value: Any) -> None:
    """Insert or replace a config value."""
    existing = await session.get(SystemConfig, key)
    if existing:
        existing.value = value
    else:
        session.add(SystemConfig(key=key, value=value))
    await session.commit()
    logger.info(f"Config value set: {key}")


# =============================================================================
# INGESTION BOUNDARY
# =============================================================================

async def insert_content_item(session: AsyncSession, item: ContentItemIn) -> Tuple[bool, ContentItem]:
    """
    Insert a content item if its id is new.

    Returns:
        Tuple of (was_created, content_item)
    """
    existing = await session.get(ContentItem, item.id)
    if existing:
        logger.debug(f"Content item already exists: {item.id}")
        return False, existing

    new_item = ContentItem(
        id=item.id,
        title=item.title,
        source=item.source,
        url=item.url,
        published_at=item.published_at,
        raw_text=item.raw_text,
        embedding=item.embedding,
        created_at=utc_now(),
    )
    session.add(new_item)

    try:
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error(f"Failed to insert content item {item.id}: {e}")
        raise

    logger.debug(f"Created content item {item.id}", extra={'source': item.source})
    return True, new_item


async def insert_metric_snapshot(
    session: AsyncSession,
    content_id: str,
    snapshot: MetricSnapshotIn
) -> MetricSnapshot:
    """
    Append a metric snapshot for an existing content item.

    Raises:
        LookupError: if the content item does not exist
    """
    if await session.get(ContentItem, content_id) is None:
        raise LookupError(f"Content item not found: {content_id}")

    row = MetricSnapshot(
        content_id=content_id,
        views_30m=snapshot.views_30m,
        shares_30m=snapshot.shares_30m,
        comments_30m=snapshot.comments_30m,
        snapshot_at=snapshot.snapshot_at or utc_now(),
    )
    session.add(row)

    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    return row


# =============================================================================
# HEAT SCORING
# =============================================================================

async def get_recent_content_items(
    session: AsyncSession,
    hours: float = 24,
    now: Optional[datetime] = None
) -> List[ContentRecord]:
    """
    Get content items published within the trailing window, newest first.

    Args:
        session: Database session
        hours: Publication window in hours
        now: Reference instant (defaults to current UTC time)
    """
    cutoff = hours_ago(hours, now)
    stmt = (
        select(ContentItem)
        .where(ContentItem.published_at >= cutoff)
        .order_by(desc(ContentItem.published_at))
    )
    result = await session.execute(stmt)
    items = [ContentRecord.model_validate(row) for row in result.scalars().all()]

    logger.debug(f"Retrieved {len(items)} content items published in the last {hours}h")
    return items


async def get_latest_snapshots(
    session: AsyncSession,
    content_id: str,
    limit: int = 2
) -> List[MetricSnapshot]:
    """Get the most recent snapshots for an item, most recent first."""
    stmt = (
        select(MetricSnapshot)
        .where(MetricSnapshot.content_id == content_id)
        .order_by(desc(MetricSnapshot.snapshot_at), desc(MetricSnapshot.id))
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_recent_heat_scores(
    session: AsyncSession,
    days: float = 7,
    now: Optional[datetime] = None
) -> List[float]:
    """Get all positive heat scores generated within the trailing window."""
    cutoff = (now or utc_now()) - timedelta(days=days)
    stmt = (
        select(HeatRecord.heat_score)
        .where(HeatRecord.generated_at >= cutoff)
        .where(HeatRecord.heat_score > 0)
    )
    result = await session.execute(stmt)
    return [float(row[0]) for row in result.fetchall()]


async def insert_heat_record(
    session: AsyncSession,
    content_id: str,
    heat_score: float,
    growth_rate: float,
    is_breaking: bool,
    generated_at: Optional[datetime] = None
) -> HeatRecord:
    """Append a heat record."""
    record = HeatRecord(
        content_id=content_id,
        heat_score=heat_score,
        growth_rate=growth_rate,
        is_breaking=is_breaking,
        generated_at=generated_at or utc_now(),
    )
    session.add(record)

    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    return record


async def get_hot_content(
    session: AsyncSession,
    hours: float = 48,
    limit: int = 50
) -> List[Dict[str, Any]]:
    """
    Get recently published items with their latest heat record.

    Returns:
        Dictionaries sorted by heat score descending; items never scored
        report zeros
    """
    items_stmt = (
        select(ContentItem)
        .where(ContentItem.published_at >= hours_ago(hours))
        .order_by(desc(ContentItem.published_at))
        .limit(limit)
    )
    items = list((await session.execute(items_stmt)).scalars().all())
    if not items:
        return []

    latest = (
        select(HeatRecord.content_id, func.max(HeatRecord.generated_at).label('latest_at'))
        .where(HeatRecord.content_id.in_([item.id for item in items]))
        .group_by(HeatRecord.content_id)
        .subquery()
    )
    records_stmt = select(HeatRecord).join(
        latest,
        (HeatRecord.content_id == latest.c.content_id) & (HeatRecord.generated_at == latest.c.latest_at)
    )
    records = {r.content_id: r for r in (await session.execute(records_stmt)).scalars().all()}

    hot = []
    for item in items:
        record = records.get(item.id)
        hot.append({
            'id': item.id,
            'title': item.title,
            'source': item.source,
            'url': item.url,
            'published_at': item.published_at,
            'heat_score': record.heat_score if record else 0.0,
            'growth_rate': record.growth_rate if record else 0.0,
            'is_breaking': record.is_breaking if record else False,
            'generated_at': record.generated_at if record else None,
        })

    hot.sort(key=lambda x: x['heat_score'], reverse=True)
    return hot


# =============================================================================
# EMBEDDINGS AND CLUSTERING
# =============================================================================

async def get_items_without_embeddings(
    session: AsyncSession,
    hours: float = 48,
    limit: int = 50
) -> List[ContentRecord]:
    """Get recently ingested items that still have no embedding."""
    stmt = (
        select(ContentItem)
        .where(ContentItem.embedding.is_(None))
        .where(ContentItem.created_at >= hours_ago(hours))
        .order_by(desc(ContentItem.created_at))
        .limit(limit)
    )
    result = await session.execute(stmt)
    return [ContentRecord.model_validate(row) for row in result.scalars().all()]


async def set_item_embedding(session: AsyncSession, content_id: str, embedding: List[float]) -> bool:
    """
    Attach an embedding to an item that does not have one yet.

    Returns:
        True if the embedding was stored, False if the item already had one
    """
    stmt = (
        update(ContentItem)
        .where(ContentItem.id == content_id)
        .where(ContentItem.embedding.is_(None))
        .values(embedding=embedding)
        .execution_options(synchronize_session=False)
    )

    try:
        result = await session.execute(stmt)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    return result.rowcount > 0


async def get_items_with_embeddings(
    session: AsyncSession,
    hours: float = 24,
    limit: Optional[int] = 200,
    now: Optional[datetime] = None
) -> List[ContentRecord]:
    """Get recently ingested items that have an embedding, newest first."""
    stmt = (
        select(ContentItem)
        .where(ContentItem.embedding.isnot(None))
        .where(ContentItem.created_at >= hours_ago(hours, now))
        .order_by(desc(ContentItem.created_at))
        .limit(limit)
    )
    result = await session.execute(stmt)
    items = [ContentRecord.model_validate(row) for row in result.scalars().all()]

    logger.debug(f"Retrieved {len(items)} embedded items from the last {hours}h")
    return items


# =============================================================================
# TRENDS
# =============================================================================

async def insert_trend(
    session: AsyncSession,
    topic: str,
    trend_score: float,
    sources: List[str],
    supporting_items: List[Dict[str, Any]],
    status: str = "new"
) -> Trend:
    """Append a validated trend."""
    trend = Trend(
        topic=topic,
        trend_score=trend_score,
        sources=sources,
        supporting_items=supporting_items,
        status=status,
        detected_at=utc_now(),
    )
    session.add(trend)

    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    return trend


async def list_trends(session: AsyncSession, limit: int = 30) -> List[Trend]:
    """Get the most recently detected trends."""
    stmt = select(Trend).order_by(desc(Trend.detected_at)).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_trend_status(session: AsyncSession, trend_id: int, status: str) -> bool:
    """
    Set a trend's lifecycle status. Only consumers call this.

    Returns:
        True if a trend was updated
    """
    if status not in ('used', 'ignored'):
        raise ValueError(f"Invalid trend status: {status}")

    stmt = update(Trend).where(Trend.id == trend_id).values(status=status)
    result = await session.execute(stmt)
    await session.commit()

    updated = result.rowcount > 0
    if updated:
        logger.info(f"Trend {trend_id} marked as {status}")
    return updated
