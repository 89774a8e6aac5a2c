"""Database models for TrendPulse."""

from sqlalchemy import (
    String, DateTime, Boolean, Text, Integer, BigInteger, Float,
    ForeignKey, JSON, Index
)
from sqlalchemy.orm import mapped_column
from sqlalchemy.sql import func

from .db import Base

# SQLite only autoincrements INTEGER PRIMARY KEY
BigIntegerKey = BigInteger().with_variant(Integer, "sqlite")


class ContentItem(Base):
    """Ingested content items (posts, feed entries, videos, forum threads)."""
    __tablename__ = "content_items"

    id = mapped_column(String(64), primary_key=True)
    title = mapped_column(String(800), nullable=False)
    source = mapped_column(String(200), nullable=False, index=True)  # e.g. 'instagram:noa_kirel', 'reddit_movies'
    url = mapped_column(String(1500), nullable=True)
    published_at = mapped_column(DateTime(timezone=True), index=True)  # UTC
    raw_text = mapped_column(Text, nullable=True)
    embedding = mapped_column(JSON(none_as_null=True), nullable=True)  # list[float], set once
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)


class MetricSnapshot(Base):
    """Append-only engagement counters captured for a content item."""
    __tablename__ = "metric_snapshots"

    id = mapped_column(BigIntegerKey, primary_key=True)
    content_id = mapped_column(ForeignKey("content_items.id"), index=True, nullable=False)
    views_30m = mapped_column(Integer, default=0, nullable=False)
    shares_30m = mapped_column(Integer, default=0, nullable=False)
    comments_30m = mapped_column(Integer, default=0, nullable=False)
    snapshot_at = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)


class HeatRecord(Base):
    """One heat scoring result per item per scoring pass."""
    __tablename__ = "heat_records"

    id = mapped_column(BigIntegerKey, primary_key=True)
    content_id = mapped_column(ForeignKey("content_items.id"), index=True, nullable=False)
    heat_score = mapped_column(Float, default=0.0, nullable=False, index=True)
    growth_rate = mapped_column(Float, default=0.0, nullable=False)
    is_breaking = mapped_column(Boolean, default=False, nullable=False)
    generated_at = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)


class Trend(Base):
    """Cross-source validated trend, consumed by idea generation and dashboards."""
    __tablename__ = "trends"

    id = mapped_column(BigIntegerKey, primary_key=True)
    topic = mapped_column(String(800), nullable=False)
    trend_score = mapped_column(Float, default=0.0, nullable=False, index=True)
    sources = mapped_column(JSON, nullable=False)  # list of normalized sources
    supporting_items = mapped_column(JSON, nullable=False)  # [{id, title, url, source}]
    status = mapped_column(String(16), default="new", nullable=False, index=True)  # new|used|ignored
    detected_at = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)


class SystemConfig(Base):
    """Key/value runtime configuration, read on every pass."""
    __tablename__ = "system_config"

    key = mapped_column(String(64), primary_key=True)
    value = mapped_column(JSON, nullable=True)
    updated_at = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


Index('idx_metric_snapshots_content_at', MetricSnapshot.content_id, MetricSnapshot.snapshot_at.desc())
Index('idx_heat_records_generated_score', HeatRecord.generated_at, HeatRecord.heat_score)
Index('idx_trends_detected_desc', Trend.detected_at.desc())
