"""
Pydantic records exchanged with ingestion and consumer collaborators.

Incoming records are validated here, at the boundary, so the scoring and
clustering code can rely on explicit fields instead of loose dictionaries.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _as_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is None:
        return v
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


class ContentItemIn(BaseModel):
    """Content item as delivered by the ingestion collaborator."""
    id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=800)
    source: str = Field(..., min_length=1, max_length=200, description="Origin tag, e.g. 'rss:variety' or 'reddit_movies'")
    url: Optional[str] = Field(None, max_length=1500)
    published_at: Optional[datetime] = None
    raw_text: Optional[str] = None
    embedding: Optional[List[float]] = Field(None, description="Fixed-length vector, set once")

    @field_validator('title', 'source')
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator('published_at')
    @classmethod
    def normalize_published_at(cls, v):
        return _as_utc(v)

    @field_validator('embedding')
    @classmethod
    def validate_embedding(cls, v):
        if v is not None and len(v) == 0:
            raise ValueError("embedding must not be empty")
        return v


class MetricSnapshotIn(BaseModel):
    """Short-window engagement counters for one item at one instant."""
    views_30m: int = Field(0, ge=0)
    shares_30m: int = Field(0, ge=0)
    comments_30m: int = Field(0, ge=0)
    snapshot_at: Optional[datetime] = Field(None, description="Capture instant; defaults to now")

    @field_validator('snapshot_at')
    @classmethod
    def normalize_snapshot_at(cls, v):
        return _as_utc(v)


class TrendStatusUpdate(BaseModel):
    """Consumer action on a trend's lifecycle."""
    status: str = Field(..., description="'used' or 'ignored'")

    @field_validator('status')
    @classmethod
    def validate_status(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ('used', 'ignored'):
            raise ValueError("status must be 'used' or 'ignored'")
        return v


class SupportingItem(BaseModel):
    id: str
    title: str
    url: Optional[str] = None
    source: str


class TrendOut(BaseModel):
    """Validated trend as read by consumers."""
    id: Optional[int] = None
    topic: str
    trend_score: float
    sources: List[str]
    supporting_items: List[SupportingItem]
    status: str = "new"
    detected_at: Optional[datetime] = None


class ContentRecord(BaseModel):
    """
    Detached copy of a content item row.

    Passes iterate over these instead of ORM instances: a rollback after a
    failed write expires every instance in the session, and reloading one
    outside the async context fails.
    """
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    title: str
    source: str
    url: Optional[str] = None
    published_at: Optional[datetime] = None
    raw_text: Optional[str] = None
    embedding: Optional[Any] = None
    created_at: Optional[datetime] = None
