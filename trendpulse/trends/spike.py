"""Cross-source trend validation.

A cluster becomes a trend only when enough independent sources report it.
Source tags are normalized first so several communities of the same forum
count as one source. Validated trends get a coarse ranking score:

    0.5 * (members / 10) + 0.3 * (distinct sources / 5) + 0.2 * GROWTH_PLACEHOLDER
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from trendpulse.core.config import TrendConfig
from trendpulse.core.logging import get_logger
from trendpulse.core.repositories import insert_trend
from trendpulse.trends.cluster import ContentCluster

logger = get_logger(__name__)

# Trend score weights
VELOCITY_WEIGHT = 0.5
SOURCES_WEIGHT = 0.3
GROWTH_WEIGHT = 0.2

# Normalizers
VELOCITY_PROXY_SCALE = 10
SOURCES_SCALE = 5

# Constant stand-in for a cluster growth signal; no live value feeds it yet
GROWTH_PLACEHOLDER = 0.5

# Separators that split a platform umbrella from a community, e.g. reddit_movies
UMBRELLA_SEPARATORS = ('_', ':', '/')


@dataclass
class DetectedTrend:
    """A cluster that passed cross-source validation."""
    topic: str
    trend_score: float
    sources: List[str]
    supporting_items: List[Dict[str, Any]] = field(default_factory=list)
    status: str = "new"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'topic': self.topic,
            'trend_score': self.trend_score,
            'sources': list(self.sources),
            'supporting_items': list(self.supporting_items),
            'status': self.status,
        }


@dataclass
class SaveResult:
    """Outcome of persisting a batch of trends."""
    saved: int = 0
    errors: List[str] = field(default_factory=list)


def normalize_source(source: str, umbrellas: Iterable[str] = ("reddit",)) -> str:
    """
    Collapse community-level tags under their platform umbrella.

    'reddit_movies', 'reddit:television' and 'reddit' all become 'reddit';
    any other tag is returned lowercased and stripped.
    """
    tag = source.strip().lower()
    for umbrella in umbrellas:
        umbrella = umbrella.lower()
        if tag == umbrella:
            return umbrella
        if any(tag.startswith(umbrella + sep) for sep in UMBRELLA_SEPARATORS):
            return umbrella
    return tag


def distinct_sources(cluster: ContentCluster, umbrellas: Iterable[str] = ("reddit",)) -> List[str]:
    """Normalized distinct sources of a cluster, in first-seen order."""
    umbrellas = tuple(umbrellas)
    seen: List[str] = []
    for item in cluster.items:
        normalized = normalize_source(item.source, umbrellas)
        if normalized not in seen:
            seen.append(normalized)
    return seen


def compute_trend_score(member_count: int, source_count: int) -> float:
    """Weighted ranking signal, not a calibrated probability."""
    score = (
        VELOCITY_WEIGHT * (member_count / VELOCITY_PROXY_SCALE)
        + SOURCES_WEIGHT * (source_count / SOURCES_SCALE)
        + GROWTH_WEIGHT * GROWTH_PLACEHOLDER
    )
    return round(score, 2)


def detect_trends_from_clusters(
    clusters: Sequence[ContentCluster],
    config: TrendConfig
) -> List[DetectedTrend]:
    """
    Promote clusters corroborated by enough distinct sources.

    Args:
        clusters: Candidate clusters
        config: Trend validation configuration

    Returns:
        Trends sorted by trend score, highest first
    """
    trends: List[DetectedTrend] = []

    for cluster in clusters:
        sources = distinct_sources(cluster, config.source_umbrellas)

        if len(sources) < config.min_sources:
            logger.debug(
                f"Dropping cluster '{cluster.topic[:60]}': "
                f"{len(sources)} source(s) < {config.min_sources}"
            )
            continue

        trends.append(DetectedTrend(
            topic=cluster.topic,
            trend_score=compute_trend_score(cluster.size, len(sources)),
            sources=sources,
            supporting_items=[item.to_dict() for item in cluster.items],
        ))

    trends.sort(key=lambda t: t.trend_score, reverse=True)

    logger.info(f"{len(trends)} valid trends from {len(clusters)} clusters")
    return trends


async def save_trends(session: AsyncSession, trends: Sequence[DetectedTrend]) -> SaveResult:
    """
    Persist validated trends with status 'new'.

    A failure on one trend is recorded and the rest are still saved.
    """
    start_time = time.time()
    result = SaveResult()

    for trend in trends:
        try:
            await insert_trend(
                session,
                topic=trend.topic,
                trend_score=trend.trend_score,
                sources=trend.sources,
                supporting_items=trend.supporting_items,
                status=trend.status,
            )
            result.saved += 1
        except Exception as e:
            logger.error(f"Error saving trend '{trend.topic[:60]}': {e}")
            result.errors.append(f"[{trend.topic}] {e}")

    logger.info(
        f"Saved {result.saved}/{len(trends)} trends in {time.time() - start_time:.2f}s"
    )
    return result
