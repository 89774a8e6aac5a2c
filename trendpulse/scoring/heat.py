"""Heat score engine.

Turns the latest engagement snapshot and its growth rate into a single
comparable heat number, keeps a self-calibrating anomaly threshold, and flags
fresh items that cross it as breaking:

- heat = w_views*views + w_shares*shares + w_comments*comments + w_growth*|growth|
- threshold (dynamic) = mean + 2*stddev of positive heat scores of the last 7 days
- breaking = heat > threshold AND published within the last 6 hours
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from sqlalchemy.ext.asyncio import AsyncSession

from trendpulse.core.config import (
    DEFAULT_MANUAL_THRESHOLD,
    HeatConfig,
    HeatScoreWeights,
    PipelineConfig,
    ThresholdConfig,
)
from trendpulse.core.logging import get_logger
from trendpulse.core.repositories import (
    get_latest_snapshots,
    get_recent_content_items,
    get_recent_heat_scores,
    insert_heat_record,
)
from trendpulse.core.time import is_recent, utc_now
from trendpulse.scoring.velocity import SnapshotMetrics, calculate_velocity

logger = get_logger(__name__)

DEFAULT_WEIGHTS = HeatScoreWeights()
STDDEV_MULTIPLIER = 2.0


@dataclass
class ThresholdStats:
    """The breaking threshold used by one pass and how it was derived."""
    value: float
    mode: str  # 'manual' | 'dynamic' | 'fallback'
    mean: Optional[float] = None
    stddev: Optional[float] = None
    sample_size: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'value': self.value,
            'mode': self.mode,
            'mean': self.mean,
            'stddev': self.stddev,
            'sample_size': self.sample_size,
        }


@dataclass
class HeatResult:
    """Heat scoring outcome for one content item."""
    content_id: str
    heat_score: float
    growth_rate: float
    is_breaking: bool
    title: str
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'content_id': self.content_id,
            'heat_score': self.heat_score,
            'growth_rate': self.growth_rate,
            'is_breaking': self.is_breaking,
            'title': self.title,
            'url': self.url,
        }


@dataclass
class HeatPassResult:
    """Summary of one heat scoring pass."""
    processed: int = 0
    breaking_items: List[HeatResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    threshold: Optional[ThresholdStats] = None
    runtime_seconds: float = 0.0
    fatal: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'processed': self.processed,
            'breaking': len(self.breaking_items),
            'breaking_items': [item.to_dict() for item in self.breaking_items],
            'errors': self.errors,
            'threshold': self.threshold.to_dict() if self.threshold else None,
            'runtime_seconds': self.runtime_seconds,
            'fatal': self.fatal,
        }


def compute_heat_score(
    views_30m: float,
    shares_30m: float,
    comments_30m: float,
    growth_rate: float,
    weights: HeatScoreWeights = DEFAULT_WEIGHTS
) -> float:
    """
    Weighted heat score for one item.

    Growth contributes through its absolute value: a rapidly cooling item
    still trended and stays relevant.
    """
    heat = (
        weights.views * views_30m
        + weights.shares * shares_30m
        + weights.comments * comments_30m
        + weights.growth * abs(growth_rate)
    )
    return round(heat, 2)


def threshold_from_scores(
    scores: Sequence[float],
    min_history: int = 5,
    fallback: float = DEFAULT_MANUAL_THRESHOLD
) -> ThresholdStats:
    """
    Dynamic threshold from historical heat scores: mean + 2 * population stddev.

    Only positive scores count. Fewer than `min_history` of them is too small
    a sample, so the fallback value is returned instead.
    """
    positive = [s for s in scores if s > 0]
    if len(positive) < max(min_history, 1):
        return ThresholdStats(value=fallback, mode='fallback', sample_size=len(positive))

    arr = np.array(positive, dtype=float)
    mean = float(arr.mean())
    stddev = float(arr.std())  # population (ddof=0)

    return ThresholdStats(
        value=mean + STDDEV_MULTIPLIER * stddev,
        mode='dynamic',
        mean=mean,
        stddev=stddev,
        sample_size=len(positive),
    )


async def get_heat_threshold(
    session: AsyncSession,
    threshold_config: ThresholdConfig,
    heat_config: HeatConfig,
    now: Optional[datetime] = None
) -> ThresholdStats:
    """
    Determine the breaking threshold for a pass.

    Manual mode returns the configured value without touching history.
    Dynamic mode derives it from the trailing heat record population.
    """
    if threshold_config.mode == 'manual':
        return ThresholdStats(value=threshold_config.manual_value, mode='manual')

    scores = await get_recent_heat_scores(session, days=heat_config.history_days, now=now)
    stats = threshold_from_scores(scores, min_history=heat_config.min_history)

    if stats.mode == 'dynamic':
        logger.info(
            f"Dynamic threshold: {stats.value:.2f} "
            f"(mean={stats.mean:.2f}, std={stats.stddev:.2f}, n={stats.sample_size})"
        )
    else:
        logger.info(
            f"Not enough heat history for a dynamic threshold "
            f"(n={stats.sample_size} < {heat_config.min_history}), using {stats.value:.2f}"
        )
    return stats


def is_breaking(
    heat_score: float,
    threshold: float,
    published_at: Optional[datetime],
    window_hours: float = 6,
    now: Optional[datetime] = None
) -> bool:
    """Breaking requires both a score strictly above threshold and a fresh publication."""
    return heat_score > threshold and is_recent(published_at, window_hours, now)


async def compute_all_heat_scores(
    session: AsyncSession,
    config: PipelineConfig,
    now: Optional[datetime] = None
) -> HeatPassResult:
    """
    Score every item published within the scoring window.

    The threshold is computed once per pass so the ranking is consistent
    across items. Each item gets a new HeatRecord; an item that fails is
    recorded in `errors` and the pass moves on.

    Args:
        session: Database session
        config: Pipeline configuration loaded for this pass
        now: Reference instant (defaults to current UTC time)

    Returns:
        HeatPassResult with processed count, breaking items and errors
    """
    start_time = time.time()
    now = now or utc_now()
    result = HeatPassResult()

    try:
        items = await get_recent_content_items(session, hours=config.heat.scoring_window_hours, now=now)
    except Exception as e:
        logger.error(f"Failed to fetch content for heat scoring: {e}")
        result.errors.append(f"Failed to fetch content: {e}")
        result.fatal = True
        result.runtime_seconds = time.time() - start_time
        return result

    logger.info(f"Scoring {len(items)} items published in the last {config.heat.scoring_window_hours}h")

    try:
        threshold = await get_heat_threshold(session, config.threshold, config.heat, now=now)
    except Exception as e:
        logger.error(f"Failed to compute threshold, using manual default: {e}")
        result.errors.append(f"Failed to compute threshold: {e}")
        await session.rollback()
        threshold = ThresholdStats(value=DEFAULT_MANUAL_THRESHOLD, mode='fallback')
    result.threshold = threshold

    for item in items:
        try:
            snapshots = await get_latest_snapshots(session, item.id, limit=2)
            if not snapshots:
                raise LookupError("no metric snapshots")

            current = SnapshotMetrics.from_row(snapshots[0])
            previous = SnapshotMetrics.from_row(snapshots[1]) if len(snapshots) > 1 else None

            velocity = calculate_velocity(current, previous)
            heat_score = compute_heat_score(
                current.views_30m,
                current.shares_30m,
                current.comments_30m,
                velocity.growth_rate,
                config.weights,
            )
            breaking = is_breaking(
                heat_score,
                threshold.value,
                item.published_at,
                window_hours=config.heat.breaking_window_hours,
                now=now,
            )

            await insert_heat_record(
                session,
                content_id=item.id,
                heat_score=heat_score,
                growth_rate=velocity.growth_rate,
                is_breaking=breaking,
                generated_at=now,
            )

            heat = HeatResult(
                content_id=item.id,
                heat_score=heat_score,
                growth_rate=velocity.growth_rate,
                is_breaking=breaking,
                title=item.title,
                url=item.url,
            )
            result.processed += 1
            if breaking:
                result.breaking_items.append(heat)

            logger.debug(
                f"Item {item.id}: heat={heat_score:.2f} growth={velocity.growth_rate:.2f}% "
                f"breaking={breaking}"
            )

        except Exception as e:
            logger.error(f"Error scoring item {item.id}: {e}")
            result.errors.append(f"[{item.id}] {e}")

    result.runtime_seconds = time.time() - start_time
    logger.info(
        f"Processed {result.processed} items, {len(result.breaking_items)} breaking "
        f"(threshold={threshold.value:.2f}, mode={threshold.mode}, errors={len(result.errors)})"
    )
    return result
