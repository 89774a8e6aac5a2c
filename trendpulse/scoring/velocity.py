"""Velocity calculation.

Measures how fast engagement counters move between two consecutive
snapshots of the same content item.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from trendpulse.core.time import elapsed_hours

# Snapshots taken closer together than this are treated as this far apart
MIN_ELAPSED_HOURS = 0.1


@dataclass(frozen=True)
class SnapshotMetrics:
    """Engagement counters of one snapshot."""
    views_30m: int
    shares_30m: int
    comments_30m: int
    snapshot_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> "SnapshotMetrics":
        """Build from a MetricSnapshot row or any object with the same attributes."""
        return cls(
            views_30m=row.views_30m or 0,
            shares_30m=row.shares_30m or 0,
            comments_30m=row.comments_30m or 0,
            snapshot_at=row.snapshot_at,
        )

    @property
    def total(self) -> int:
        return self.views_30m + self.shares_30m + self.comments_30m


@dataclass(frozen=True)
class VelocityResult:
    """Per-hour change of each counter plus aggregate growth percentage."""
    views_velocity: float
    shares_velocity: float
    comments_velocity: float
    growth_rate: float

    def to_dict(self) -> Dict[str, float]:
        return {
            'views_velocity': self.views_velocity,
            'shares_velocity': self.shares_velocity,
            'comments_velocity': self.comments_velocity,
            'growth_rate': self.growth_rate,
        }


def calculate_velocity(current: SnapshotMetrics, previous: Optional[SnapshotMetrics]) -> VelocityResult:
    """
    Calculate per-hour velocity and growth rate between two snapshots.

    With no previous snapshot the current counters are the velocity (growth
    from zero) and the growth rate is 0.

    Growth rate is the percentage change of the summed counters, with every
    previous counter floored at 1 so an item starting from zero still yields
    a finite value.

    Args:
        current: Most recent snapshot
        previous: Second most recent snapshot, or None

    Returns:
        VelocityResult rounded to 2 decimals
    """
    if previous is None:
        return VelocityResult(
            views_velocity=float(current.views_30m),
            shares_velocity=float(current.shares_30m),
            comments_velocity=float(current.comments_30m),
            growth_rate=0.0,
        )

    hours = max(elapsed_hours(previous.snapshot_at, current.snapshot_at), MIN_ELAPSED_HOURS)

    views_velocity = (current.views_30m - previous.views_30m) / hours
    shares_velocity = (current.shares_30m - previous.shares_30m) / hours
    comments_velocity = (current.comments_30m - previous.comments_30m) / hours

    previous_total = (
        max(previous.views_30m, 1)
        + max(previous.shares_30m, 1)
        + max(previous.comments_30m, 1)
    )
    growth_rate = (current.total - previous_total) / previous_total * 100

    return VelocityResult(
        views_velocity=round(views_velocity, 2),
        shares_velocity=round(shares_velocity, 2),
        comments_velocity=round(comments_velocity, 2),
        growth_rate=round(growth_rate, 2),
    )


@dataclass(frozen=True)
class EngagementCounts:
    """Lifetime counters for platforms that also expose likes."""
    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0


def calculate_weighted_velocity(
    current: EngagementCounts,
    previous: Optional[EngagementCounts],
    hours: float
) -> int:
    """
    Single weighted velocity score for like-based platforms.

    Cold start (no previous counts or no elapsed time) scores the raw counters
    as views + 2*likes + 3*comments + 5*shares.
    """
    if previous is None or hours <= 0:
        return current.views + current.likes * 2 + current.comments * 3 + current.shares * 5

    views_vel = (current.views - previous.views) / hours
    likes_vel = (current.likes - previous.likes) / hours
    comments_vel = (current.comments - previous.comments) / hours
    shares_vel = (current.shares - previous.shares) / hours

    return round(views_vel * 0.2 + likes_vel * 0.2 + comments_vel * 0.3 + shares_vel * 0.3)
