"""Engagement scoring package.

This package contains modules for:
- Snapshot velocity and growth rate (velocity.py)
- Heat scoring, breaking threshold and the batch scoring pass (heat.py)
"""

from .velocity import (
    SnapshotMetrics,
    VelocityResult,
    EngagementCounts,
    calculate_velocity,
    calculate_weighted_velocity
)

from .heat import (
    ThresholdStats,
    HeatResult,
    HeatPassResult,
    compute_heat_score,
    threshold_from_scores,
    get_heat_threshold,
    is_breaking,
    compute_all_heat_scores
)

__all__ = [
    # Velocity
    'SnapshotMetrics',
    'VelocityResult',
    'EngagementCounts',
    'calculate_velocity',
    'calculate_weighted_velocity',

    # Heat
    'ThresholdStats',
    'HeatResult',
    'HeatPassResult',
    'compute_heat_score',
    'threshold_from_scores',
    'get_heat_threshold',
    'is_breaking',
    'compute_all_heat_scores'
]
