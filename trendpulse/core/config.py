"""Runtime pipeline configuration.

Tuning values live in the ``system_config`` key/value table so operators can
change them without a deploy. They are read once at the start of every pass
and handed to the engines as an immutable ``PipelineConfig``; nothing here is
cached between passes.

Missing keys use the defaults below. Malformed values (bad JSON, wrong shape,
wrong types) are logged and replaced by the defaults for that key only. A
field below its minimum in FIELD_MINIMUMS keeps its default.
"""

import json
import math
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from trendpulse.core.logging import get_logger

logger = get_logger(__name__)

# Config store keys
HEAT_WEIGHTS_KEY = "heat_score_weights"
THRESHOLD_MODE_KEY = "heat_threshold_mode"
THRESHOLD_MANUAL_KEY = "heat_threshold_manual"
HEAT_CONFIG_KEY = "heat_config"
CLUSTERING_CONFIG_KEY = "clustering_config"
TREND_CONFIG_KEY = "trend_config"
EMBEDDING_CONFIG_KEY = "embedding_config"

CONFIG_KEYS = (
    HEAT_WEIGHTS_KEY,
    THRESHOLD_MODE_KEY,
    THRESHOLD_MANUAL_KEY,
    HEAT_CONFIG_KEY,
    CLUSTERING_CONFIG_KEY,
    TREND_CONFIG_KEY,
    EMBEDDING_CONFIG_KEY,
)

DEFAULT_MANUAL_THRESHOLD = 100.0
THRESHOLD_MODES = ("manual", "dynamic")

# Lower bounds per field name: (bound, inclusive)
FIELD_MINIMUMS = {
    "scoring_window_hours": (0, False),
    "breaking_window_hours": (0, False),
    "history_days": (0, False),
    "min_history": (1, True),
    "similarity_threshold": (0, False),
    "window_hours": (0, False),
    "max_items": (1, True),
    "min_sources": (1, True),
    "batch_size": (1, True),
    "batch_delay_seconds": (0, True),
    "max_chars": (1, True),
}


@dataclass(frozen=True)
class HeatScoreWeights:
    """Gains applied to each heat score term. They need not sum to 1."""
    views: float = 0.4
    shares: float = 0.3
    comments: float = 0.2
    growth: float = 0.1


@dataclass(frozen=True)
class ThresholdConfig:
    """How the breaking threshold is determined."""
    mode: str = "dynamic"
    manual_value: float = DEFAULT_MANUAL_THRESHOLD


@dataclass(frozen=True)
class HeatConfig:
    """Recency windows and history requirements for heat scoring."""
    scoring_window_hours: float = 24.0
    breaking_window_hours: float = 6.0
    history_days: float = 7.0
    min_history: int = 5


@dataclass(frozen=True)
class ClusteringConfig:
    """Greedy clustering parameters."""
    similarity_threshold: float = 0.75
    window_hours: float = 24.0
    max_items: int = 200


@dataclass(frozen=True)
class TrendConfig:
    """Cross-source validation parameters."""
    min_sources: int = 2
    # Carried for consumers; clusters are already bounded by their own window
    window_hours: float = 12.0
    source_umbrellas: Tuple[str, ...] = ("reddit",)


@dataclass(frozen=True)
class EmbeddingConfig:
    """Batching and rate limiting for the embedding pass."""
    batch_size: int = 10
    batch_delay_seconds: float = 0.5
    window_hours: float = 48.0
    max_items: int = 50
    max_chars: int = 8000


@dataclass(frozen=True)
class PipelineConfig:
    """Everything a pass needs, loaded once per invocation."""
    weights: HeatScoreWeights = field(default_factory=HeatScoreWeights)
    threshold: ThresholdConfig = field(default_factory=ThresholdConfig)
    heat: HeatConfig = field(default_factory=HeatConfig)
    clustering: ClusteringConfig = field(default_factory=ClusteringConfig)
    trends: TrendConfig = field(default_factory=TrendConfig)
    embeddings: EmbeddingConfig = field(default_factory=EmbeddingConfig)


def _decode(value: Any) -> Any:
    """Values may be stored as native JSON or as a JSON-encoded string."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _in_bounds(name: str, value: float) -> bool:
    if name not in FIELD_MINIMUMS:
        return True
    bound, inclusive = FIELD_MINIMUMS[name]
    return value >= bound if inclusive else value > bound


def _merge_section(key: str, raw: Any, default):
    """Merge a JSON object over a dataclass default, field by field."""
    if raw is None:
        return default

    value = _decode(raw)
    if not isinstance(value, dict):
        logger.warning(f"Config '{key}' is not an object, using defaults: {raw!r}")
        return default

    updates = {}
    for f in fields(default):
        if f.name not in value:
            continue
        candidate = value[f.name]
        current = getattr(default, f.name)

        if isinstance(current, tuple):
            if isinstance(candidate, list) and all(isinstance(c, str) for c in candidate):
                updates[f.name] = tuple(candidate)
                continue
        elif isinstance(current, int) and not isinstance(current, bool):
            if _is_number(candidate) and float(candidate).is_integer() and _in_bounds(f.name, candidate):
                updates[f.name] = int(candidate)
                continue
        elif isinstance(current, float):
            if _is_number(candidate) and _in_bounds(f.name, candidate):
                updates[f.name] = float(candidate)
                continue

        logger.warning(f"Config '{key}.{f.name}' has invalid value {candidate!r}, keeping {current!r}")

    return replace(default, **updates)


def _parse_threshold(raw_mode: Any, raw_manual: Any) -> ThresholdConfig:
    mode = ThresholdConfig.mode
    if raw_mode is not None:
        decoded = _decode(raw_mode)
        if isinstance(decoded, str) and decoded.lower() in THRESHOLD_MODES:
            mode = decoded.lower()
        else:
            logger.warning(f"Unknown threshold mode {raw_mode!r}, using '{mode}'")

    manual_value = DEFAULT_MANUAL_THRESHOLD
    if raw_manual is not None:
        decoded = _decode(raw_manual)
        if _is_number(decoded) and decoded > 0:
            manual_value = float(decoded)
        else:
            logger.warning(
                f"Invalid manual threshold {raw_manual!r}, using {DEFAULT_MANUAL_THRESHOLD}"
            )

    return ThresholdConfig(mode=mode, manual_value=manual_value)


def build_pipeline_config(values: Optional[Dict[str, Any]] = None) -> PipelineConfig:
    """
    Build a PipelineConfig from raw config-store values.

    Args:
        values: Mapping of config key to stored value (missing keys allowed)

    Returns:
        PipelineConfig with defaults filled in
    """
    values = values or {}
    defaults = PipelineConfig()

    return PipelineConfig(
        weights=_merge_section(HEAT_WEIGHTS_KEY, values.get(HEAT_WEIGHTS_KEY), defaults.weights),
        threshold=_parse_threshold(values.get(THRESHOLD_MODE_KEY), values.get(THRESHOLD_MANUAL_KEY)),
        heat=_merge_section(HEAT_CONFIG_KEY, values.get(HEAT_CONFIG_KEY), defaults.heat),
        clustering=_merge_section(CLUSTERING_CONFIG_KEY, values.get(CLUSTERING_CONFIG_KEY), defaults.clustering),
        trends=_merge_section(TREND_CONFIG_KEY, values.get(TREND_CONFIG_KEY), defaults.trends),
        embeddings=_merge_section(EMBEDDING_CONFIG_KEY, values.get(EMBEDDING_CONFIG_KEY), defaults.embeddings),
    )


async def load_pipeline_config(session: AsyncSession) -> PipelineConfig:
    """
    Read the config store and build this pass's PipelineConfig.

    A failing config read degrades to defaults instead of aborting the pass.
    """
    from trendpulse.core.repositories import get_config_values

    try:
        values = await get_config_values(session, CONFIG_KEYS)
    except Exception as e:
        logger.error(f"Failed to read config store, using defaults: {e}")
        await session.rollback()
        values = {}

    config = build_pipeline_config(values)
    logger.debug(f"Loaded pipeline config: {config}")
    return config
