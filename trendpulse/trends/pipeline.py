"""Pipeline orchestrator for the scheduled passes.

Each pass opens its own session, loads the pipeline configuration once and
runs to completion:
1. Heat scoring: velocity, heat score and breaking flag per recent item
2. Embeddings: attach vectors to newly ingested items
3. Trend detection: cluster embedded items, validate across sources, persist
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from trendpulse.core.config import load_pipeline_config
from trendpulse.core.db import AsyncSessionLocal
from trendpulse.core.logging import get_logger
from trendpulse.scoring.heat import HeatPassResult, compute_all_heat_scores
from trendpulse.trends.cluster import cluster_recent_content
from trendpulse.trends.embeddings import (
    EmbeddingPassResult,
    EmbeddingProvider,
    create_embedding_provider,
    embed_unprocessed_content
)
from trendpulse.trends.spike import DetectedTrend, detect_trends_from_clusters, save_trends

logger = get_logger(__name__)


@dataclass
class TrendPassResult:
    """Summary of one trend detection pass."""
    clusters: int = 0
    trends: List[DetectedTrend] = field(default_factory=list)
    saved: int = 0
    errors: List[str] = field(default_factory=list)
    runtime_seconds: float = 0.0
    fatal: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'clusters': self.clusters,
            'trends': [t.to_dict() for t in self.trends],
            'saved': self.saved,
            'errors': self.errors,
            'runtime_seconds': self.runtime_seconds,
            'fatal': self.fatal,
        }


async def run_heat_scoring(now: Optional[datetime] = None) -> HeatPassResult:
    """Run one heat scoring pass over recently published content."""
    logger.info("Starting heat scoring pass")

    async with AsyncSessionLocal() as session:
        config = await load_pipeline_config(session)
        return await compute_all_heat_scores(session, config, now=now)


async def run_embedding_pass(provider: Optional[EmbeddingProvider] = None) -> EmbeddingPassResult:
    """
    Run one embedding pass.

    Args:
        provider: Embedding provider; built from settings when omitted and
            closed when the pass ends
    """
    logger.info("Starting embedding pass")
    owns_provider = provider is None

    try:
        if owns_provider:
            provider = create_embedding_provider()
    except Exception as e:
        logger.error(f"Embedding provider unavailable: {e}")
        return EmbeddingPassResult(errors=[f"Embedding provider unavailable: {e}"], fatal=True)

    try:
        async with AsyncSessionLocal() as session:
            config = await load_pipeline_config(session)
            return await embed_unprocessed_content(session, provider, config.embeddings)
    finally:
        if owns_provider:
            await provider.aclose()


async def run_trend_detection(now: Optional[datetime] = None) -> TrendPassResult:
    """
    Cluster recent embedded content, validate clusters across sources and
    persist the resulting trends.

    A failed clustering fetch is fatal for the pass; trends that fail to
    save are reported in `errors`.
    """
    start_time = time.time()
    result = TrendPassResult()

    logger.info("Starting trend detection pass")

    async with AsyncSessionLocal() as session:
        config = await load_pipeline_config(session)

        try:
            clusters = await cluster_recent_content(session, config.clustering, now=now)
        except Exception as e:
            logger.error(f"Clustering failed: {e}", exc_info=True)
            result.errors.append(f"Clustering failed: {e}")
            result.fatal = True
            result.runtime_seconds = time.time() - start_time
            return result

        result.clusters = len(clusters)
        result.trends = detect_trends_from_clusters(clusters, config.trends)

        if result.trends:
            saved = await save_trends(session, result.trends)
            result.saved = saved.saved
            result.errors.extend(saved.errors)

    result.runtime_seconds = time.time() - start_time
    logger.info(
        f"Trend detection completed in {result.runtime_seconds:.2f}s: "
        f"{result.clusters} clusters, {len(result.trends)} trends, {result.saved} saved"
    )
    return result


async def run_all(now: Optional[datetime] = None) -> Dict[str, Any]:
    """Run heat scoring, embeddings and trend detection in sequence."""
    heat = await run_heat_scoring(now=now)
    embeddings = await run_embedding_pass()
    trends = await run_trend_detection(now=now)

    return {
        'heat': heat.to_dict(),
        'embeddings': embeddings.to_dict(),
        'trends': trends.to_dict(),
        'fatal': heat.fatal or embeddings.fatal or trends.fatal,
    }
