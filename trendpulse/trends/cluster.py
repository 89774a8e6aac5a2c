"""Content clustering by embedding similarity.

Groups recent content items into topic clusters with greedy single-link
assignment over pairwise cosine similarity:
- Items are visited in the given order (newest first); each unassigned item seeds a cluster
- Unassigned items at or above the similarity threshold to the seed join it
- An item belongs to at most one cluster; there is no refinement pass
- Singletons are dropped and clusters are ranked by size
"""

import json
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from sqlalchemy.ext.asyncio import AsyncSession

from trendpulse.core.config import ClusteringConfig
from trendpulse.core.logging import get_logger
from trendpulse.core.repositories import get_items_with_embeddings

logger = get_logger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.75
MIN_CLUSTER_SIZE = 2


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 for vectors of different length or with a zero norm.
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denominator = np.linalg.norm(va) * np.linalg.norm(vb)
    if denominator == 0:
        return 0.0
    return float(np.dot(va, vb) / denominator)


def parse_embedding(raw: Any) -> Optional[List[float]]:
    """Embeddings may be stored as a JSON array or as a JSON-encoded string."""
    if raw is None:
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return None
    if isinstance(raw, (list, tuple)) and raw:
        try:
            return [float(x) for x in raw]
        except (TypeError, ValueError):
            return None
    return None


@dataclass
class ClusterMember:
    """A content item taking part in clustering."""
    id: str
    title: str
    source: str
    url: Optional[str] = None
    embedding: Optional[List[float]] = None
    published_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Any) -> "ClusterMember":
        return cls(
            id=row.id,
            title=row.title,
            source=row.source,
            url=row.url,
            embedding=parse_embedding(row.embedding),
            published_at=row.published_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'title': self.title, 'url': self.url, 'source': self.source}


@dataclass
class ContentCluster:
    """A group of topically similar items, labelled by its seed's title."""
    topic: str
    items: List[ClusterMember] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.items)

    def add(self, item: ClusterMember) -> None:
        self.items.append(item)
        if item.source not in self.sources:
            self.sources.append(item.source)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'topic': self.topic,
            'size': self.size,
            'sources': list(self.sources),
            'items': [item.to_dict() for item in self.items],
        }


def greedy_cluster(
    items: Sequence[ClusterMember],
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    min_cluster_size: int = MIN_CLUSTER_SIZE
) -> List[ContentCluster]:
    """
    Greedy single-link clustering.

    Order sensitive: the first unassigned item seeds each cluster and
    candidates are compared against that seed only.

    Args:
        items: Candidates in priority order; items without an embedding are ignored
        similarity_threshold: Minimum cosine similarity to the seed to join
        min_cluster_size: Clusters smaller than this are discarded

    Returns:
        Clusters sorted by member count, largest first
    """
    candidates = [item for item in items if item.embedding]
    assigned = set()
    clusters: List[ContentCluster] = []

    for i, seed in enumerate(candidates):
        if seed.id in assigned:
            continue

        cluster = ContentCluster(topic=seed.title)
        cluster.add(seed)
        assigned.add(seed.id)

        for other in candidates[i + 1:]:
            if other.id in assigned:
                continue
            if cosine_similarity(seed.embedding, other.embedding) >= similarity_threshold:
                cluster.add(other)
                assigned.add(other.id)

        if cluster.size >= min_cluster_size:
            clusters.append(cluster)

    # sort is stable, so equal-sized clusters keep seed order
    clusters.sort(key=lambda c: c.size, reverse=True)
    return clusters


async def cluster_recent_content(
    session: AsyncSession,
    config: ClusteringConfig,
    now: Optional[datetime] = None
) -> List[ContentCluster]:
    """
    Cluster recently ingested items that already have an embedding.

    Args:
        session: Database session
        config: Clustering configuration for this pass
        now: Reference instant (defaults to current UTC time)

    Returns:
        Candidate clusters for cross-source validation
    """
    start_time = time.time()

    rows = await get_items_with_embeddings(
        session, hours=config.window_hours, limit=config.max_items, now=now
    )
    if not rows:
        logger.info("No embedded content found for clustering")
        return []

    members = [ClusterMember.from_row(row) for row in rows]
    invalid = sum(1 for m in members if m.embedding is None)
    if invalid:
        logger.warning(f"Skipping {invalid} items with unreadable embeddings")

    clusters = greedy_cluster(members, similarity_threshold=config.similarity_threshold)

    logger.info(
        f"Found {len(clusters)} clusters from {len(rows)} items "
        f"in {time.time() - start_time:.2f}s"
    )
    return clusters


async def find_similar_content(
    session: AsyncSession,
    embedding: Sequence[float],
    limit: int = 10,
    min_similarity: float = 0.7,
    window_hours: float = 168
) -> List[Dict[str, Any]]:
    """
    Rank stored items by similarity to a query embedding.

    Returns:
        Up to `limit` dictionaries with id, title, source and similarity,
        most similar first
    """
    rows = await get_items_with_embeddings(session, hours=window_hours, limit=None)

    matches = []
    for row in rows:
        vector = parse_embedding(row.embedding)
        if vector is None:
            continue
        similarity = cosine_similarity(embedding, vector)
        if similarity >= min_similarity:
            matches.append({
                'id': row.id,
                'title': row.title,
                'source': row.source,
                'similarity': round(similarity, 4),
            })

    matches.sort(key=lambda m: m['similarity'], reverse=True)
    return matches[:limit]
