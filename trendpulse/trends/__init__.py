"""Trend detection package.

This package contains modules for:
- Embedding providers and the embedding pass (embeddings.py)
- Similarity clustering (cluster.py)
- Cross-source validation and trend scoring (spike.py)
- Pass orchestration (pipeline.py)
"""

from .cluster import (
    ClusterMember,
    ContentCluster,
    cosine_similarity,
    greedy_cluster,
    cluster_recent_content,
    find_similar_content
)

from .spike import (
    DetectedTrend,
    normalize_source,
    compute_trend_score,
    detect_trends_from_clusters,
    save_trends
)

from .embeddings import (
    EmbeddingProvider,
    EmbeddingProviderError,
    DummyEmbeddingProvider,
    OpenAIEmbeddingProvider,
    create_embedding_provider,
    embed_unprocessed_content
)

__all__ = [
    # Clustering
    'ClusterMember',
    'ContentCluster',
    'cosine_similarity',
    'greedy_cluster',
    'cluster_recent_content',
    'find_similar_content',

    # Validation
    'DetectedTrend',
    'normalize_source',
    'compute_trend_score',
    'detect_trends_from_clusters',
    'save_trends',

    # Embeddings
    'EmbeddingProvider',
    'EmbeddingProviderError',
    'DummyEmbeddingProvider',
    'OpenAIEmbeddingProvider',
    'create_embedding_provider',
    'embed_unprocessed_content'
]
