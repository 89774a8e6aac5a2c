"""
Embedding providers and the embedding pass.

Items are embedded once, after ingestion, so they can be clustered. Providers
share a small async interface; the OpenAI-compatible provider talks to a
`/embeddings` endpoint over httpx, and the dummy provider hashes tokens into a
deterministic vector for development and testing without API calls.
"""

import asyncio
import hashlib
import math
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from trendpulse.core.config import EmbeddingConfig
from trendpulse.core.logging import get_logger
from trendpulse.core.repositories import get_items_without_embeddings, set_item_embedding
from trendpulse.core.settings import Settings, get_settings

logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)
TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


class EmbeddingProviderError(Exception):
    """Provider misconfiguration or an unusable response."""


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    @abstractmethod
    async def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Embed a batch of texts.

        Returns:
            One vector per input text, in input order
        """
        pass

    async def embed_text(self, text: str) -> List[float]:
        """Embed a single text."""
        vectors = await self.embed_texts([text])
        return vectors[0]

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identification name."""
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of the vectors this provider returns."""
        pass

    async def aclose(self) -> None:
        """Release network resources, if any."""
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()


class DummyEmbeddingProvider(EmbeddingProvider):
    """
    Deterministic hashed bag-of-words embeddings.

    Texts sharing vocabulary get similar vectors, which is enough to exercise
    clustering locally. Not a semantic model.
    """

    def __init__(self, dimension: int = 256):
        self._dimension = dimension
        self.call_count = 0

    @property
    def provider_name(self) -> str:
        return "DummyEmbedding"

    @property
    def dimension(self) -> int:
        return self._dimension

    def _vectorize(self, text: str) -> List[float]:
        vector = [0.0] * self._dimension
        for token in TOKEN_PATTERN.findall(text.lower()):
            digest = hashlib.sha1(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self._dimension
            sign = 1.0 if digest[4] % 2 == 0 else -1.0
            vector[index] += sign

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]

    async def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        self.call_count += 1
        return [self._vectorize(text) for text in texts]


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.TimeoutException, httpx.NetworkError))


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeddings from an OpenAI-compatible `/embeddings` endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "text-embedding-3-small",
        dimension: int = 1536,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        if not api_key:
            raise EmbeddingProviderError("Embedding API key not configured")

        self.model = model
        self._dimension = dimension
        self.client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    @property
    def provider_name(self) -> str:
        return "OpenAIEmbedding"

    @property
    def dimension(self) -> int:
        return self._dimension

    async def aclose(self) -> None:
        await self.client.aclose()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=8.0),
        retry=retry_if_exception(_is_retryable),
        reraise=True
    )
    async def _post_embeddings(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.client.post("/embeddings", json=payload)
        if response.status_code in RETRYABLE_STATUS_CODES:
            logger.warning(f"Embedding request got HTTP {response.status_code}, will retry")
        response.raise_for_status()
        return response.json()

    async def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []

        data = await self._post_embeddings({"model": self.model, "input": list(texts)})

        rows = data.get("data")
        if not isinstance(rows, list) or len(rows) != len(texts):
            raise EmbeddingProviderError(
                f"Expected {len(texts)} embeddings, got {len(rows) if isinstance(rows, list) else 'none'}"
            )

        rows = sorted(rows, key=lambda r: r.get("index", 0))
        vectors = [row.get("embedding") for row in rows]
        for vector in vectors:
            if not isinstance(vector, list) or len(vector) != self._dimension:
                raise EmbeddingProviderError(
                    f"Invalid embedding length {len(vector) if isinstance(vector, list) else 'n/a'}, "
                    f"expected {self._dimension}"
                )
        return vectors


def create_embedding_provider(settings: Optional[Settings] = None) -> EmbeddingProvider:
    """Build the provider selected by settings."""
    settings = settings or get_settings()
    provider_type = settings.embedding_provider.lower()

    if provider_type == "dummy":
        return DummyEmbeddingProvider()
    if provider_type == "openai":
        return OpenAIEmbeddingProvider(
            api_key=settings.embedding_api_key,
            base_url=settings.embedding_api_url,
            model=settings.embedding_model,
            dimension=settings.embedding_dimension,
            timeout=settings.embedding_timeout,
        )
    raise EmbeddingProviderError(f"Unknown embedding provider: {settings.embedding_provider}")


def build_embedding_text(title: str, raw_text: Optional[str], max_chars: int = 8000) -> str:
    """Text sent to the provider: title and body, truncated to the input limit."""
    return f"{title}. {raw_text or ''}"[:max_chars]


@dataclass
class EmbeddingPassResult:
    """Summary of one embedding pass."""
    processed: int = 0
    errors: List[str] = field(default_factory=list)
    runtime_seconds: float = 0.0
    fatal: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'processed': self.processed,
            'errors': self.errors,
            'runtime_seconds': self.runtime_seconds,
            'fatal': self.fatal,
        }


async def embed_unprocessed_content(
    session: AsyncSession,
    provider: EmbeddingProvider,
    config: EmbeddingConfig,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
) -> EmbeddingPassResult:
    """
    Embed recently ingested items that have no embedding yet.

    Batches go out one at a time with a fixed delay after each dispatch to
    stay under the provider's rate limit. A failed batch or a failed store
    is recorded and the pass continues.

    Args:
        session: Database session
        provider: Embedding provider
        config: Embedding configuration for this pass
        sleep: Awaitable used for the inter-batch delay

    Returns:
        EmbeddingPassResult with processed count and errors
    """
    start_time = time.time()
    result = EmbeddingPassResult()

    try:
        items = await get_items_without_embeddings(
            session, hours=config.window_hours, limit=config.max_items
        )
    except Exception as e:
        logger.error(f"Failed to fetch items for embedding: {e}")
        result.errors.append(f"Failed to fetch content: {e}")
        result.fatal = True
        result.runtime_seconds = time.time() - start_time
        return result

    if not items:
        logger.info("No items waiting for embeddings")
        result.runtime_seconds = time.time() - start_time
        return result

    logger.info(f"Embedding {len(items)} items with {provider.provider_name}")
    batch_size = max(1, config.batch_size)

    for offset in range(0, len(items), batch_size):
        batch = items[offset:offset + batch_size]
        texts = [build_embedding_text(item.title, item.raw_text, config.max_chars) for item in batch]

        try:
            vectors = await provider.embed_texts(texts)
            if len(vectors) != len(batch):
                raise EmbeddingProviderError(
                    f"Provider returned {len(vectors)} vectors for {len(batch)} texts"
                )

            for item, vector in zip(batch, vectors):
                try:
                    if await set_item_embedding(session, item.id, vector):
                        result.processed += 1
                    else:
                        logger.debug(f"Item {item.id} already had an embedding")
                except Exception as e:
                    logger.error(f"Error storing embedding for {item.id}: {e}")
                    result.errors.append(f"[{item.id}] {e}")

        except Exception as e:
            logger.error(f"Embedding batch at offset {offset} failed: {e}")
            result.errors.append(f"[batch {offset}] {e}")

        await sleep(config.batch_delay_seconds)

    result.runtime_seconds = time.time() - start_time
    logger.info(f"Embeddings done: {result.processed} processed, {len(result.errors)} errors")
    return result
