"""Embedding pipeline: backend selection, caching and ordered batch dispatch."""

import hashlib
from pathlib import Path
from typing import Any

import aiofiles
import httpx
import orjson
from loguru import logger

from ..config.settings import EmbeddingBackendType, EmbeddingConfig
from ..utils.concurrency import chunk_list, map_with_concurrency
from .backends import (
    EmbeddingBackend,
    JinaBackend,
    OllamaBackend,
    SentenceTransformerBackend,
)
from .exceptions import EmbeddingError, LanceContextError


class EmbeddingCache:
    """LRU cache for embeddings with optional disk persistence.

    Keys include the model name so switching models never serves vectors
    from a different embedding space.
    """

    def __init__(self, cache_dir: Path | None = None, max_size: int = 1000) -> None:
        """Initialize embedding cache.

        Args:
            cache_dir: Directory to store cached embeddings (memory only when None)
            max_size: Maximum number of embeddings to keep in memory
        """
        self.cache_dir = cache_dir
        if self.cache_dir is not None:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.max_size = max_size
        self._memory_cache: dict[str, list[float]] = {}
        self._access_order: list[str] = []  # For LRU eviction
        self._cache_hits = 0
        self._cache_misses = 0

    def _hash_content(self, model: str, content: str) -> str:
        """Generate cache key from model and content."""
        return hashlib.sha256(f"{model}\0{content}".encode()).hexdigest()[:16]

    async def get_embedding(self, model: str, content: str) -> list[float] | None:
        """Get cached embedding for content."""
        cache_key = self._hash_content(model, content)

        if cache_key in self._memory_cache:
            self._cache_hits += 1
            self._access_order.remove(cache_key)
            self._access_order.append(cache_key)
            return self._memory_cache[cache_key]

        if self.cache_dir is not None:
            cache_file = self.cache_dir / f"{cache_key}.json"
            if cache_file.exists():
                try:
                    async with aiofiles.open(cache_file, "rb") as f:
                        embedding = orjson.loads(await f.read())
                    self._add_to_memory_cache(cache_key, embedding)
                    self._cache_hits += 1
                    return embedding
                except (OSError, orjson.JSONDecodeError) as e:
                    logger.warning(f"Failed to load cached embedding: {e}")

        self._cache_misses += 1
        return None

    async def store_embedding(
        self, model: str, content: str, embedding: list[float]
    ) -> None:
        """Store embedding in cache."""
        cache_key = self._hash_content(model, content)
        self._add_to_memory_cache(cache_key, embedding)

        if self.cache_dir is not None:
            cache_file = self.cache_dir / f"{cache_key}.json"
            try:
                async with aiofiles.open(cache_file, "wb") as f:
                    await f.write(orjson.dumps(embedding))
            except OSError as e:
                logger.warning(f"Failed to cache embedding: {e}")

    def _add_to_memory_cache(self, cache_key: str, embedding: list[float]) -> None:
        if cache_key in self._memory_cache:
            self._access_order.remove(cache_key)
            self._access_order.append(cache_key)
            self._memory_cache[cache_key] = embedding
            return

        if len(self._memory_cache) >= self.max_size:
            lru_key = self._access_order.pop(0)
            del self._memory_cache[lru_key]

        self._memory_cache[cache_key] = embedding
        self._access_order.append(cache_key)

    def clear_memory_cache(self) -> None:
        """Clear the in-memory cache."""
        self._memory_cache.clear()
        self._access_order.clear()

    def clear(self) -> int:
        """Drop every cached embedding, in memory and on disk.

        Returns:
            Number of cache files removed
        """
        self.clear_memory_cache()
        if self.cache_dir is None or not self.cache_dir.exists():
            return 0

        removed = 0
        for cache_file in self.cache_dir.glob("*.json"):
            try:
                cache_file.unlink()
                removed += 1
            except FileNotFoundError:
                continue
        logger.debug(f"Removed {removed} cached embeddings from {self.cache_dir}")
        return removed

    def get_cache_stats(self) -> dict[str, Any]:
        """Get cache performance statistics."""
        total_requests = self._cache_hits + self._cache_misses
        hit_rate = self._cache_hits / total_requests if total_requests > 0 else 0.0
        return {
            "memory_cached": len(self._memory_cache),
            "max_cache_size": self.max_size,
            "cache_hits": self._cache_hits,
            "cache_misses": self._cache_misses,
            "hit_rate": round(hit_rate, 3),
        }


class BatchEmbeddingDispatcher:
    """Turns any number of texts into vectors, preserving input order.

    Texts are split into groups of ``batch_size``; up to ``concurrency``
    groups are sent at once as a wave, and the whole wave completes before
    the next one starts. Each group writes its vectors into pre-allocated
    slots by global index, so completion order never affects the result.
    """

    def __init__(
        self,
        backend: EmbeddingBackend,
        batch_size: int | None = None,
        concurrency: int = 4,
        cache: EmbeddingCache | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            backend: Initialized embedding backend
            batch_size: Texts per backend call (backend default when None)
            concurrency: Groups dispatched concurrently per wave
            cache: Optional embedding cache consulted before the backend
        """
        self.backend = backend
        self.batch_size = batch_size or backend.default_batch_size
        self.concurrency = max(1, concurrency)
        self.cache = cache

    @property
    def model(self) -> str:
        return self.backend.get_model()

    @property
    def dimensions(self) -> int:
        return self.backend.get_dimensions()

    async def embed(self, text: str) -> list[float]:
        """Embed a single text through the cache and backend."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for texts.

        Args:
            texts: Texts to embed

        Returns:
            One vector per text, ``result[i]`` belonging to ``texts[i]``

        Raises:
            EmbeddingError: If the backend fails or returns malformed vectors
            ConnectivityError: If the backend stays unreachable after retries
        """
        if not texts:
            return []

        slots: list[list[float] | None] = [None] * len(texts)
        pending: list[int] = []

        if self.cache is not None:
            model = self.model
            for i, text in enumerate(texts):
                cached = await self.cache.get_embedding(model, text)
                if cached is not None:
                    slots[i] = cached
                else:
                    pending.append(i)
        else:
            pending = list(range(len(texts)))

        if pending:
            groups = chunk_list(pending, self.batch_size)
            logger.debug(
                f"Embedding {len(pending)} texts in {len(groups)} group(s) "
                f"(batch_size={self.batch_size}, concurrency={self.concurrency})"
            )
            for wave in chunk_list(groups, self.concurrency):
                # A failed group cancels its siblings before the error propagates
                await map_with_concurrency(
                    wave,
                    lambda group, _: self._dispatch_group(group, texts, slots),
                    len(wave),
                )

        return slots  # type: ignore[return-value]

    async def _dispatch_group(
        self,
        indices: list[int],
        texts: list[str],
        slots: list[list[float] | None],
    ) -> None:
        group_texts = [texts[i] for i in indices]
        try:
            vectors = await self.backend.embed_batch(group_texts)
        except LanceContextError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Failed to generate embeddings: {e}") from e

        if len(vectors) != len(group_texts):
            raise EmbeddingError(
                f"Backend returned {len(vectors)} vectors for {len(group_texts)} texts",
                context={"backend": self.backend.name},
            )

        expected = self.dimensions
        for index, vector in zip(indices, vectors, strict=True):
            if len(vector) != expected:
                raise EmbeddingError(
                    f"Embedding has {len(vector)} dimensions, expected {expected}",
                    context={"backend": self.backend.name, "model": self.model},
                )
            slots[index] = vector
            if self.cache is not None:
                await self.cache.store_embedding(self.model, texts[index], vector)


def select_backend_type(config: EmbeddingConfig) -> EmbeddingBackendType:
    """Resolve ``auto`` to a concrete backend.

    An explicit backend always wins. Otherwise Jina is used when an API key
    is available, else the local Ollama server.
    """
    if config.backend != EmbeddingBackendType.AUTO:
        return config.backend
    if config.api_key:
        return EmbeddingBackendType.JINA
    return EmbeddingBackendType.OLLAMA


def create_embedding_backend(
    config: EmbeddingConfig, client: httpx.AsyncClient | None = None
) -> EmbeddingBackend:
    """Construct (but do not initialize) the configured backend.

    Args:
        config: Embedding configuration
        client: Shared HTTP client for remote backends (created lazily when None)

    Returns:
        Backend instance
    """
    backend_type = select_backend_type(config)
    logger.debug(f"Selected embedding backend: {backend_type.value}")

    if backend_type == EmbeddingBackendType.JINA:
        return JinaBackend(config, client=client)
    if backend_type == EmbeddingBackendType.OLLAMA:
        return OllamaBackend(config, client=client)
    return SentenceTransformerBackend(config)
