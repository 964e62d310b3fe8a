"""Ollama embedding backend (local server, one request per text)."""

import httpx
from loguru import logger

from ...config.defaults import (
    DEFAULT_BATCH_SIZES,
    DEFAULT_EMBEDDING_MODELS,
    MODEL_DIMENSIONS,
    get_model_dimensions,
)
from ...config.settings import EmbeddingConfig
from ...utils.concurrency import map_with_concurrency
from ..exceptions import ConnectivityError, EmbeddingError, LanceContextError
from ..rate_limiter import RateLimiter
from ..retry import RetryPolicy
from .base import HttpEmbeddingBackend


class OllamaBackend(HttpEmbeddingBackend):
    """Embeddings from a local Ollama server.

    Ollama has no batch endpoint, so ``embed_batch`` runs the texts as
    sequential waves of ``batch_size`` concurrent single-text requests.
    """

    name = "ollama"

    def __init__(
        self,
        config: EmbeddingConfig,
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(config, client, rate_limiter, retry_policy)
        self.model = config.model or DEFAULT_EMBEDDING_MODELS["ollama"]
        self.base_url = config.ollama_url.rstrip("/")
        self.batch_size = config.batch_size or DEFAULT_BATCH_SIZES["ollama"]
        self._dimensions = config.dimensions or get_model_dimensions(self.model)

    @property
    def default_batch_size(self) -> int:
        return DEFAULT_BATCH_SIZES["ollama"]

    async def initialize(self) -> None:
        """Verify the server answers on ``/api/tags``.

        Models without a known dimension are probed with one embedding so
        that ``get_dimensions()`` is accurate before any indexing starts.
        """
        try:
            await self._request("GET", f"{self.base_url}/api/tags")
        except LanceContextError as e:
            raise ConnectivityError(
                f"Failed to connect to Ollama at {self.base_url}: {e}",
                context={"url": self.base_url},
            ) from e

        if self.config.dimensions is None and self.model not in MODEL_DIMENSIONS:
            await self.embed("dimension probe")
        logger.debug(
            f"Ollama backend ready at {self.base_url} "
            f"(model={self.model}, dims={self._dimensions})"
        )

    async def embed(self, text: str) -> list[float]:
        data = await self._request(
            "POST",
            f"{self.base_url}/api/embeddings",
            {"model": self.model, "prompt": text},
        )
        try:
            embedding = data["embedding"]
        except (KeyError, TypeError) as e:
            raise EmbeddingError(f"Unexpected Ollama response shape: {e}") from e

        if embedding and len(embedding) != self._dimensions:
            logger.info(
                f"Ollama model {self.model} returns {len(embedding)} dimensions "
                f"(expected {self._dimensions}), adopting reported size"
            )
            self._dimensions = len(embedding)
        return embedding

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        # One request per text, at most batch_size in flight
        return await map_with_concurrency(
            texts, lambda text, _: self.embed(text), self.batch_size
        )

    def get_dimensions(self) -> int:
        return self._dimensions

    def get_model(self) -> str:
        return self.model
