"""Jina AI embedding backend (remote API with native batching)."""

import httpx
from loguru import logger

from ...config.defaults import (
    DEFAULT_BATCH_SIZES,
    DEFAULT_EMBEDDING_MODELS,
    JINA_API_URL,
    get_model_dimensions,
)
from ...config.settings import EmbeddingConfig
from ..exceptions import ConfigError, EmbeddingError
from ..rate_limiter import RateLimiter
from ..retry import RetryPolicy
from .base import HttpEmbeddingBackend


class JinaBackend(HttpEmbeddingBackend):
    """Embeddings from ``https://api.jina.ai/v1/embeddings``.

    One request embeds a whole group of texts. Response items carry an
    ``index`` field and are re-sorted by it before being returned.
    """

    name = "jina"

    def __init__(
        self,
        config: EmbeddingConfig,
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
        retry_policy: RetryPolicy | None = None,
        api_url: str = JINA_API_URL,
    ) -> None:
        super().__init__(config, client, rate_limiter, retry_policy)
        self.model = config.model or DEFAULT_EMBEDDING_MODELS["jina"]
        self.api_url = api_url
        self._dimensions = config.dimensions or get_model_dimensions(self.model)

    @property
    def default_batch_size(self) -> int:
        return DEFAULT_BATCH_SIZES["jina"]

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _status_message(self, status_code: int) -> str:
        if status_code in (401, 403):
            return "Invalid Jina API key. Please check JINA_API_KEY environment variable."
        return super()._status_message(status_code)

    async def initialize(self) -> None:
        if not self.config.api_key:
            raise ConfigError(
                "Jina backend requires an API key (set JINA_API_KEY)",
                context={"backend": self.name},
            )
        logger.debug(f"Jina backend ready: model={self.model}, dims={self._dimensions}")

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        data = await self._request(
            "POST", self.api_url, {"model": self.model, "input": texts}
        )

        try:
            items = sorted(data["data"], key=lambda item: item["index"])
            vectors = [item["embedding"] for item in items]
        except (KeyError, TypeError) as e:
            raise EmbeddingError(f"Unexpected Jina response shape: {e}") from e

        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Jina returned {len(vectors)} embeddings for {len(texts)} inputs"
            )
        return vectors

    def get_dimensions(self) -> int:
        return self._dimensions

    def get_model(self) -> str:
        return self.model
