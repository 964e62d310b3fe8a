"""In-process embedding backend using sentence-transformers."""

import asyncio

from loguru import logger

from ...config.defaults import (
    DEFAULT_BATCH_SIZES,
    DEFAULT_EMBEDDING_MODELS,
    get_model_dimensions,
)
from ...config.settings import EmbeddingConfig
from ..exceptions import ConfigError, EmbeddingError
from .base import EmbeddingBackend


class SentenceTransformerBackend(EmbeddingBackend):
    """Embeddings computed locally, no network or rate limiting involved.

    The model is loaded in ``initialize()`` so importing this module never
    pulls in torch. Encoding runs in a worker thread to keep the event loop
    responsive.
    """

    name = "sentence-transformers"

    def __init__(self, config: EmbeddingConfig) -> None:
        self.config = config
        self.model_name = config.model or DEFAULT_EMBEDDING_MODELS[self.name]
        self._dimensions = config.dimensions or get_model_dimensions(
            self.model_name, default=384
        )
        self._model = None

    @property
    def default_batch_size(self) -> int:
        return DEFAULT_BATCH_SIZES[self.name]

    async def initialize(self) -> None:
        if self._model is not None:
            return
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise ConfigError(
                "sentence-transformers is not installed. "
                "Install it with: pip install 'lance-context[local]'"
            ) from e

        logger.info(f"Loading embedding model {self.model_name}")
        self._model = await asyncio.to_thread(SentenceTransformer, self.model_name)
        detected = self._model.get_sentence_embedding_dimension()
        if detected:
            self._dimensions = int(detected)
        logger.info(f"✓ Model loaded ({self._dimensions} dimensions)")

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        if self._model is None:
            raise EmbeddingError("Backend not initialized. Call initialize() first.")
        try:
            vectors = await asyncio.to_thread(
                self._model.encode, texts, convert_to_numpy=True, show_progress_bar=False
            )
        except Exception as e:
            raise EmbeddingError(f"Local embedding failed: {e}") from e
        return vectors.tolist()

    def get_dimensions(self) -> int:
        return self._dimensions

    def get_model(self) -> str:
        return self.model_name

    async def close(self) -> None:
        self._model = None
