"""Pydantic configuration models for lance-context."""

from __future__ import annotations

import os
from enum import StrEnum
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field, model_validator

from ..core.exceptions import ConfigError
from . import defaults


class EmbeddingBackendType(StrEnum):
    AUTO = "auto"
    JINA = "jina"
    OLLAMA = "ollama"
    SENTENCE_TRANSFORMERS = "sentence-transformers"


class ChunkingConfig(BaseModel):
    """Line budget for chunks and overlap between split windows."""

    max_lines: int = Field(
        default=defaults.DEFAULT_MAX_LINES,
        ge=defaults.MIN_MAX_LINES,
        le=defaults.MAX_MAX_LINES,
    )
    overlap: int = Field(default=defaults.DEFAULT_OVERLAP, ge=0, le=defaults.MAX_OVERLAP)

    @model_validator(mode="after")
    def _overlap_below_max_lines(self) -> ChunkingConfig:
        if self.overlap >= self.max_lines:
            raise ValueError(
                f"overlap ({self.overlap}) must be smaller than max_lines ({self.max_lines})"
            )
        return self


class SearchConfig(BaseModel):
    """Hybrid ranking weights. Weights need not sum to 1."""

    semantic_weight: float = Field(
        default=defaults.DEFAULT_SEMANTIC_WEIGHT, ge=0.0, le=1.0
    )
    keyword_weight: float = Field(default=defaults.DEFAULT_KEYWORD_WEIGHT, ge=0.0, le=1.0)
    default_limit: int = Field(default=defaults.DEFAULT_SEARCH_LIMIT, ge=1, le=100)


class RateLimiterConfig(BaseModel):
    """Token bucket parameters, one limiter per backend instance."""

    requests_per_second: float = Field(default=5.0, gt=0)
    burst: int = Field(default=10, ge=1)


class RetryConfig(BaseModel):
    """Exponential backoff for transient backend failures."""

    max_retries: int = Field(default=3, ge=0, le=10)
    initial_delay: float = Field(default=1.0, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1.0)
    max_delay: float = Field(default=30.0, ge=0)


class EmbeddingConfig(BaseModel):
    """Embedding backend selection and dispatch settings."""

    backend: EmbeddingBackendType = EmbeddingBackendType.AUTO
    model: str | None = None
    api_key: str | None = Field(default=None, repr=False)
    ollama_url: str = defaults.DEFAULT_OLLAMA_URL
    batch_size: int | None = Field(default=None, ge=1, le=2048)
    concurrency: int = Field(default=4, ge=1, le=64)
    timeout: float = Field(default=60.0, gt=0)
    dimensions: int | None = Field(default=None, ge=1)
    rate_limit: RateLimiterConfig = Field(default_factory=RateLimiterConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)


class IndexingConfig(BaseModel):
    """Indexer concurrency and checkpoint cadence."""

    concurrency: int = Field(default=defaults.DEFAULT_FILE_CONCURRENCY, ge=1, le=64)
    checkpoint_interval: int = Field(
        default=defaults.DEFAULT_CHECKPOINT_INTERVAL, ge=1
    )
    max_file_size: int = Field(default=defaults.MAX_FILE_SIZE_BYTES, ge=1)


class ProjectConfig(BaseModel):
    """Complete configuration for one indexed project."""

    project_root: Path
    patterns: list[str] = Field(default_factory=lambda: list(defaults.DEFAULT_PATTERNS))
    exclude_patterns: list[str] = Field(
        default_factory=lambda: list(defaults.DEFAULT_EXCLUDE_PATTERNS)
    )
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    indexing: IndexingConfig = Field(default_factory=IndexingConfig)

    @property
    def index_dir(self) -> Path:
        """Directory holding the LanceDB table and index metadata."""
        return self.project_root / defaults.INDEX_DIR_NAME

    @classmethod
    def from_env(cls, project_root: Path, **overrides) -> ProjectConfig:
        """Build a config for ``project_root`` with environment overrides applied.

        Environment Variables:
            LANCE_CONTEXT_EMBEDDING_BACKEND: jina | ollama | sentence-transformers | auto
            LANCE_CONTEXT_EMBEDDING_MODEL: Model name for the selected backend
            JINA_API_KEY: API key for the Jina backend
            OLLAMA_URL: Base URL of the Ollama server
            LANCE_CONTEXT_CONCURRENCY: Concurrent embedding request groups
            LANCE_CONTEXT_BATCH_SIZE: Texts per embedding request group

        Args:
            project_root: Root directory of the project to index
            **overrides: Field values taking precedence over defaults

        Returns:
            Validated ProjectConfig
        """
        config = cls(project_root=Path(project_root).resolve(), **overrides)
        embedding = config.embedding

        backend = os.environ.get("LANCE_CONTEXT_EMBEDDING_BACKEND")
        if backend:
            try:
                embedding.backend = EmbeddingBackendType(backend.strip().lower())
            except ValueError as e:
                choices = ", ".join(t.value for t in EmbeddingBackendType)
                raise ConfigError(
                    f"Unknown embedding backend '{backend}' (expected one of: {choices})"
                ) from e
        model = os.environ.get("LANCE_CONTEXT_EMBEDDING_MODEL")
        if model:
            embedding.model = model
        if not embedding.api_key and os.environ.get("JINA_API_KEY"):
            embedding.api_key = os.environ["JINA_API_KEY"]
        if os.environ.get("OLLAMA_URL"):
            embedding.ollama_url = os.environ["OLLAMA_URL"]

        for env_name, attr in (
            ("LANCE_CONTEXT_CONCURRENCY", "concurrency"),
            ("LANCE_CONTEXT_BATCH_SIZE", "batch_size"),
        ):
            raw = os.environ.get(env_name)
            if not raw:
                continue
            try:
                setattr(embedding, attr, int(raw))
            except ValueError:
                logger.warning(f"Invalid {env_name} value: {raw}, using default")

        return config
