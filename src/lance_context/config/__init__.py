"""Configuration for lance-context."""

from .settings import (
    ChunkingConfig,
    EmbeddingBackendType,
    EmbeddingConfig,
    IndexingConfig,
    ProjectConfig,
    RateLimiterConfig,
    RetryConfig,
    SearchConfig,
)

__all__ = [
    "ChunkingConfig",
    "EmbeddingBackendType",
    "EmbeddingConfig",
    "IndexingConfig",
    "ProjectConfig",
    "RateLimiterConfig",
    "RetryConfig",
    "SearchConfig",
]
