"""Core functionality for lance-context."""

from .exceptions import (
    BackendError,
    ConfigError,
    ConnectivityError,
    EmbeddingError,
    FileReadError,
    IndexCorruptionError,
    IndexingError,
    LanceContextError,
    SearchError,
    StorageError,
    ValidationError,
)

__all__ = [
    "BackendError",
    "ConfigError",
    "ConnectivityError",
    "EmbeddingError",
    "FileReadError",
    "IndexCorruptionError",
    "IndexingError",
    "LanceContextError",
    "SearchError",
    "StorageError",
    "ValidationError",
]
