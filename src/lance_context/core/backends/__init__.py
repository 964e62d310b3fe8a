"""Embedding backends."""

from .base import EmbeddingBackend, HttpEmbeddingBackend
from .jina import JinaBackend
from .local import SentenceTransformerBackend
from .ollama import OllamaBackend

__all__ = [
    "EmbeddingBackend",
    "HttpEmbeddingBackend",
    "JinaBackend",
    "OllamaBackend",
    "SentenceTransformerBackend",
]
