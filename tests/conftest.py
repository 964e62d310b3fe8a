"""Shared fixtures: an in-memory vector store and a deterministic embedder."""

import asyncio
import hashlib
import math
import re
from pathlib import Path
from typing import Any

import pytest

from lance_context.config.settings import ProjectConfig
from lance_context.core.backends import EmbeddingBackend
from lance_context.core.exceptions import EmbeddingError
from lance_context.core.factory import create_components
from lance_context.core.storage import StoredRow

HASH_DIMENSIONS = 64
_WORD = re.compile(r"[a-z]{3,}")


def hash_embedding(text: str, dimensions: int = HASH_DIMENSIONS) -> list[float]:
    """Unit-length bag-of-words vector; shared words mean higher cosine."""
    vector = [0.0] * dimensions
    for word in _WORD.findall(text.lower()):
        digest = hashlib.md5(word.encode()).digest()
        vector[int.from_bytes(digest[:4], "little") % dimensions] += 1.0
    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        vector[0] = 1.0
        return vector
    return [v / norm for v in vector]


class HashEmbeddingBackend(EmbeddingBackend):
    """Offline backend producing hash-based embeddings."""

    name = "hash"

    def __init__(self, dimensions: int = HASH_DIMENSIONS, model: str = "hash-v1"):
        self.dimensions = dimensions
        self.model = model
        self.calls: list[list[str]] = []
        self.initialized = False

    async def initialize(self) -> None:
        self.initialized = True

    async def embed(self, text: str) -> list[float]:
        return hash_embedding(text, self.dimensions)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [hash_embedding(t, self.dimensions) for t in texts]

    def get_dimensions(self) -> int:
        return self.dimensions

    def get_model(self) -> str:
        return self.model


class BlockingBackend(HashEmbeddingBackend):
    """Holds every embedding call until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.started.set()
        await self.release.wait()
        return await super().embed_batch(texts)


class FailingBackend(HashEmbeddingBackend):
    """Raises ``EmbeddingError`` for any text containing ``fail_on``."""

    def __init__(self, fail_on: str | None = None) -> None:
        super().__init__()
        self.fail_on = fail_on

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if self.fail_on and any(self.fail_on in t for t in texts):
            raise EmbeddingError("backend exploded")
        return await super().embed_batch(texts)


class InMemoryVectorStore:
    """``VectorStore`` kept in a dict, with brute-force cosine search."""

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.initialized = False
        self.closed = False

    async def initialize(self) -> None:
        self.initialized = True

    async def upsert(self, rows: list[dict[str, Any]]) -> int:
        for row in rows:
            self.rows[row["chunk_id"]] = dict(row)
        return len(rows)

    async def delete_by_file(self, file_path: str) -> int:
        doomed = [cid for cid, row in self.rows.items() if row["file_path"] == file_path]
        for cid in doomed:
            del self.rows[cid]
        return len(doomed)

    async def query(
        self, vector: list[float], k: int, filters: dict[str, Any] | None = None
    ) -> list[StoredRow]:
        filters = filters or {}
        scored = []
        for row in self.rows.values():
            languages = filters.get("language")
            if languages and row["language"] not in languages:
                continue
            if filters.get("file_path") and row["file_path"] != filters["file_path"]:
                continue
            cosine = sum(a * b for a, b in zip(vector, row["vector"], strict=True))
            similarity = min(1.0, max(0.0, (1.0 + cosine) / 2.0))
            scored.append(StoredRow.from_record(row, similarity=similarity))
        scored.sort(key=lambda r: r.similarity, reverse=True)
        return scored[:k]

    async def row_count(self) -> int:
        return len(self.rows)

    async def list_ids(self) -> list[str]:
        return list(self.rows)

    async def list_file_paths(self) -> set[str]:
        return {row["file_path"] for row in self.rows.values()}

    async def list_rows(self, include_vectors: bool = True) -> list[StoredRow]:
        return [
            StoredRow.from_record(row, with_vector=include_vectors)
            for row in self.rows.values()
        ]

    async def clear(self) -> None:
        self.rows.clear()

    async def close(self) -> None:
        self.closed = True


RATE_LIMITER_SOURCE = '''\
import time


class TokenBucket:
    """Token bucket rate limiting for outgoing requests."""

    def __init__(self, rate, capacity):
        self.rate = rate
        self.capacity = capacity
        self.tokens = capacity
        self.updated = time.monotonic()

    def take(self):
        """Take one token from the bucket, refilling by elapsed time."""
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.updated) * self.rate)
        self.updated = now
        if self.tokens >= 1:
            self.tokens -= 1
            return True
        return False
'''

PARSER_SOURCE = '''\
import json


def parse_document(raw):
    """Parse a JSON document into a dictionary of sections."""
    data = json.loads(raw)
    return {section["title"]: section["body"] for section in data["sections"]}
'''

STRINGS_SOURCE = '''\
def slugify(title):
    """Convert a title into a lowercase URL slug."""
    return "-".join(word.lower() for word in title.split())


def truncate(text, width):
    """Shorten text to width characters with an ellipsis."""
    return text if len(text) <= width else text[: width - 3] + "..."
'''


@pytest.fixture
def hash_backend() -> HashEmbeddingBackend:
    return HashEmbeddingBackend()


@pytest.fixture
def blocking_backend() -> BlockingBackend:
    return BlockingBackend()


@pytest.fixture
def failing_backend() -> FailingBackend:
    return FailingBackend(fail_on="slugify")


@pytest.fixture
def memory_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def sample_project(tmp_path: Path) -> Path:
    """Three-file Python project."""
    root = tmp_path / "project"
    (root / "src" / "utils").mkdir(parents=True)
    (root / "src" / "rate_limiter.py").write_text(RATE_LIMITER_SOURCE)
    (root / "src" / "parser.py").write_text(PARSER_SOURCE)
    (root / "src" / "utils" / "strings.py").write_text(STRINGS_SOURCE)
    return root


@pytest.fixture
def project_config(sample_project: Path) -> ProjectConfig:
    return ProjectConfig(project_root=sample_project)


@pytest.fixture
async def components(project_config, hash_backend, memory_store):
    bundle = await create_components(
        project_config.project_root,
        project_config,
        backend=hash_backend,
        store=memory_store,
        use_cache=False,
    )
    yield bundle
    await bundle.close()
