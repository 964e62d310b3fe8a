"""Data models shared by the chunker, indexer, search and clustering."""

from __future__ import annotations

import hashlib
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any


class FileChangeType(StrEnum):
    UNCHANGED = "unchanged"
    MODIFIED = "modified"
    NEW = "new"
    DELETED = "deleted"


def make_chunk_id(file_path: str, start_line: int, end_line: int, content: str) -> str:
    """Stable chunk id from location plus content hash.

    Re-chunking an unchanged region of an unchanged file reproduces the id.
    """
    content_hash = hashlib.sha256(content.encode("utf-8")).hexdigest()
    key = f"{file_path}:{start_line}-{end_line}:{content_hash}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


@dataclass
class SourceFile:
    """A file discovered by the scanner."""

    path: str
    content_hash: str
    language: str
    size: int = 0
    last_indexed: float | None = None
    status: FileChangeType = FileChangeType.NEW


@dataclass
class CodeChunk:
    """A contiguous, 1-indexed inclusive line range of one file."""

    file_path: str
    start_line: int
    end_line: int
    content: str
    language: str
    symbol_name: str | None = None
    symbol_type: str | None = None
    embedding: list[float] | None = None
    model_version: str | None = None
    chunk_id: str = ""

    def __post_init__(self) -> None:
        if self.start_line < 1 or self.end_line < self.start_line:
            raise ValueError(
                f"Invalid line range {self.start_line}-{self.end_line} for {self.file_path}"
            )
        if not self.chunk_id:
            self.chunk_id = make_chunk_id(
                self.file_path, self.start_line, self.end_line, self.content
            )

    @property
    def id(self) -> str:
        return self.chunk_id

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    def to_row(self) -> dict[str, Any]:
        """Storage row for this chunk. Requires an embedding."""
        if self.embedding is None:
            raise ValueError(f"Chunk {self.chunk_id} has no embedding")
        return {
            "chunk_id": self.chunk_id,
            "vector": self.embedding,
            "file_path": self.file_path,
            "content": self.content,
            "language": self.language,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "symbol_name": self.symbol_name or "",
            "symbol_type": self.symbol_type or "",
            "model_version": self.model_version or "",
        }


@dataclass
class SearchResult:
    """A ranked chunk returned by search."""

    chunk_id: str
    file_path: str
    start_line: int
    end_line: int
    content: str
    language: str
    score: float
    semantic_score: float = 0.0
    keyword_score: float = 0.0
    symbol_name: str | None = None
    symbol_type: str | None = None
    rank: int = 0

    @property
    def location(self) -> str:
        return f"{self.file_path}:{self.start_line}-{self.end_line}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class IndexProgress:
    """Progress event delivered to an indexing callback."""

    current: int
    total: int
    message: str
    phase: str = "processing"


@dataclass
class IndexResult:
    """Outcome of one indexing pass.

    ``chunks_created`` is the total chunk count of the index after the pass;
    ``chunks_written`` counts only the chunks embedded during this pass.
    """

    incremental: bool
    repaired: bool = False
    files_indexed: int = 0
    chunks_created: int = 0
    files_deleted: int = 0
    files_skipped: int = 0
    files_unchanged: int = 0
    resumed: bool = False
    chunks_written: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class IndexStatus:
    """Snapshot of the persisted index, as reported by get_status()."""

    indexed: bool
    is_indexing: bool
    state: str
    file_count: int = 0
    chunk_count: int = 0
    last_updated: str | None = None
    last_full_index: str | None = None
    backend: str | None = None
    model: str | None = None
    dimensions: int | None = None
    corrupted: bool = False
    corruption_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
