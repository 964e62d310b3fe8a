"""Storage interface consumed by the indexer, search and clustering."""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class StoredRow:
    """A chunk row as read back from the vector store."""

    chunk_id: str
    file_path: str
    start_line: int
    end_line: int
    content: str
    language: str
    symbol_name: str | None = None
    symbol_type: str | None = None
    model_version: str | None = None
    similarity: float = 0.0
    vector: list[float] = field(default_factory=list, repr=False)

    @classmethod
    def from_record(
        cls, record: dict[str, Any], similarity: float = 0.0, with_vector: bool = False
    ) -> "StoredRow":
        vector = record.get("vector") if with_vector else None
        return cls(
            chunk_id=record["chunk_id"],
            file_path=record["file_path"],
            start_line=int(record["start_line"]),
            end_line=int(record["end_line"]),
            content=record["content"],
            language=record["language"],
            symbol_name=record.get("symbol_name") or None,
            symbol_type=record.get("symbol_type") or None,
            model_version=record.get("model_version") or None,
            similarity=similarity,
            vector=list(vector) if vector is not None else [],
        )


@runtime_checkable
class VectorStore(Protocol):
    """Narrow interface over the vector database.

    Rows are dicts produced by ``CodeChunk.to_row()``. ``query`` returns
    rows ordered by descending ``similarity`` in [0, 1]. Supported filter
    keys are ``language`` (list of tags) and ``file_path`` (exact path).
    """

    async def initialize(self) -> None: ...

    async def upsert(self, rows: list[dict[str, Any]]) -> int: ...

    async def delete_by_file(self, file_path: str) -> int: ...

    async def query(
        self, vector: list[float], k: int, filters: dict[str, Any] | None = None
    ) -> list[StoredRow]: ...

    async def row_count(self) -> int: ...

    async def list_ids(self) -> list[str]: ...

    async def list_file_paths(self) -> set[str]: ...

    async def list_rows(self, include_vectors: bool = True) -> list[StoredRow]: ...

    async def clear(self) -> None: ...

    async def close(self) -> None: ...
