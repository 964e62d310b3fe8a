"""Persistent index metadata: backend identity, counts, checkpoint and file hashes.

The metadata file is the single source of truth for whether the stored
index can be trusted. It is rewritten atomically (temp file + rename) at
pass boundaries and at every checkpoint.
"""

import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import orjson
from loguru import logger

from ..config.defaults import SCHEMA_VERSION
from .exceptions import StorageError

METADATA_FILENAME = "index_metadata.json"


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class FileRecord:
    """What the index knows about one source file."""

    hash: str
    chunk_count: int
    last_indexed: str


@dataclass
class Checkpoint:
    """Cursor into an in-progress pass.

    Files finished before a checkpoint are already recorded in the files
    map with their new hashes, so the next pass diffs them as unchanged.
    Files in ``pending`` but not ``processed`` are reprocessed whatever
    their hash. ``full`` carries over whether the interrupted pass was a
    full rebuild.
    """

    pass_id: str
    pending: list[str]
    processed: list[str] = field(default_factory=list)
    full: bool = False


@dataclass
class IndexMetadata:
    backend: str | None = None
    model: str | None = None
    dimensions: int | None = None
    schema_version: int = SCHEMA_VERSION
    file_count: int = 0
    chunk_count: int = 0
    created_at: str | None = None
    last_updated: str | None = None
    last_full_index: str | None = None
    checkpoint: Checkpoint | None = None
    corrupted: bool = False
    corruption_reason: str | None = None
    files: dict[str, FileRecord] = field(default_factory=dict)
    # Set when the metadata file exists but could not be parsed; never persisted
    load_error: str | None = None

    @property
    def indexed(self) -> bool:
        return self.last_updated is not None

    def recount(self) -> None:
        self.file_count = len(self.files)
        self.chunk_count = sum(record.chunk_count for record in self.files.values())

    def identity_mismatch(self, backend: str, model: str, dimensions: int) -> str | None:
        """Describe how the stored embedding identity differs, or None."""
        if self.backend is None:
            return None
        if self.schema_version != SCHEMA_VERSION:
            return (
                f"schema version {self.schema_version} does not match "
                f"current version {SCHEMA_VERSION}"
            )
        if self.backend != backend or self.model != model:
            return (
                f"index was built with {self.backend}/{self.model} but the "
                f"configured backend is {backend}/{model}"
            )
        if self.dimensions != dimensions:
            return (
                f"index vectors have {self.dimensions} dimensions but the "
                f"configured model produces {dimensions}"
            )
        return None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("load_error")
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IndexMetadata":
        files = {
            path: FileRecord(**record) for path, record in data.get("files", {}).items()
        }
        checkpoint = data.get("checkpoint")
        return cls(
            backend=data.get("backend"),
            model=data.get("model"),
            dimensions=data.get("dimensions"),
            schema_version=data.get("schema_version", SCHEMA_VERSION),
            file_count=data.get("file_count", 0),
            chunk_count=data.get("chunk_count", 0),
            created_at=data.get("created_at"),
            last_updated=data.get("last_updated"),
            last_full_index=data.get("last_full_index"),
            checkpoint=Checkpoint(**checkpoint) if checkpoint else None,
            corrupted=data.get("corrupted", False),
            corruption_reason=data.get("corruption_reason"),
            files=files,
        )


class IndexMetadataStore:
    """Loads and saves ``IndexMetadata`` under the project's index directory."""

    def __init__(self, index_dir: Path) -> None:
        """Initialize metadata store.

        Args:
            index_dir: Project index directory (``<project>/.lance-context``)
        """
        self.index_dir = index_dir
        self.path = index_dir / METADATA_FILENAME

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> IndexMetadata:
        """Load metadata, returning an empty record when none exists.

        An unreadable metadata file is reported as corruption rather than
        silently treated as "not indexed", so stale vectors are never
        trusted.
        """
        if not self.path.exists():
            return IndexMetadata()

        try:
            data = orjson.loads(self.path.read_bytes())
            return IndexMetadata.from_dict(data)
        except (OSError, orjson.JSONDecodeError, TypeError, KeyError) as e:
            logger.warning(f"Failed to load index metadata: {e}")
            return IndexMetadata(
                last_updated=utc_now(),
                load_error=f"index metadata is unreadable: {e}",
            )

    def save(self, metadata: IndexMetadata) -> None:
        """Atomically write metadata.

        Raises:
            StorageError: If the file cannot be written
        """
        if metadata.created_at is None:
            metadata.created_at = utc_now()

        tmp_path = self.path.with_suffix(".json.tmp")
        try:
            self.index_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(
                orjson.dumps(metadata.to_dict(), option=orjson.OPT_INDENT_2)
            )
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to save index metadata: {e}")
            raise StorageError(f"Failed to save index metadata: {e}") from e

    def delete(self) -> None:
        """Remove the metadata file (used by clear_index)."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete index metadata: {e}") from e
