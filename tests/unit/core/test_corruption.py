"""Tests for the index integrity checks."""

import pytest

from lance_context.core.corruption import CorruptionDetector, EmbeddingIdentity
from lance_context.core.exceptions import StorageError
from lance_context.core.index_metadata import Checkpoint, FileRecord, IndexMetadata

IDENTITY = EmbeddingIdentity(backend="hash", model="hash-v1", dimensions=4)


def _row(chunk_id: str, file_path: str) -> dict:
    return {
        "chunk_id": chunk_id,
        "vector": [1.0, 0.0, 0.0, 0.0],
        "file_path": file_path,
        "content": "x",
        "language": "python",
        "start_line": 1,
        "end_line": 1,
        "symbol_name": "",
        "symbol_type": "",
        "model_version": "hash-v1",
    }


def _metadata(files: dict[str, int] | None = None) -> IndexMetadata:
    metadata = IndexMetadata(
        backend="hash",
        model="hash-v1",
        dimensions=4,
        last_updated="2026-01-01T00:00:00+00:00",
        files={
            path: FileRecord(hash="h", chunk_count=count, last_indexed="t")
            for path, count in (files or {}).items()
        },
    )
    metadata.recount()
    return metadata


@pytest.fixture
async def populated_store(memory_store):
    await memory_store.upsert([_row("1", "a.py"), _row("2", "a.py"), _row("3", "b.py")])
    return memory_store


@pytest.mark.asyncio
class TestCorruptionDetector:
    async def test_consistent_index(self, populated_store):
        detector = CorruptionDetector(populated_store)
        assert await detector.check(_metadata({"a.py": 2, "b.py": 1}), IDENTITY) is None

    async def test_never_indexed_is_clean(self, memory_store):
        assert await CorruptionDetector(memory_store).check(IndexMetadata(), IDENTITY) is None

    async def test_load_error_reported(self, memory_store):
        metadata = IndexMetadata(load_error="index metadata is unreadable: bad json")
        reason = await CorruptionDetector(memory_store).check(metadata, IDENTITY)
        assert reason == "index metadata is unreadable: bad json"

    async def test_row_count_mismatch(self, populated_store):
        reason = await CorruptionDetector(populated_store).check(
            _metadata({"a.py": 2, "b.py": 5}), IDENTITY
        )
        assert reason == "stored chunk count (7) does not match storage row count (3)"

    async def test_identity_mismatch(self, populated_store):
        other = EmbeddingIdentity(backend="jina", model="jina-embeddings-v3", dimensions=4)
        reason = await CorruptionDetector(populated_store).check(
            _metadata({"a.py": 2, "b.py": 1}), other
        )
        assert "hash/hash-v1" in reason

    async def test_orphaned_files(self, populated_store):
        await populated_store.delete_by_file("b.py")
        await populated_store.upsert([_row("3", "c.py")])

        reason = await CorruptionDetector(populated_store).check(
            _metadata({"a.py": 2, "b.py": 1}), IDENTITY
        )
        assert reason.startswith("1 file(s) have stored chunks but are not in the indexed file set")
        assert "c.py" in reason

    async def test_orphan_listing_truncated(self, memory_store):
        await memory_store.upsert([_row(str(i), f"f{i}.py") for i in range(8)])
        metadata = _metadata()
        metadata.chunk_count = 8

        reason = await CorruptionDetector(memory_store).check(metadata, IDENTITY)
        assert reason.startswith("8 file(s)")
        assert reason.endswith("and 3 more")

    async def test_checkpoint_skips_count_checks(self, populated_store):
        metadata = _metadata({"a.py": 9})
        metadata.checkpoint = Checkpoint(pass_id="p", pending=["b.py"])
        assert await CorruptionDetector(populated_store).check(metadata, IDENTITY) is None

    async def test_unreadable_store(self, memory_store):
        async def broken() -> int:
            raise StorageError("table missing")

        memory_store.row_count = broken
        reason = await CorruptionDetector(memory_store).check(_metadata({"a.py": 1}), IDENTITY)
        assert reason == "vector store could not be read: table missing"
