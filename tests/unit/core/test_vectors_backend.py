"""Tests for the LanceDB vector store."""

from pathlib import Path

import pytest

from lance_context.core.exceptions import SearchError, StorageError
from lance_context.core.storage import VectorStore
from lance_context.core.vectors_backend import LanceVectorStore, build_where_clause


@pytest.fixture
async def store(tmp_path: Path):
    """Create and initialize a 4-dimension store."""
    store = LanceVectorStore(tmp_path / "lance", vector_dim=4)
    await store.initialize()
    yield store
    await store.close()


def _row(chunk_id, vector, file_path="src/main.py", language="python", **extra) -> dict:
    row = {
        "chunk_id": chunk_id,
        "vector": vector,
        "file_path": file_path,
        "content": f"content of {chunk_id}",
        "language": language,
        "start_line": 1,
        "end_line": 2,
        "symbol_name": "",
        "symbol_type": "",
        "model_version": "hash-v1",
    }
    row.update(extra)
    return row


@pytest.fixture
def sample_rows():
    return [
        _row("chunk1", [1.0, 0.0, 0.0, 0.0], symbol_name="foo", symbol_type="function"),
        _row("chunk2", [0.9, 0.1, 0.0, 0.0]),
        _row("chunk3", [0.0, 0.0, 1.0, 0.0], file_path="src/utils.js", language="javascript"),
    ]


@pytest.mark.asyncio
class TestLanceVectorStore:
    async def test_satisfies_protocol(self, store):
        assert isinstance(store, VectorStore)

    async def test_initialize_creates_directory(self, tmp_path: Path):
        db_path = tmp_path / "fresh"
        store = LanceVectorStore(db_path, vector_dim=4)
        await store.initialize()
        assert db_path.is_dir()
        assert await store.row_count() == 0

    async def test_upsert_and_count(self, store, sample_rows):
        assert await store.upsert(sample_rows) == 3
        assert await store.row_count() == 3
        assert sorted(await store.list_ids()) == ["chunk1", "chunk2", "chunk3"]
        assert await store.list_file_paths() == {"src/main.py", "src/utils.js"}

    async def test_upsert_replaces_by_id(self, store, sample_rows):
        await store.upsert(sample_rows)
        await store.upsert([_row("chunk2", [0.9, 0.1, 0.0, 0.0], content="rewritten")])

        assert await store.row_count() == 3
        rows = {r.chunk_id: r for r in await store.list_rows(include_vectors=False)}
        assert rows["chunk2"].content == "rewritten"

    async def test_upsert_empty(self, store):
        assert await store.upsert([]) == 0

    async def test_dimension_mismatch_rejected(self, store):
        with pytest.raises(StorageError, match="dimension mismatch"):
            await store.upsert([_row("bad", [1.0, 2.0])])

    async def test_query_orders_by_similarity(self, store, sample_rows):
        await store.upsert(sample_rows)

        results = await store.query([1.0, 0.0, 0.0, 0.0], k=3)

        assert [r.chunk_id for r in results] == ["chunk1", "chunk2", "chunk3"]
        assert results[0].similarity == pytest.approx(1.0, abs=1e-4)
        assert results[2].similarity == pytest.approx(0.5, abs=1e-4)
        assert results[0].symbol_name == "foo"
        assert results[1].symbol_name is None

    async def test_query_limit(self, store, sample_rows):
        await store.upsert(sample_rows)
        assert len(await store.query([1.0, 0.0, 0.0, 0.0], k=1)) == 1

    async def test_query_language_filter(self, store, sample_rows):
        await store.upsert(sample_rows)
        results = await store.query([1.0, 0.0, 0.0, 0.0], k=3, filters={"language": ["javascript"]})
        assert [r.chunk_id for r in results] == ["chunk3"]

    async def test_query_file_filter(self, store, sample_rows):
        await store.upsert(sample_rows)
        results = await store.query([0.0, 0.0, 1.0, 0.0], k=3, filters={"file_path": "src/main.py"})
        assert {r.chunk_id for r in results} == {"chunk1", "chunk2"}

    async def test_query_empty_store(self, store):
        assert await store.query([1.0, 0.0, 0.0, 0.0], k=5) == []

    async def test_query_dimension_mismatch(self, store, sample_rows):
        await store.upsert(sample_rows)
        with pytest.raises(SearchError):
            await store.query([1.0, 0.0], k=3)

    async def test_delete_by_file(self, store, sample_rows):
        await store.upsert(sample_rows)

        assert await store.delete_by_file("src/main.py") == 2
        assert await store.list_ids() == ["chunk3"]
        assert await store.delete_by_file("src/missing.py") == 0

    async def test_delete_path_with_quote(self, store):
        await store.upsert([_row("q", [1.0, 0.0, 0.0, 0.0], file_path="src/it's.py")])
        assert await store.delete_by_file("src/it's.py") == 1

    async def test_list_rows_with_vectors(self, store, sample_rows):
        await store.upsert(sample_rows)
        rows = await store.list_rows()
        assert all(len(r.vector) == 4 for r in rows)
        assert all(r.vector == [] for r in await store.list_rows(include_vectors=False))

    async def test_clear(self, store, sample_rows):
        await store.upsert(sample_rows)
        await store.clear()

        assert await store.row_count() == 0
        await store.upsert(sample_rows[:1])
        assert await store.row_count() == 1

    async def test_persists_across_instances(self, tmp_path: Path, sample_rows):
        async with LanceVectorStore(tmp_path / "lance", vector_dim=4) as first:
            await first.upsert(sample_rows)

        async with LanceVectorStore(tmp_path / "lance", vector_dim=4) as second:
            assert await second.row_count() == 3

    async def test_requires_initialize(self, tmp_path: Path):
        store = LanceVectorStore(tmp_path / "lance", vector_dim=4)
        with pytest.raises(StorageError, match="not initialized"):
            await store.row_count()


class TestWhereClause:
    def test_empty(self):
        assert build_where_clause(None) is None
        assert build_where_clause({}) is None
        assert build_where_clause({"language": []}) is None

    def test_list_values(self):
        assert build_where_clause({"language": ["python", "go"]}) == "language IN ('python', 'go')"

    def test_scalar_values_escaped(self):
        assert build_where_clause({"file_path": "a'b.py"}) == "file_path = 'a''b.py'"

    def test_combined(self):
        clause = build_where_clause({"language": ["python"], "file_path": "x.py"})
        assert clause == "language IN ('python') AND file_path = 'x.py'"

    def test_unknown_key(self):
        with pytest.raises(StorageError):
            build_where_clause({"owner": "me"})
