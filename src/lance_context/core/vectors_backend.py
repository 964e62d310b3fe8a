"""LanceDB implementation of the ``VectorStore`` interface.

One table, ``chunks``, holds every embedded chunk together with the
metadata needed to render a search hit, so a query never needs a second
lookup. Writes go through ``merge_insert`` keyed on ``chunk_id``: a row is
either the old version or the new one, never a partial write.
"""

from pathlib import Path
from typing import Any

import lancedb
import pyarrow as pa
from loguru import logger

from .exceptions import SearchError, StorageError
from .storage import StoredRow


def _create_chunks_schema(vector_dim: int) -> pa.Schema:
    """Create chunks schema with a fixed vector dimension.

    Args:
        vector_dim: Embedding vector dimension (e.g. 768 for jina/nomic)

    Returns:
        PyArrow schema for the chunks table
    """
    return pa.schema(
        [
            pa.field("chunk_id", pa.string()),
            pa.field("vector", pa.list_(pa.float32(), vector_dim)),
            # Denormalized fields rendered in search results
            pa.field("file_path", pa.string()),
            pa.field("content", pa.string()),
            pa.field("language", pa.string()),
            pa.field("start_line", pa.int32()),
            pa.field("end_line", pa.int32()),
            pa.field("symbol_name", pa.string()),
            pa.field("symbol_type", pa.string()),
            pa.field("model_version", pa.string()),
        ]
    )


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def build_where_clause(filters: dict[str, Any] | None) -> str | None:
    """Translate store filters to a LanceDB SQL predicate."""
    if not filters:
        return None

    clauses = []
    for key, value in filters.items():
        if value is None:
            continue
        if key not in ("language", "file_path"):
            raise StorageError(f"Unsupported filter key: {key}")
        if isinstance(value, (list, tuple, set)):
            if not value:
                continue
            values = ", ".join(_quote(str(v)) for v in value)
            clauses.append(f"{key} IN ({values})")
        else:
            clauses.append(f"{key} = {_quote(str(value))}")

    return " AND ".join(clauses) if clauses else None


class LanceVectorStore:
    """Chunk storage and cosine similarity search over a LanceDB table.

    Example:
        store = LanceVectorStore(index_dir / "lancedb", vector_dim=768)
        await store.initialize()
        await store.upsert([chunk.to_row() for chunk in chunks])
        hits = await store.query(query_vector, k=30, filters={"language": ["python"]})
    """

    TABLE_NAME = "chunks"

    def __init__(
        self, db_path: Path, vector_dim: int, table_name: str = TABLE_NAME
    ) -> None:
        """Initialize the store.

        Args:
            db_path: Directory for the LanceDB database
            vector_dim: Vector dimension of the configured embedding backend
            table_name: Name of the chunks table
        """
        self.db_path = Path(db_path)
        self.vector_dim = vector_dim
        self.table_name = table_name
        self._db = None
        self._table = None

    async def initialize(self) -> None:
        """Connect and open the table when it already exists.

        Raises:
            StorageError: If the database cannot be opened
        """
        try:
            self.db_path.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Connecting to LanceDB at: {self.db_path}")
            self._db = lancedb.connect(str(self.db_path))

            if self.table_name in self._table_names():
                self._table = self._db.open_table(self.table_name)
                logger.debug(f"Opened existing table '{self.table_name}'")
            else:
                # Created on first upsert
                self._table = None
        except Exception as e:
            logger.error(f"Failed to initialize LanceDB store: {e}")
            raise StorageError(f"Failed to initialize vector store: {e}") from e

    def _table_names(self) -> list[str]:
        # list_tables() returns a response object with .tables on newer releases
        response = self._db.list_tables()
        return list(response.tables if hasattr(response, "tables") else response)

    def _require_db(self) -> None:
        if self._db is None:
            raise StorageError("Vector store not initialized. Call initialize() first.")

    async def upsert(self, rows: list[dict[str, Any]]) -> int:
        """Insert or replace rows keyed by ``chunk_id``.

        Args:
            rows: Row dicts from ``CodeChunk.to_row()``

        Returns:
            Number of rows written
        """
        self._require_db()
        if not rows:
            return 0

        for row in rows:
            if len(row["vector"]) != self.vector_dim:
                raise StorageError(
                    f"Vector dimension mismatch for {row['chunk_id']}: "
                    f"expected {self.vector_dim}, got {len(row['vector'])}"
                )

        try:
            data = pa.Table.from_pylist(rows, schema=_create_chunks_schema(self.vector_dim))
            if self._table is None:
                self._table = self._db.create_table(self.table_name, data=data)
                logger.debug(f"Created table '{self.table_name}' with {len(rows)} rows")
            else:
                (
                    self._table.merge_insert("chunk_id")
                    .when_matched_update_all()
                    .when_not_matched_insert_all()
                    .execute(data)
                )
            return len(rows)
        except Exception as e:
            logger.error(f"Failed to upsert {len(rows)} rows: {e}")
            raise StorageError(f"Failed to upsert rows: {e}") from e

    async def delete_by_file(self, file_path: str) -> int:
        """Delete every row belonging to a file.

        Returns:
            Number of rows deleted
        """
        self._require_db()
        if self._table is None:
            return 0

        predicate = f"file_path = {_quote(file_path)}"
        try:
            count = self._table.count_rows(predicate)
            if count:
                self._table.delete(predicate)
                logger.debug(f"Deleted {count} rows for file: {file_path}")
            return count
        except Exception as e:
            logger.error(f"Failed to delete rows for {file_path}: {e}")
            raise StorageError(f"Failed to delete rows: {e}") from e

    async def query(
        self, vector: list[float], k: int, filters: dict[str, Any] | None = None
    ) -> list[StoredRow]:
        """Nearest neighbours by cosine distance.

        Cosine distance ranges from 0 (identical) to 2 (opposite) and is
        mapped to ``similarity = 1 - distance / 2``.

        Raises:
            SearchError: If the query fails or the vector has the wrong dimension
        """
        self._require_db()
        if self._table is None or k <= 0:
            return []
        if len(vector) != self.vector_dim:
            raise SearchError(
                f"Query vector dimension mismatch: expected {self.vector_dim}, "
                f"got {len(vector)}"
            )

        try:
            search = self._table.search(vector).distance_type("cosine").limit(k)
            where = build_where_clause(filters)
            if where:
                search = search.where(where, prefilter=True)
            records = search.to_list()
        except Exception as e:
            logger.error(f"Vector search failed: {e}")
            raise SearchError(f"Vector search failed: {e}") from e

        results = []
        for record in records:
            distance = float(record.get("_distance", 0.0))
            similarity = min(1.0, max(0.0, 1.0 - distance / 2.0))
            results.append(StoredRow.from_record(record, similarity=similarity))

        logger.debug(f"Vector search returned {len(results)} results (k={k})")
        return results

    async def row_count(self) -> int:
        self._require_db()
        if self._table is None:
            return 0
        try:
            return self._table.count_rows()
        except Exception as e:
            raise StorageError(f"Failed to count rows: {e}") from e

    def _scan(self, columns: list[str]) -> pa.Table:
        try:
            return self._table.to_arrow().select(columns)
        except Exception as e:
            raise StorageError(f"Failed to scan table: {e}") from e

    async def list_ids(self) -> list[str]:
        self._require_db()
        if self._table is None:
            return []
        return self._scan(["chunk_id"]).column("chunk_id").to_pylist()

    async def list_file_paths(self) -> set[str]:
        self._require_db()
        if self._table is None:
            return set()
        return set(self._scan(["file_path"]).column("file_path").to_pylist())

    async def list_rows(self, include_vectors: bool = True) -> list[StoredRow]:
        """All rows in storage order, optionally with their vectors."""
        self._require_db()
        if self._table is None:
            return []
        columns = [
            name
            for name in _create_chunks_schema(self.vector_dim).names
            if include_vectors or name != "vector"
        ]
        records = self._scan(columns).to_pylist()
        return [
            StoredRow.from_record(record, with_vector=include_vectors)
            for record in records
        ]

    async def clear(self) -> None:
        """Drop the chunks table. It is recreated on the next upsert."""
        self._require_db()
        try:
            if self.table_name in self._table_names():
                self._db.drop_table(self.table_name)
                logger.info(f"Dropped table '{self.table_name}'")
        except Exception as e:
            raise StorageError(f"Failed to clear vector store: {e}") from e
        self._table = None

    async def close(self) -> None:
        """LanceDB needs no explicit close; drop references."""
        self._table = None
        self._db = None
        logger.debug("Vector store closed")

    async def __aenter__(self) -> "LanceVectorStore":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
