"""Integrity checks between index metadata and the vector store.

Three invariants are checked:

1. the chunk count recorded in metadata equals the store's row count;
2. the backend, model, dimension and schema version recorded in metadata
   match the configured embedding backend;
3. every file that has chunks in the store is part of the file set the
   last pass recorded.

A violation yields a human-readable reason. Repair is never attempted
here; the indexer rebuilds from scratch when explicitly asked to.
"""

from dataclasses import dataclass

from loguru import logger

from .exceptions import LanceContextError
from .index_metadata import IndexMetadata
from .storage import VectorStore

# Cap on file names quoted in a reason string
_MAX_LISTED_FILES = 5


@dataclass
class EmbeddingIdentity:
    backend: str
    model: str
    dimensions: int


class CorruptionDetector:
    """Runs the integrity checks for one project's index."""

    def __init__(self, store: VectorStore) -> None:
        self.store = store

    async def check(
        self, metadata: IndexMetadata, identity: EmbeddingIdentity
    ) -> str | None:
        """Return a corruption reason, or None when the index is consistent.

        A pass that was interrupted (checkpoint present) legitimately leaves
        the counts out of step, so only the identity check applies to it.
        """
        if metadata.load_error:
            return metadata.load_error
        if not metadata.indexed:
            return None

        reason = metadata.identity_mismatch(
            identity.backend, identity.model, identity.dimensions
        )
        if reason:
            return reason

        if metadata.checkpoint is not None:
            logger.debug("Interrupted pass pending; skipping count checks")
            return None

        try:
            row_count = await self.store.row_count()
            stored_files = await self.store.list_file_paths()
        except LanceContextError as e:
            return f"vector store could not be read: {e}"

        if row_count != metadata.chunk_count:
            return (
                f"stored chunk count ({metadata.chunk_count}) does not match "
                f"storage row count ({row_count})"
            )

        orphaned = sorted(stored_files - set(metadata.files))
        if orphaned:
            listed = ", ".join(orphaned[:_MAX_LISTED_FILES])
            more = len(orphaned) - _MAX_LISTED_FILES
            suffix = f" and {more} more" if more > 0 else ""
            return (
                f"{len(orphaned)} file(s) have stored chunks but are not in the "
                f"indexed file set: {listed}{suffix}"
            )

        return None
