"""Incremental code indexer.

A pass moves through ``SCANNING -> DIFFING -> PROCESSING -> FINALIZING``
and back to ``IDLE``. Only one pass runs per indexer at a time. Metadata is
checkpointed every ``checkpoint_interval`` files, so an interrupted pass
leaves a consistent record of what was finished. The next pass reprocesses
every file the checkpoint left unfinished and diffs the rest by hash.
"""

import asyncio
import uuid
from collections.abc import Callable
from enum import StrEnum

import aiofiles
from loguru import logger

from ..config.settings import ProjectConfig
from ..utils.concurrency import map_with_concurrency
from .chunker import Chunker
from .corruption import CorruptionDetector, EmbeddingIdentity
from .embeddings import BatchEmbeddingDispatcher
from .exceptions import (
    FileReadError,
    IndexCorruptionError,
    IndexingError,
    LanceContextError,
)
from .file_discovery import FileDiscovery, ScanResult, compute_file_hash
from .index_metadata import (
    Checkpoint,
    FileRecord,
    IndexMetadata,
    IndexMetadataStore,
    utc_now,
)
from .models import FileChangeType, IndexProgress, IndexResult, IndexStatus
from .storage import VectorStore

ProgressCallback = Callable[[IndexProgress], None]


class IndexerState(StrEnum):
    IDLE = "idle"
    SCANNING = "scanning"
    DIFFING = "diffing"
    PROCESSING = "processing"
    FINALIZING = "finalizing"
    CORRUPTED = "corrupted"
    REPAIRING = "repairing"


def corruption_message(reason: str) -> str:
    """Corruption description with the two ways to recover."""
    return (
        f"Index corruption detected: {reason}\n"
        "To repair, either:\n"
        "1. Run index_codebase with auto_repair=true\n"
        "2. Run clear_index followed by index_codebase"
    )


class _PassCounters:
    def __init__(self) -> None:
        self.files_indexed = 0
        self.files_skipped = 0
        self.chunks_written = 0
        self.completed = 0


class CodeIndexer:
    """Owns the index metadata and every write to the vector store.

    Example:
        indexer = CodeIndexer(config, store, dispatcher)
        result = await indexer.index_codebase()
        status = await indexer.get_status()
    """

    def __init__(
        self,
        config: ProjectConfig,
        store: VectorStore,
        embedder: BatchEmbeddingDispatcher,
        chunker: Chunker | None = None,
        metadata_store: IndexMetadataStore | None = None,
    ) -> None:
        """Initialize the indexer.

        Args:
            config: Project configuration
            store: Initialized vector store
            embedder: Dispatcher around an initialized embedding backend
            chunker: Chunker (built from ``config.chunking`` when None)
            metadata_store: Metadata persistence (under ``config.index_dir`` when None)
        """
        self.config = config
        self.project_root = config.project_root
        self.store = store
        self.embedder = embedder
        self.chunker = chunker or Chunker(config.chunking)
        self.metadata_store = metadata_store or IndexMetadataStore(config.index_dir)
        self.detector = CorruptionDetector(store)
        # Serializes store writes and corruption checks; passes are also
        # flagged so a second pass is rejected rather than queued
        self._lock = asyncio.Lock()
        self._indexing = False
        self._state = IndexerState.IDLE

    @property
    def state(self) -> IndexerState:
        return self._state

    @property
    def is_indexing(self) -> bool:
        return self._indexing

    @property
    def identity(self) -> EmbeddingIdentity:
        return EmbeddingIdentity(
            backend=self.embedder.backend.name,
            model=self.embedder.model,
            dimensions=self.embedder.dimensions,
        )

    # ── public operations ───────────────────────────────────────────────

    async def index_codebase(
        self,
        patterns: list[str] | None = None,
        exclude_patterns: list[str] | None = None,
        force_reindex: bool = False,
        auto_repair: bool = False,
        progress_callback: ProgressCallback | None = None,
    ) -> IndexResult:
        """Run one indexing pass.

        Args:
            patterns: Include globs (configured defaults when None)
            exclude_patterns: Exclude globs (configured defaults when None)
            force_reindex: Re-embed every file and discard any checkpoint
            auto_repair: Rebuild from scratch when corruption is detected
            progress_callback: Receives ``IndexProgress`` events

        Returns:
            IndexResult describing the pass

        Raises:
            IndexingError: If a pass is already running or the pass fails
            IndexCorruptionError: If the index is corrupted and auto_repair is False
        """
        if self._indexing:
            raise IndexingError(
                "Indexing already in progress",
                context={"project_root": str(self.project_root)},
            )

        self._indexing = True
        try:
            async with self._lock:
                try:
                    return await self._run_pass(
                        patterns or self.config.patterns,
                        exclude_patterns or self.config.exclude_patterns,
                        force_reindex,
                        auto_repair,
                        progress_callback,
                    )
                except asyncio.CancelledError:
                    logger.warning("⚠ Indexing cancelled; progress kept at last checkpoint")
                    raise
                finally:
                    if self._state != IndexerState.CORRUPTED:
                        self._state = IndexerState.IDLE
        finally:
            self._indexing = False

    async def get_status(self) -> IndexStatus:
        """Report the index state, running the corruption checks first.

        Checks are skipped while a pass is running since storage and
        metadata are legitimately out of step mid-pass.
        """
        metadata = self.metadata_store.load()

        if not self._indexing:
            async with self._lock:
                metadata = self.metadata_store.load()
                reason = await self.detector.check(metadata, self.identity)
                await self._record_corruption(metadata, reason)

        return IndexStatus(
            indexed=metadata.indexed and metadata.load_error is None,
            is_indexing=self.is_indexing,
            state=self._state.value,
            file_count=metadata.file_count,
            chunk_count=metadata.chunk_count,
            last_updated=metadata.last_updated,
            last_full_index=metadata.last_full_index,
            backend=metadata.backend,
            model=metadata.model,
            dimensions=metadata.dimensions,
            corrupted=metadata.corrupted or metadata.load_error is not None,
            corruption_reason=metadata.corruption_reason or metadata.load_error,
        )

    async def clear_index(self) -> None:
        """Drop all stored chunks, the metadata file and cached embeddings.

        Raises:
            IndexingError: If a pass is running
        """
        if self._indexing:
            raise IndexingError("Cannot clear the index while indexing is in progress")

        async with self._lock:
            await self.store.clear()
            self.metadata_store.delete()
            if self.embedder.cache is not None:
                self.embedder.cache.clear()
            self._state = IndexerState.IDLE
            logger.info(f"✓ Index cleared for {self.project_root}")

    # ── pass internals ──────────────────────────────────────────────────

    async def _record_corruption(
        self, metadata: IndexMetadata, reason: str | None
    ) -> None:
        """Persist the corruption verdict when it changed."""
        if metadata.load_error:
            # Nothing trustworthy to write back into
            self._state = IndexerState.CORRUPTED
            return

        if reason:
            self._state = IndexerState.CORRUPTED
            if not metadata.corrupted or metadata.corruption_reason != reason:
                logger.warning(f"⚠ Index corruption detected: {reason}")
                metadata.corrupted = True
                metadata.corruption_reason = reason
                self.metadata_store.save(metadata)
        elif metadata.corrupted:
            metadata.corrupted = False
            metadata.corruption_reason = None
            self.metadata_store.save(metadata)
            self._state = IndexerState.IDLE
        elif self._state == IndexerState.CORRUPTED:
            self._state = IndexerState.IDLE

    async def _reset_storage(self) -> IndexMetadata:
        await self.store.clear()
        metadata = IndexMetadata()
        self.metadata_store.save(metadata)
        return metadata

    async def _run_pass(
        self,
        patterns: list[str],
        exclude_patterns: list[str],
        force_reindex: bool,
        auto_repair: bool,
        progress_callback: ProgressCallback | None,
    ) -> IndexResult:
        identity = self.identity
        metadata = self.metadata_store.load()
        repaired = False
        full = force_reindex or not metadata.indexed

        mismatch = (
            None
            if metadata.load_error
            else metadata.identity_mismatch(
                identity.backend, identity.model, identity.dimensions
            )
        )
        if mismatch:
            logger.info(f"Embedding backend changed ({mismatch}); rebuilding index")
            metadata = await self._reset_storage()
            full = True
        else:
            reason = await self.detector.check(metadata, identity)
            if reason:
                if not auto_repair:
                    await self._record_corruption(metadata, reason)
                    raise IndexCorruptionError(
                        corruption_message(reason), context={"reason": reason}
                    )
                self._state = IndexerState.REPAIRING
                logger.warning(f"⚠ Repairing corrupted index ({reason}): full rebuild")
                metadata = await self._reset_storage()
                repaired = True
                full = True

        resumed = False
        unfinished: set[str] = set()
        if metadata.checkpoint is not None:
            previous = metadata.checkpoint
            if force_reindex:
                logger.info("Discarding checkpoint from interrupted pass (forced reindex)")
            else:
                resumed = True
                full = full or previous.full
                unfinished = set(previous.pending) - set(previous.processed)
                logger.info(
                    f"Resuming interrupted pass {previous.pass_id} "
                    f"({len(previous.processed)} files done, {len(unfinished)} left)"
                )
            metadata.checkpoint = None

        # Scanning
        self._state = IndexerState.SCANNING
        discovery = FileDiscovery(
            self.project_root,
            patterns,
            exclude_patterns,
            max_file_size=self.config.indexing.max_file_size,
        )
        scan = await asyncio.to_thread(discovery.scan)
        for path, reason in scan.skipped.items():
            logger.debug(f"Skipping {path}: {reason}")

        # Diffing
        self._state = IndexerState.DIFFING
        to_process, deleted, unchanged = self._diff(
            scan, metadata, force_reindex, unfinished
        )
        total = len(to_process)
        self._emit(
            progress_callback,
            IndexProgress(0, total, f"Found {len(scan.files)} files, {total} to index", "scanning"),
        )
        logger.info(
            f"Indexing {self.project_root}: {total} to index, {len(unchanged)} unchanged, "
            f"{len(deleted)} deleted, {len(scan.skipped)} skipped"
        )

        # Processing
        self._state = IndexerState.PROCESSING
        metadata.backend = identity.backend
        metadata.model = identity.model
        metadata.dimensions = identity.dimensions
        metadata.corrupted = False
        metadata.corruption_reason = None
        checkpoint = Checkpoint(
            pass_id=uuid.uuid4().hex[:12], pending=list(to_process), full=full
        )
        metadata.checkpoint = checkpoint
        self._save_checkpoint(metadata)

        counters = _PassCounters()
        try:
            for path in deleted:
                await self.store.delete_by_file(path)
                metadata.files.pop(path, None)

            async def process(path: str, index: int) -> None:
                await self._process_file(path, metadata, counters)
                checkpoint.processed.append(path)
                counters.completed += 1
                self._emit(
                    progress_callback,
                    IndexProgress(counters.completed, total, f"Indexed {path}"),
                )
                if counters.completed % self.config.indexing.checkpoint_interval == 0:
                    self._save_checkpoint(metadata)

            await map_with_concurrency(
                to_process, process, self.config.indexing.concurrency
            )
        except (asyncio.CancelledError, LanceContextError):
            self._save_checkpoint(metadata)
            raise

        # Finalizing
        self._state = IndexerState.FINALIZING
        now = utc_now()
        metadata.recount()
        metadata.last_updated = now
        if full:
            metadata.last_full_index = now
        metadata.checkpoint = None
        self.metadata_store.save(metadata)

        self._emit(
            progress_callback,
            IndexProgress(total, total, "Indexing complete", "finalizing"),
        )
        logger.info(
            f"✓ Indexed {counters.files_indexed} files "
            f"({counters.chunks_written} chunks written, {metadata.chunk_count} total)"
        )

        return IndexResult(
            incremental=not full,
            repaired=repaired,
            files_indexed=counters.files_indexed,
            chunks_created=metadata.chunk_count,
            files_deleted=len(deleted),
            files_skipped=len(scan.skipped) + counters.files_skipped,
            files_unchanged=len(unchanged),
            resumed=resumed,
            chunks_written=counters.chunks_written,
        )

    def _diff(
        self,
        scan: ScanResult,
        metadata: IndexMetadata,
        treat_all_modified: bool,
        unfinished: set[str] | None = None,
    ) -> tuple[list[str], list[str], list[str]]:
        """Split scanned files into (to_process, deleted, unchanged).

        Files an interrupted pass left ``unfinished`` are processed whatever
        their hash, and deleted when they vanished from disk meanwhile.
        """
        unfinished = unfinished or set()
        to_process: list[str] = []
        unchanged: list[str] = []

        for path, source in sorted(scan.files.items()):
            record = metadata.files.get(path)
            if record is None:
                source.status = FileChangeType.NEW
            elif (
                treat_all_modified
                or path in unfinished
                or record.hash != source.content_hash
            ):
                source.status = FileChangeType.MODIFIED
            else:
                source.status = FileChangeType.UNCHANGED
                unchanged.append(path)
                continue
            to_process.append(path)

        deleted = sorted((set(metadata.files) | unfinished) - scan.paths)
        return to_process, deleted, unchanged

    async def _process_file(
        self, path: str, metadata: IndexMetadata, counters: _PassCounters
    ) -> None:
        """Chunk, embed and store one file, replacing its previous chunks.

        Read failures skip the file. Embedding and storage failures abort
        the pass.
        """
        try:
            content, content_hash = await self._read_source(path)
        except FileReadError as e:
            logger.warning(f"⚠ Skipping {path}: {e}")
            counters.files_skipped += 1
            return

        chunks = self.chunker.chunk(content, path)
        try:
            if chunks:
                vectors = await self.embedder.embed_batch([c.content for c in chunks])
                model = self.embedder.model
                for chunk, vector in zip(chunks, vectors, strict=True):
                    chunk.embedding = vector
                    chunk.model_version = model

            # A file whose old rows are gone must never diff as unchanged
            metadata.files.pop(path, None)
            await self.store.delete_by_file(path)
            if chunks:
                await self.store.upsert([chunk.to_row() for chunk in chunks])
        except LanceContextError as e:
            logger.error(f"Failed to index {path}: {e}")
            raise IndexingError(
                f"Failed to index {path}: {e}", context={"file": path}
            ) from e

        metadata.files[path] = FileRecord(
            hash=content_hash, chunk_count=len(chunks), last_indexed=utc_now()
        )
        counters.files_indexed += 1
        counters.chunks_written += len(chunks)
        logger.debug(f"Indexed {path}: {len(chunks)} chunks")

    async def _read_source(self, path: str) -> tuple[str, str]:
        full_path = self.project_root / path
        try:
            async with aiofiles.open(full_path, "rb") as f:
                data = await f.read()
        except OSError as e:
            raise FileReadError(f"cannot read file: {e}", context={"file": path}) from e
        try:
            return data.decode("utf-8"), compute_file_hash(data)
        except UnicodeDecodeError as e:
            raise FileReadError(
                f"not valid UTF-8: {e}", context={"file": path}
            ) from e

    def _save_checkpoint(self, metadata: IndexMetadata) -> None:
        metadata.recount()
        self.metadata_store.save(metadata)

    @staticmethod
    def _emit(callback: ProgressCallback | None, progress: IndexProgress) -> None:
        if callback is not None:
            callback(progress)
