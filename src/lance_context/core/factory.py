"""Component wiring for one project.

Every consumer (tool handlers, CLI, tests) gets its components from
``create_components``; nothing is shared through module-level state.
"""

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from ..config.settings import ProjectConfig
from .backends import EmbeddingBackend
from .embeddings import BatchEmbeddingDispatcher, EmbeddingCache, create_embedding_backend
from .index_metadata import IndexMetadataStore
from .indexer import CodeIndexer
from .search import HybridSearchEngine
from .storage import VectorStore
from .vectors_backend import LanceVectorStore

LANCE_DIR_NAME = "lance"
CACHE_DIR_NAME = "embedding_cache"


@dataclass
class ComponentBundle:
    """Initialized components for one project."""

    config: ProjectConfig
    backend: EmbeddingBackend
    store: VectorStore
    dispatcher: BatchEmbeddingDispatcher
    metadata_store: IndexMetadataStore
    indexer: CodeIndexer
    search_engine: HybridSearchEngine

    async def close(self) -> None:
        await self.store.close()
        await self.backend.close()

    async def __aenter__(self) -> "ComponentBundle":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


async def create_components(
    project_root: Path,
    config: ProjectConfig | None = None,
    backend: EmbeddingBackend | None = None,
    store: VectorStore | None = None,
    use_cache: bool = True,
) -> ComponentBundle:
    """Build and initialize the component graph for a project.

    The backend is initialized first because some backends only learn
    their vector dimension at that point, and the store schema needs it.

    Args:
        project_root: Project root directory
        config: Project configuration (read from the environment when None)
        backend: Embedding backend (selected from config when None)
        store: Vector store (LanceDB under the index directory when None)
        use_cache: Cache embeddings on disk under the index directory

    Returns:
        ComponentBundle ready for use

    Raises:
        ConfigError: If the backend is misconfigured
        ConnectivityError: If the backend cannot be reached
        StorageError: If the store cannot be opened
    """
    project_root = Path(project_root).resolve()
    config = config or ProjectConfig.from_env(project_root)

    backend = backend or create_embedding_backend(config.embedding)
    await backend.initialize()
    logger.debug(
        f"Embedding backend ready: {backend.name} "
        f"({backend.get_model()}, {backend.get_dimensions()} dims)"
    )

    if store is None:
        store = LanceVectorStore(
            config.index_dir / LANCE_DIR_NAME, vector_dim=backend.get_dimensions()
        )
    await store.initialize()

    cache = EmbeddingCache(config.index_dir / CACHE_DIR_NAME) if use_cache else None
    dispatcher = BatchEmbeddingDispatcher(
        backend,
        batch_size=config.embedding.batch_size,
        concurrency=config.embedding.concurrency,
        cache=cache,
    )
    metadata_store = IndexMetadataStore(config.index_dir)

    return ComponentBundle(
        config=config,
        backend=backend,
        store=store,
        dispatcher=dispatcher,
        metadata_store=metadata_store,
        indexer=CodeIndexer(
            config, store, dispatcher, metadata_store=metadata_store
        ),
        search_engine=HybridSearchEngine(
            store,
            dispatcher,
            config.search,
            project_root=project_root,
            metadata_store=metadata_store,
        ),
    )
