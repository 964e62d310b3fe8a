"""Hybrid search: vector similarity re-ranked with keyword matching."""

import re
from pathlib import Path

import aiofiles
from loguru import logger

from ..config.defaults import CANDIDATE_MULTIPLIER, MIN_CANDIDATES
from ..config.settings import SearchConfig
from ..utils.globs import matches_glob
from .chunker import split_lines
from .embeddings import BatchEmbeddingDispatcher
from .exceptions import LanceContextError, SearchError, ValidationError
from .index_metadata import IndexMetadataStore
from .models import SearchResult
from .storage import StoredRow, VectorStore

# Query tokens this short carry no signal ("a", "of", "to")
MIN_TERM_LENGTH = 3


def _query_terms(query: str) -> list[str]:
    return [term for term in query.lower().split() if len(term) >= MIN_TERM_LENGTH]


def calculate_keyword_score(query: str, content: str, file_path: str = "") -> float:
    """Score how well a chunk matches the query's words.

    Each term adds 1 when it appears anywhere in the content and 0.5 when it
    appears in the file path. A whole-word occurrence in the original text
    adds 0.5 to a separate bonus, capped at 0.5 overall.

    Args:
        query: Search query
        content: Chunk text
        file_path: Chunk file path

    Returns:
        Score in [0, 1]; 0 when the query has no usable terms
    """
    terms = _query_terms(query)
    if not terms:
        return 0.0

    content_lower = content.lower()
    path_lower = file_path.lower()
    match_count = 0.0
    exact_bonus = 0.0

    for term in terms:
        if term in content_lower:
            match_count += 1
            if re.search(rf"\b{re.escape(term)}\b", content, re.IGNORECASE):
                exact_bonus += 0.5
        if term in path_lower:
            match_count += 0.5

    n = len(terms)
    return min(1.0, match_count / n + min(0.5, exact_bonus / n))


def combine_scores(
    semantic: float, keyword: float, semantic_weight: float, keyword_weight: float
) -> float:
    """Weighted sum of the two scores, clamped to [0, 1].

    Weights are used as given; they are not required to sum to 1.
    """
    combined = semantic_weight * semantic + keyword_weight * keyword
    return min(1.0, max(0.0, combined))


class HybridSearchEngine:
    """Search over the chunk index.

    Example:
        engine = HybridSearchEngine(store, dispatcher, config.search, project_root)
        results = await engine.search("token bucket rate limiting", limit=5)
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: BatchEmbeddingDispatcher,
        config: SearchConfig | None = None,
        project_root: Path | None = None,
        metadata_store: IndexMetadataStore | None = None,
    ) -> None:
        """Initialize the search engine.

        Args:
            store: Initialized vector store
            embedder: Dispatcher used to embed queries
            config: Ranking weights and default limit
            project_root: Root used to resolve file regions for search_similar
            metadata_store: When given, searches fail fast if no index was built
        """
        self.store = store
        self.embedder = embedder
        self.config = config or SearchConfig()
        self.project_root = project_root or Path.cwd()
        self.metadata_store = metadata_store

    @staticmethod
    def candidate_count(limit: int) -> int:
        return max(limit * CANDIDATE_MULTIPLIER, MIN_CANDIDATES)

    def _require_index(self) -> None:
        if self.metadata_store is None:
            return
        if not self.metadata_store.load().indexed:
            raise SearchError(
                "No index found for this project. Run index_codebase first.",
                context={"project_root": str(self.project_root)},
            )

    async def _embed_query(self, text: str) -> list[float]:
        try:
            return await self.embedder.embed(text)
        except LanceContextError:
            raise
        except Exception as e:
            raise SearchError(f"Failed to embed query: {e}") from e

    async def search(
        self,
        query: str,
        limit: int | None = None,
        path_pattern: str | None = None,
        languages: list[str] | None = None,
    ) -> list[SearchResult]:
        """Run a hybrid search.

        Args:
            query: Natural-language or code query
            limit: Maximum number of results
            path_pattern: Glob the result file paths must match
            languages: Language tags to restrict results to

        Returns:
            Results ordered by combined score, best first

        Raises:
            ValidationError: If the query is empty or limit is not positive
            SearchError: If no index exists or the store query fails
        """
        if not query or not query.strip():
            raise ValidationError("query is required")
        limit = self.config.default_limit if limit is None else limit
        if limit < 1:
            raise ValidationError(f"limit must be positive, got {limit}")

        self._require_index()
        vector = await self._embed_query(query)
        filters = {"language": languages} if languages else None
        candidates = await self.store.query(vector, self.candidate_count(limit), filters)
        candidates = self._filter_path(candidates, path_pattern)

        scored: list[SearchResult] = []
        for row in candidates:
            keyword = calculate_keyword_score(query, row.content, row.file_path)
            score = combine_scores(
                row.similarity,
                keyword,
                self.config.semantic_weight,
                self.config.keyword_weight,
            )
            scored.append(self._to_result(row, score, keyword))

        # sorted() is stable: ties keep the store's similarity order
        ranked = sorted(scored, key=lambda r: r.score, reverse=True)[:limit]
        for rank, result in enumerate(ranked, 1):
            result.rank = rank

        logger.debug(
            f"Search '{query}': {len(candidates)} candidates, returning {len(ranked)}"
        )
        return ranked

    async def search_similar(
        self,
        code: str | None = None,
        file_path: str | None = None,
        start_line: int | None = None,
        end_line: int | None = None,
        limit: int | None = None,
        threshold: float | None = None,
        exclude_self: bool = True,
    ) -> list[SearchResult]:
        """Find chunks similar to a snippet or to a region of an indexed file.

        Results are ranked by vector similarity alone.

        Args:
            code: Snippet to match
            file_path: Project-relative file to read the snippet from
            start_line: First line of the region (1-indexed, whole file when None)
            end_line: Last line of the region (inclusive)
            limit: Maximum number of results
            threshold: Minimum similarity in [0, 1]
            exclude_self: Drop the chunk located exactly at the origin region

        Raises:
            ValidationError: On missing input, bad line range or threshold
            SearchError: If no index exists or the file cannot be read
        """
        if not code and not file_path:
            raise ValidationError("Either code or filepath must be provided")
        limit = self.config.default_limit if limit is None else limit
        if limit < 1:
            raise ValidationError(f"limit must be positive, got {limit}")
        if threshold is not None and not 0.0 <= threshold <= 1.0:
            raise ValidationError(f"threshold must be between 0 and 1, got {threshold}")

        origin: tuple[str, int, int] | None = None
        if code:
            snippet = code
        else:
            snippet, start, end = await self._read_region(file_path, start_line, end_line)
            origin = (file_path.replace("\\", "/"), start, end)

        self._require_index()
        vector = await self._embed_query(snippet)
        candidates = await self.store.query(vector, self.candidate_count(limit))

        results: list[SearchResult] = []
        for row in candidates:
            if exclude_self and origin is not None and (
                (row.file_path, row.start_line, row.end_line) == origin
            ):
                continue
            if threshold is not None and row.similarity < threshold:
                continue
            results.append(self._to_result(row, row.similarity, 0.0))
            if len(results) == limit:
                break

        for rank, result in enumerate(results, 1):
            result.rank = rank
        return results

    async def _read_region(
        self, file_path: str, start_line: int | None, end_line: int | None
    ) -> tuple[str, int, int]:
        """Read lines ``start_line..end_line`` of a project file."""
        full_path = self.project_root / file_path
        try:
            async with aiofiles.open(full_path, encoding="utf-8", newline="") as f:
                content = await f.read()
        except FileNotFoundError as e:
            raise ValidationError(f"File not found: {file_path}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise SearchError(f"Failed to read {file_path}: {e}") from e

        lines = split_lines(content)
        start = 1 if start_line is None else start_line
        end = len(lines) if end_line is None else end_line
        if start < 1 or end < start or end > len(lines):
            raise ValidationError(
                f"Invalid line range {start}-{end} for {file_path} "
                f"({len(lines)} lines)"
            )

        region = "".join(lines[start - 1 : end])
        if not region.strip():
            raise ValidationError(f"Lines {start}-{end} of {file_path} are empty")
        return region, start, end

    @staticmethod
    def _filter_path(rows: list[StoredRow], path_pattern: str | None) -> list[StoredRow]:
        if not path_pattern:
            return rows
        return [row for row in rows if matches_glob(row.file_path, path_pattern)]

    @staticmethod
    def _to_result(row: StoredRow, score: float, keyword: float) -> SearchResult:
        return SearchResult(
            chunk_id=row.chunk_id,
            file_path=row.file_path,
            start_line=row.start_line,
            end_line=row.end_line,
            content=row.content,
            language=row.language,
            score=score,
            semantic_score=row.similarity,
            keyword_score=keyword,
            symbol_name=row.symbol_name,
            symbol_type=row.symbol_type,
        )
