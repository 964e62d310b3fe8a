"""Tool handlers: argument parsing, invocation and response formatting.

Each handler takes the raw argument dict a caller supplied, validates it,
runs the operation on the project's components and renders a text
response. Failures never escape a handler; they come back as an error
response rendered by ``format_error_response``.
"""

from dataclasses import dataclass
from typing import Any

import orjson
from loguru import logger

from ..core.clustering import ClusteringResult, list_concepts
from ..core.exceptions import ValidationError, format_error_response
from ..core.factory import ComponentBundle
from ..core.indexer import ProgressCallback
from ..core.models import IndexStatus, SearchResult

DEFAULT_LIMIT = 10


@dataclass
class ToolResponse:
    text: str
    is_error: bool = False


# ── argument parsing ────────────────────────────────────────────────────


def _string(args: dict[str, Any], key: str) -> str | None:
    value = args.get(key)
    return value if isinstance(value, str) else None


def _string_list(args: dict[str, Any], key: str) -> list[str] | None:
    value = args.get(key)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return value
    return None


def _bool(args: dict[str, Any], key: str, default: bool) -> bool:
    value = args.get(key)
    return value if isinstance(value, bool) else default


def _int(args: dict[str, Any], key: str) -> int | None:
    value = args.get(key)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _number(args: dict[str, Any], key: str) -> float | None:
    value = args.get(key)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


@dataclass
class IndexCodebaseArgs:
    patterns: list[str] | None = None
    exclude_patterns: list[str] | None = None
    force_reindex: bool = False
    auto_repair: bool = False


def parse_index_codebase_args(args: dict[str, Any] | None) -> IndexCodebaseArgs:
    args = args or {}
    return IndexCodebaseArgs(
        patterns=_string_list(args, "patterns"),
        exclude_patterns=_string_list(args, "exclude_patterns"),
        force_reindex=_bool(args, "force_reindex", False),
        auto_repair=_bool(args, "auto_repair", False),
    )


@dataclass
class SearchCodeArgs:
    query: str
    limit: int = DEFAULT_LIMIT
    path_pattern: str | None = None
    languages: list[str] | None = None


def parse_search_code_args(args: dict[str, Any] | None) -> SearchCodeArgs:
    """Validate search_code arguments.

    Raises:
        ValidationError: If ``query`` is missing or empty
    """
    args = args or {}
    query = _string(args, "query") or ""
    if not query.strip():
        raise ValidationError("query is required", context={"tool": "search_code"})

    limit = _int(args, "limit")
    return SearchCodeArgs(
        query=query,
        limit=DEFAULT_LIMIT if limit is None else limit,
        path_pattern=_string(args, "path_pattern"),
        languages=_string_list(args, "languages"),
    )


@dataclass
class SearchSimilarArgs:
    code: str | None = None
    filepath: str | None = None
    start_line: int | None = None
    end_line: int | None = None
    limit: int = DEFAULT_LIMIT
    threshold: float | None = None
    exclude_self: bool = True


def parse_search_similar_args(args: dict[str, Any] | None) -> SearchSimilarArgs:
    """Validate search_similar arguments.

    Raises:
        ValidationError: If neither ``code`` nor ``filepath`` is given
    """
    args = args or {}
    code = _string(args, "code")
    filepath = _string(args, "filepath")
    if not code and not filepath:
        raise ValidationError(
            "Either code or filepath must be provided",
            context={"tool": "search_similar"},
        )

    limit = _int(args, "limit")
    return SearchSimilarArgs(
        code=code,
        filepath=filepath,
        start_line=_int(args, "start_line"),
        end_line=_int(args, "end_line"),
        limit=DEFAULT_LIMIT if limit is None else limit,
        threshold=_number(args, "threshold"),
        exclude_self=args.get("exclude_self") is not False,
    )


def parse_list_concepts_args(args: dict[str, Any] | None) -> int | None:
    """Return the requested cluster count, if any.

    Raises:
        ValidationError: If ``num_clusters`` is not a positive integer
    """
    num_clusters = _int(args or {}, "num_clusters")
    if num_clusters is not None and num_clusters < 1:
        raise ValidationError(
            f"num_clusters must be positive, got {num_clusters}",
            context={"tool": "list_concepts"},
        )
    return num_clusters


# ── formatting ──────────────────────────────────────────────────────────


def format_search_results(results: list[SearchResult]) -> str:
    if not results:
        return "No results found."

    blocks = []
    for i, result in enumerate(results, 1):
        header = f"## Result {i}: {result.location}"
        if result.symbol_name:
            type_label = f" ({result.symbol_type})" if result.symbol_type else ""
            header += f"\n**Symbol:** `{result.symbol_name}`{type_label}"
        blocks.append(f"{header}\n```{result.language}\n{result.content}\n```")
    return "\n\n".join(blocks)


def format_index_status(status: IndexStatus) -> str:
    """Status as JSON, prefixed with a warning and recovery steps when corrupted."""
    text = orjson.dumps(status.to_dict(), option=orjson.OPT_INDENT_2).decode()
    if status.corrupted:
        text = (
            "**WARNING: Index corruption detected!**\n"
            f"Reason: {status.corruption_reason}\n"
            "\nTo repair, either:\n"
            "1. Run `index_codebase` with `auto_repair: true`\n"
            "2. Run `clear_index` followed by `index_codebase`\n\n" + text
        )
    return text


def format_concepts(result: ClusteringResult) -> str:
    if not result.clusters:
        return "No concepts found. Run index_codebase first."

    lines = [
        f"Found {result.cluster_count} concepts "
        f"(silhouette score {result.silhouette:.3f})"
    ]
    for cluster in result.clusters:
        lines.append(f"\n## Concept {cluster.id}: {cluster.label} ({cluster.size} chunks)")
        if cluster.keywords:
            lines.append(f"**Keywords:** {', '.join(cluster.keywords)}")
        if cluster.representative_locations:
            lines.append("**Representative chunks:**")
            lines.extend(f"- {loc}" for loc in cluster.representative_locations)
    return "\n".join(lines)


# ── handlers ────────────────────────────────────────────────────────────


class ToolHandlers:
    """The operations exposed to callers, bound to one project's components.

    Example:
        async with await create_components(project_root) as components:
            handlers = ToolHandlers(components)
            response = await handlers.search_code({"query": "rate limiter"})
    """

    def __init__(
        self,
        components: ComponentBundle,
        progress_callback: ProgressCallback | None = None,
    ):
        """Initialize tool handlers.

        Args:
            components: Initialized project components
            progress_callback: Receives indexing progress events
        """
        self.components = components
        self.progress_callback = progress_callback

    def _error(self, tool: str, error: Exception) -> ToolResponse:
        logger.error(f"{tool} failed: {error}")
        if hasattr(error, "context") and isinstance(error.context, dict):
            error.context.setdefault("tool", tool)
        return ToolResponse(format_error_response(error), is_error=True)

    async def index_codebase(self, args: dict[str, Any] | None = None) -> ToolResponse:
        try:
            parsed = parse_index_codebase_args(args)
            result = await self.components.indexer.index_codebase(
                patterns=parsed.patterns,
                exclude_patterns=parsed.exclude_patterns,
                force_reindex=parsed.force_reindex,
                auto_repair=parsed.auto_repair,
                progress_callback=self.progress_callback,
            )
        except Exception as e:
            return self._error("index_codebase", e)

        if result.repaired:
            mode = "Repaired (corruption detected)"
        elif result.incremental:
            mode = "Incremental update"
        else:
            mode = "Full reindex"
        return ToolResponse(
            f"{mode}: Indexed {result.files_indexed} files, "
            f"total {result.chunks_created} chunks."
        )

    async def get_index_status(self, args: dict[str, Any] | None = None) -> ToolResponse:
        try:
            status = await self.components.indexer.get_status()
        except Exception as e:
            return self._error("get_index_status", e)
        return ToolResponse(format_index_status(status))

    async def clear_index(self, args: dict[str, Any] | None = None) -> ToolResponse:
        try:
            await self.components.indexer.clear_index()
        except Exception as e:
            return self._error("clear_index", e)
        return ToolResponse("Index cleared.")

    async def search_code(self, args: dict[str, Any] | None = None) -> ToolResponse:
        try:
            parsed = parse_search_code_args(args)
            results = await self.components.search_engine.search(
                parsed.query,
                limit=parsed.limit,
                path_pattern=parsed.path_pattern,
                languages=parsed.languages,
            )
        except Exception as e:
            return self._error("search_code", e)
        return ToolResponse(format_search_results(results))

    async def search_similar(self, args: dict[str, Any] | None = None) -> ToolResponse:
        try:
            parsed = parse_search_similar_args(args)
            results = await self.components.search_engine.search_similar(
                code=parsed.code,
                file_path=parsed.filepath,
                start_line=parsed.start_line,
                end_line=parsed.end_line,
                limit=parsed.limit,
                threshold=parsed.threshold,
                exclude_self=parsed.exclude_self,
            )
        except Exception as e:
            return self._error("search_similar", e)
        return ToolResponse(format_search_results(results))

    async def list_concepts(self, args: dict[str, Any] | None = None) -> ToolResponse:
        try:
            num_clusters = parse_list_concepts_args(args)
            result = await list_concepts(self.components.store, num_clusters)
        except Exception as e:
            return self._error("list_concepts", e)
        return ToolResponse(format_concepts(result))
