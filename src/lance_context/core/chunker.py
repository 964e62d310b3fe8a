"""Syntax-aware chunking of source files into bounded, overlapping line ranges.

Top-level declarations found by tree-sitter are used as chunk boundaries.
Small neighbouring segments are merged up to ``max_lines`` and oversized
ones are split into windows sharing ``overlap`` lines. Files with no
grammar, or whose parse raises, fall back to plain line windows.
"""

from dataclasses import dataclass
from pathlib import PurePosixPath

from loguru import logger

from ..config.defaults import (
    EXPORT_NODE_TYPES,
    SYMBOL_NODE_TYPES,
    get_language_from_extension,
)
from ..config.settings import ChunkingConfig
from .models import CodeChunk


@dataclass
class _Segment:
    """Contiguous 1-indexed inclusive line range, optionally one symbol."""

    start: int
    end: int
    symbol_name: str | None = None
    symbol_type: str | None = None

    @property
    def size(self) -> int:
        return self.end - self.start + 1


def split_lines(content: str) -> list[str]:
    """Split on newline characters only, keeping line endings.

    Unlike ``str.splitlines`` this never breaks on form feeds, vertical tabs
    or Unicode separators, so line numbers agree with tree-sitter rows.
    """
    lines = content.split("\n")
    last = lines.pop()
    result = [line + "\n" for line in lines]
    if last:
        result.append(last)
    return result


class Chunker:
    """Splits file content into ordered ``CodeChunk`` lists.

    Parsers are created lazily per language and cached for the lifetime of
    the chunker. A language whose grammar fails to load is remembered so
    the lookup is not retried for every file.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()
        self._parsers: dict[str, object] = {}
        self._unavailable: set[str] = set()

    @staticmethod
    def can_parse(file_path: str) -> bool:
        """Whether a syntax-aware grammar is registered for this file type."""
        language = get_language_from_extension(PurePosixPath(file_path).suffix)
        return language in SYMBOL_NODE_TYPES

    def chunk(
        self, content: str, file_path: str, language: str | None = None
    ) -> list[CodeChunk]:
        """Chunk one file's content.

        Args:
            content: Decoded file text
            file_path: Project-relative path used for chunk ids
            language: Language tag; derived from the extension when omitted

        Returns:
            Chunks in line order. Empty or whitespace-only content yields [].
        """
        if not content.strip():
            return []

        if language is None:
            language = get_language_from_extension(PurePosixPath(file_path).suffix)

        # TSX needs its own grammar but shares the typescript language tag
        grammar = language
        if language == "typescript" and file_path.lower().endswith(".tsx"):
            grammar = "tsx"

        lines = split_lines(content)
        segments = self._syntax_segments(content, len(lines), grammar, file_path)
        if segments is None:
            segments = [_Segment(1, len(lines))]

        chunks = []
        for segment in self._merge_and_split(segments):
            text = "".join(lines[segment.start - 1 : segment.end])
            chunks.append(
                CodeChunk(
                    file_path=file_path,
                    start_line=segment.start,
                    end_line=segment.end,
                    content=text,
                    language=language,
                    symbol_name=segment.symbol_name,
                    symbol_type=segment.symbol_type,
                )
            )
        return chunks

    # ── tree-sitter ─────────────────────────────────────────────────────

    def _get_parser(self, language: str):
        if language in self._parsers:
            return self._parsers[language]
        if language in self._unavailable or language not in SYMBOL_NODE_TYPES:
            return None
        try:
            from tree_sitter_language_pack import get_parser

            parser = get_parser(language)
            self._parsers[language] = parser
            logger.debug(f"Tree-sitter parser initialized for {language}")
            return parser
        except Exception as e:
            logger.debug(f"No tree-sitter grammar for {language}: {e}, using line windows")
            self._unavailable.add(language)
            return None

    def _syntax_segments(
        self, content: str, line_count: int, language: str, file_path: str
    ) -> list[_Segment] | None:
        """Segments covering every line, split at top-level declarations.

        Returns None when no parser is available or parsing raised.
        """
        parser = self._get_parser(language)
        if parser is None:
            return None

        try:
            tree = parser.parse(content.encode("utf-8"))
        except Exception as e:
            logger.warning(f"Tree-sitter parsing failed for {file_path}: {e}")
            return None

        node_types = SYMBOL_NODE_TYPES[language]
        segments: list[_Segment] = []
        cursor = 1

        for node in tree.root_node.children:
            symbol = self._symbol_for(node, node_types)
            if symbol is None:
                continue
            start = max(node.start_point[0] + 1, cursor)
            end = min(node.end_point[0] + 1, line_count)
            if start > end:
                continue
            if start > cursor:
                segments.append(_Segment(cursor, start - 1))
            segments.append(_Segment(start, end, symbol[0], symbol[1]))
            cursor = end + 1

        if cursor <= line_count:
            segments.append(_Segment(cursor, line_count))
        return segments

    @staticmethod
    def _symbol_for(node, node_types: dict[str, str]) -> tuple[str | None, str] | None:
        """(name, kind) when the node is a top-level declaration."""
        target = node
        if node.type in EXPORT_NODE_TYPES:
            inner = node.child_by_field_name("declaration") or node.child_by_field_name(
                "definition"
            )
            if inner is None:
                inner = next(
                    (c for c in node.named_children if c.type in node_types), None
                )
            if inner is None:
                return None
            target = inner

        kind = node_types.get(target.type)
        if kind is None:
            return None
        return _node_name(target), kind

    # ── sizing ──────────────────────────────────────────────────────────

    def _merge_and_split(self, segments: list[_Segment]) -> list[_Segment]:
        max_lines = self.config.max_lines
        result: list[_Segment] = []
        group: list[_Segment] = []

        def flush() -> None:
            if not group:
                return
            symbols = [s for s in group if s.symbol_type is not None]
            merged = _Segment(group[0].start, group[-1].end)
            if len(symbols) == 1:
                merged.symbol_name = symbols[0].symbol_name
                merged.symbol_type = symbols[0].symbol_type
            result.append(merged)
            group.clear()

        for segment in segments:
            if segment.size > max_lines:
                flush()
                result.extend(self._windows(segment))
                continue
            if group and segment.end - group[0].start + 1 > max_lines:
                flush()
            group.append(segment)
        flush()
        return result

    def _windows(self, segment: _Segment) -> list[_Segment]:
        """Fixed-size windows over a segment, consecutive ones sharing overlap lines."""
        max_lines = self.config.max_lines
        step = max_lines - self.config.overlap
        windows = []
        start = segment.start
        while True:
            end = min(start + max_lines - 1, segment.end)
            windows.append(
                _Segment(start, end, segment.symbol_name, segment.symbol_type)
            )
            if end >= segment.end:
                break
            start += step
        return windows


def _node_name(node) -> str | None:
    """Best-effort declaration name for a tree-sitter node."""
    for field in ("name", "type"):
        child = node.child_by_field_name(field)
        if child is not None and child.type in (
            "identifier",
            "type_identifier",
            "property_identifier",
            "field_identifier",
        ):
            return child.text.decode("utf-8", errors="replace")

    # lexical_declaration / type_declaration wrap a declarator or spec
    for child in node.named_children:
        if child.type in ("variable_declarator", "type_spec", "function_definition"):
            name = child.child_by_field_name("name")
            if name is not None:
                return name.text.decode("utf-8", errors="replace")
    return None


def chunk_content(
    content: str,
    file_path: str,
    language: str | None = None,
    config: ChunkingConfig | None = None,
) -> list[CodeChunk]:
    """Chunk content with a throwaway ``Chunker``."""
    return Chunker(config).chunk(content, file_path, language)
