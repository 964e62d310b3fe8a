"""Tests for syntax-aware chunking."""

import pytest

from lance_context.config.settings import ChunkingConfig
from lance_context.core.chunker import Chunker, chunk_content, split_lines


def _reconstruct(chunks) -> str:
    """Join each chunk's lines that were not already covered by its predecessor."""
    parts = []
    covered = 0
    for chunk in chunks:
        lines = chunk.content.splitlines(keepends=True)
        skip = max(0, covered - chunk.start_line + 1)
        parts.extend(lines[skip:])
        covered = chunk.end_line
    return "".join(parts)


@pytest.fixture
def long_text() -> str:
    return "".join(f"line {i}\n" for i in range(1, 251))


class TestLineWindows:
    """Files without a grammar are split into overlapping windows."""

    def test_windows_bounds(self, long_text):
        chunker = Chunker(ChunkingConfig(max_lines=100, overlap=20))
        chunks = chunker.chunk(long_text, "notes.txt")

        assert [(c.start_line, c.end_line) for c in chunks] == [
            (1, 100),
            (81, 180),
            (161, 250),
        ]
        assert all(c.language == "text" for c in chunks)
        assert all(c.symbol_name is None for c in chunks)

    def test_reconstructs_original(self, long_text):
        chunks = chunk_content(long_text, "notes.txt", config=ChunkingConfig(max_lines=30, overlap=7))
        assert _reconstruct(chunks) == long_text

    def test_overlap_lines_shared_by_neighbours(self, long_text):
        chunks = chunk_content(long_text, "notes.txt", config=ChunkingConfig(max_lines=50, overlap=10))
        for prev, nxt in zip(chunks, chunks[1:]):
            prev_lines = prev.content.splitlines()
            next_lines = nxt.content.splitlines()
            assert prev_lines[-10:] == next_lines[:10]

    def test_small_file_single_chunk(self):
        content = "a\nb\nc\n"
        chunks = chunk_content(content, "notes.txt")
        assert len(chunks) == 1
        assert (chunks[0].start_line, chunks[0].end_line) == (1, 3)
        assert chunks[0].content == content

    def test_no_trailing_newline(self):
        content = "first\nsecond"
        chunks = chunk_content(content, "notes.txt")
        assert chunks[0].end_line == 2
        assert chunks[0].content == content

    @pytest.mark.parametrize("separator", ["\x0c", "\x0b", "\x1c", "\x85", "\u2028"])
    def test_only_newlines_end_lines(self, separator):
        content = f"x = 1{separator}\ny = 2\n"
        chunks = chunk_content(content, "notes.txt")
        assert len(chunks) == 1
        assert (chunks[0].start_line, chunks[0].end_line) == (1, 2)
        assert chunks[0].content == content

    def test_split_lines(self):
        assert split_lines("a\x0cb\r\nc") == ["a\x0cb\r\n", "c"]
        assert split_lines("a\n\n") == ["a\n", "\n"]
        assert split_lines("") == []

    @pytest.mark.parametrize("content", ["", "   \n\t\n"])
    def test_empty_content(self, content):
        assert chunk_content(content, "empty.py") == []


class TestChunkIds:
    def test_ids_are_stable(self, long_text):
        first = chunk_content(long_text, "notes.txt")
        second = chunk_content(long_text, "notes.txt")
        assert [c.id for c in first] == [c.id for c in second]

    def test_ids_depend_on_path(self, long_text):
        a = chunk_content(long_text, "a.txt")
        b = chunk_content(long_text, "b.txt")
        assert a[0].id != b[0].id

    def test_ids_unique_within_file(self, long_text):
        chunks = chunk_content(long_text, "notes.txt", config=ChunkingConfig(max_lines=20, overlap=5))
        ids = [c.id for c in chunks]
        assert len(ids) == len(set(ids))


PYTHON_SOURCE = '''\
import os


def load(path):
    return open(path).read()


class Store:
    def get(self, key):
        return key
'''


class TestPythonChunking:
    """Python files are split at top-level definitions."""

    def test_small_file_merged_into_one_chunk(self):
        chunks = chunk_content(PYTHON_SOURCE, "pkg/store.py")
        assert len(chunks) == 1
        assert chunks[0].language == "python"
        assert chunks[0].content == PYTHON_SOURCE
        # Two symbols merged: no single symbol to report
        assert chunks[0].symbol_name is None

    def test_definitions_become_chunks_when_they_do_not_fit_together(self):
        body = "".join(f"    x{i} = {i}\n" for i in range(12))
        source = f"def first():\n{body}\n\ndef second():\n{body}"
        chunks = chunk_content(source, "mod.py", config=ChunkingConfig(max_lines=14, overlap=2))

        symbols = [(c.symbol_name, c.symbol_type) for c in chunks if c.symbol_name]
        assert ("first", "function") in symbols
        assert ("second", "function") in symbols
        assert _reconstruct(chunks) == source

    def test_decorated_definition(self):
        body = "".join(f"    y{i} = {i}\n" for i in range(12))
        source = f"@cache\ndef cached():\n{body}\n\nclass Holder:\n{body}"
        chunks = chunk_content(source, "dec.py", config=ChunkingConfig(max_lines=15, overlap=2))

        by_name = {c.symbol_name: c for c in chunks if c.symbol_name}
        assert by_name["cached"].symbol_type == "function"
        assert by_name["cached"].start_line == 1
        assert by_name["Holder"].symbol_type == "class"

    def test_oversized_definition_split_with_overlap(self):
        body = "".join(f"    z{i} = {i}\n" for i in range(60))
        source = f"def huge():\n{body}"
        chunks = chunk_content(source, "big.py", config=ChunkingConfig(max_lines=20, overlap=5))

        assert len(chunks) > 1
        assert all(c.symbol_name == "huge" for c in chunks)
        assert all(c.line_count <= 20 for c in chunks)
        assert _reconstruct(chunks) == source


class TestCanParse:
    @pytest.mark.parametrize("path", ["a.py", "b.ts", "c.tsx", "d.go", "e.rs", "F.java"])
    def test_supported(self, path):
        assert Chunker.can_parse(path)

    @pytest.mark.parametrize("path", ["notes.txt", "Makefile", "style.css"])
    def test_unsupported(self, path):
        assert not Chunker.can_parse(path)
