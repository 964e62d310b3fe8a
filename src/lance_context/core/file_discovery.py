"""Project scanning: pattern matching, hashing and binary detection."""

import hashlib
import os
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from ..config.defaults import (
    BINARY_SNIFF_BYTES,
    MAX_FILE_SIZE_BYTES,
    get_language_from_extension,
)
from ..utils.globs import directory_excluded, matches_any
from .models import SourceFile


def compute_file_hash(data: bytes) -> str:
    """SHA-256 hex digest of raw file bytes."""
    return hashlib.sha256(data).hexdigest()


def is_binary(data: bytes) -> bool:
    """Treat content with a NUL byte in its first 8 KiB as binary."""
    return b"\x00" in data[:BINARY_SNIFF_BYTES]


@dataclass
class ScanResult:
    files: dict[str, SourceFile] = field(default_factory=dict)
    skipped: dict[str, str] = field(default_factory=dict)

    @property
    def paths(self) -> set[str]:
        return set(self.files)


class FileDiscovery:
    """Finds indexable files under a project root.

    Paths are reported relative to the root with forward slashes. Excluded
    directories are pruned during the walk rather than filtered afterwards.
    """

    def __init__(
        self,
        project_root: Path,
        patterns: list[str],
        exclude_patterns: list[str],
        max_file_size: int = MAX_FILE_SIZE_BYTES,
    ) -> None:
        self.project_root = project_root
        self.patterns = patterns
        self.exclude_patterns = exclude_patterns
        self.max_file_size = max_file_size

    def should_index(self, rel_path: str) -> bool:
        return matches_any(rel_path, self.patterns) and not matches_any(
            rel_path, self.exclude_patterns
        )

    def iter_candidates(self):
        """Yield relative paths matching include patterns and not excluded."""
        root = self.project_root
        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = Path(dirpath).relative_to(root).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir

            dirnames[:] = sorted(
                d
                for d in dirnames
                if not directory_excluded(
                    f"{rel_dir}/{d}" if rel_dir else d, self.exclude_patterns
                )
            )

            for filename in sorted(filenames):
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if self.should_index(rel_path):
                    yield rel_path

    def scan(self) -> ScanResult:
        """Walk the project and hash every indexable file.

        Oversized, binary and unreadable files are recorded in
        ``ScanResult.skipped`` with a reason and otherwise ignored.
        """
        result = ScanResult()
        for rel_path in self.iter_candidates():
            full_path = self.project_root / rel_path
            try:
                size = full_path.stat().st_size
                if size > self.max_file_size:
                    result.skipped[rel_path] = f"file too large ({size} bytes)"
                    continue
                data = full_path.read_bytes()
            except OSError as e:
                logger.warning(f"⚠ Cannot read {rel_path}: {e}")
                result.skipped[rel_path] = f"unreadable: {e}"
                continue

            if is_binary(data):
                result.skipped[rel_path] = "binary content"
                continue

            result.files[rel_path] = SourceFile(
                path=rel_path,
                content_hash=compute_file_hash(data),
                language=get_language_from_extension(full_path.suffix),
                size=size,
            )

        logger.debug(
            f"Scanned {len(result.files)} files ({len(result.skipped)} skipped) "
            f"under {self.project_root}"
        )
        return result
