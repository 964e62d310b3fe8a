"""Glob matching with ``**`` support for project-relative POSIX paths."""

import re
from functools import lru_cache


@lru_cache(maxsize=512)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Translate a glob into an anchored regex.

    ``**/`` matches zero or more directories, ``/**`` matches everything
    below, ``*`` and ``?`` never cross a ``/``.
    """
    pattern = pattern.replace("\\", "/")
    regex = re.escape(pattern)
    regex = regex.replace(r"\*\*/", "(?:.*/)?")
    regex = regex.replace(r"/\*\*", "(?:/.*)?")
    regex = regex.replace(r"\*\*", ".*")
    regex = regex.replace(r"\*", "[^/]*")
    regex = regex.replace(r"\?", "[^/]")
    return re.compile(f"^{regex}$")


def matches_glob(path: str, pattern: str) -> bool:
    """Check if a relative path matches a glob pattern.

    Patterns without a ``/`` match against the file name alone, so ``*.py``
    selects Python files at any depth.
    """
    path = path.replace("\\", "/")
    if "/" not in pattern and "**" not in pattern:
        path = path.rsplit("/", 1)[-1]
    return compile_glob(pattern).match(path) is not None


def matches_any(path: str, patterns: list[str]) -> bool:
    return any(matches_glob(path, pattern) for pattern in patterns)


def directory_excluded(rel_dir: str, exclude_patterns: list[str]) -> bool:
    """Whether an exclude pattern of the form ``<dir-glob>/**`` covers a directory."""
    for pattern in exclude_patterns:
        if not pattern.endswith("/**"):
            continue
        # Anchored like the file-level match, never by basename
        if compile_glob(pattern[:-3] or "**").match(rel_dir) is not None:
            return True
    return False
