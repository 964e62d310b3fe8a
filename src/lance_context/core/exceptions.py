"""Typed exception hierarchy for lance-context.

Hierarchy
---------
LanceContextError (base)
├── ValidationError        – bad arguments from a caller
│   └── ConfigError        – invalid configuration values
├── ConnectivityError      – backend unreachable, timeouts (retried)
├── EmbeddingError         – embedding generation errors
│   └── BackendError       – backend answered with an error status
├── StorageError           – vector store failures
├── IndexingError          – indexing-time failures (named to avoid shadowing built-in IndexError)
│   └── FileReadError      – a single source file could not be read
├── IndexCorruptionError   – persisted index failed an integrity check
└── SearchError            – search-time failures

Every error carries a ``category`` string used by the tool surface when
rendering ``Error [category]: message`` responses, plus an optional
``context`` dict with structured details.
"""

import os
import traceback
from typing import Any

import orjson


class LanceContextError(Exception):
    """Base exception for lance-context."""

    category = "internal"

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        category: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}
        if category is not None:
            self.category = category


# Convenience alias
LCError = LanceContextError


# ── Caller input ────────────────────────────────────────────────────────


class ValidationError(LanceContextError):
    """Invalid arguments supplied to an operation."""

    category = "validation"


class ConfigError(ValidationError):
    """Configuration values are out of range or inconsistent."""

    pass


# ── Embedding backends ─────────────────────────────────────────────────


class ConnectivityError(LanceContextError):
    """Embedding backend could not be reached (connect error or timeout).

    Always treated as transient by the retry policy.
    """

    category = "connectivity"


class EmbeddingError(LanceContextError):
    """Embedding generation failed."""

    category = "backend"


class BackendError(EmbeddingError):
    """Embedding backend answered with an error status.

    ``status_code`` decides whether the retry policy tries again: 429 and
    5xx are transient, any other 4xx is not.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        if self.status_code is None:
            return False
        return self.status_code == 429 or self.status_code >= 500


# ── Storage / indexing ──────────────────────────────────────────────────


class StorageError(LanceContextError):
    """Vector store operation failed."""

    category = "storage"


class IndexingError(LanceContextError):
    """Indexing operation failed.

    Named ``IndexingError`` (not ``IndexError``) to avoid shadowing
    Python's built-in ``IndexError``.
    """

    category = "indexing"


class FileReadError(IndexingError):
    """A source file could not be read or decoded."""

    category = "filesystem"


class IndexCorruptionError(LanceContextError):
    """Persisted index failed an integrity check."""

    category = "corruption"


# ── Search ──────────────────────────────────────────────────────────────


class SearchError(LanceContextError):
    """Search operation failed."""

    category = "search"


def is_debug_mode() -> bool:
    """Return True when ``LANCE_CONTEXT_DEBUG`` is set to ``1`` or ``true``."""
    value = os.environ.get("LANCE_CONTEXT_DEBUG", "").strip().lower()
    return value in ("1", "true")


def wrap_error(
    message: str,
    category: str,
    cause: BaseException | None = None,
    context: dict[str, Any] | None = None,
) -> LanceContextError:
    """Wrap an arbitrary exception into a categorized ``LanceContextError``.

    ``__cause__`` is set to the original exception so tracebacks chain.

    Args:
        message: Human-readable description of what was being attempted
        category: Error category used when rendering the response
        cause: Underlying exception, if any
        context: Optional structured details

    Returns:
        A new ``LanceContextError`` ready to be raised
    """
    error = LanceContextError(message, context=context, category=category)
    error.__cause__ = cause
    return error


def format_error_response(error: BaseException) -> str:
    """Render an exception as ``Error [category]: message``.

    In debug mode the traceback and any structured context are appended.
    Exceptions outside the hierarchy render as plain ``Error: message``.
    """
    if isinstance(error, LanceContextError):
        text = f"Error [{error.category}]: {error.message}"
        context = error.context
    else:
        text = f"Error: {str(error) or error.__class__.__name__}"
        context = {}

    if is_debug_mode():
        stack = "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )
        text += f"\n\nStack trace:\n{stack}"
        if context:
            details = orjson.dumps(
                context, option=orjson.OPT_INDENT_2, default=str
            ).decode()
            text += f"\n\nContext:\n{details}"

    return text
