"""Caller-facing operations for lance-context."""

from .handlers import ToolHandlers, ToolResponse, format_search_results

__all__ = ["ToolHandlers", "ToolResponse", "format_search_results"]
