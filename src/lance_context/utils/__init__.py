"""Utility helpers for lance-context."""

from .concurrency import chunk_list, map_with_concurrency

__all__ = ["chunk_list", "map_with_concurrency"]
