"""Bounded-concurrency helpers for async work over lists."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from ..core.exceptions import ValidationError

T = TypeVar("T")
R = TypeVar("R")


def chunk_list(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into consecutive groups of ``size`` (last group may be short)."""
    if size < 1:
        raise ValidationError(f"Chunk size must be at least 1, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


async def map_with_concurrency(
    items: Sequence[T],
    fn: Callable[[T, int], Awaitable[R]],
    concurrency: int = 10,
) -> list[R]:
    """Apply ``fn(item, index)`` with at most ``concurrency`` calls in flight.

    Workers pull the next index from a shared cursor, so a slow item never
    holds back the rest. Results keep input order. The first exception
    cancels the remaining workers and propagates.

    Args:
        items: Items to process
        fn: Async function receiving the item and its index
        concurrency: Maximum concurrent calls

    Returns:
        Results in the same order as items
    """
    results: list[R] = [None] * len(items)  # type: ignore[list-item]
    cursor = 0

    async def worker() -> None:
        nonlocal cursor
        while cursor < len(items):
            index = cursor
            cursor += 1
            results[index] = await fn(items[index], index)

    workers = [
        asyncio.create_task(worker()) for _ in range(min(max(concurrency, 1), len(items)))
    ]
    try:
        await asyncio.gather(*workers)
    except BaseException:
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise
    return results
