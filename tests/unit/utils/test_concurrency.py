"""Tests for bounded-concurrency helpers."""

import asyncio

import pytest

from lance_context.core.exceptions import ValidationError
from lance_context.utils.concurrency import chunk_list, map_with_concurrency


class TestChunkList:
    def test_even_split(self):
        assert chunk_list([1, 2, 3, 4], 2) == [[1, 2], [3, 4]]

    def test_short_last_group(self):
        assert chunk_list([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]

    def test_empty(self):
        assert chunk_list([], 3) == []

    @pytest.mark.parametrize("size", [0, -1])
    def test_invalid_size(self, size):
        with pytest.raises(ValidationError):
            chunk_list([1], size)


@pytest.mark.asyncio
class TestMapWithConcurrency:
    async def test_preserves_order(self):
        async def slow_square(x: int, index: int) -> int:
            await asyncio.sleep((10 - x) * 0.001)
            return x * x

        assert await map_with_concurrency(list(range(10)), slow_square, 4) == [
            x * x for x in range(10)
        ]

    async def test_respects_limit(self):
        in_flight = 0
        peak = 0

        async def track(item: int, index: int) -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.005)
            in_flight -= 1
            return index

        result = await map_with_concurrency(list(range(12)), track, 3)
        assert result == list(range(12))
        assert peak == 3

    async def test_empty(self):
        async def never(item, index):
            raise AssertionError("not called")

        assert await map_with_concurrency([], never, 4) == []

    async def test_error_cancels_remaining(self):
        started: list[int] = []

        async def work(item: int, index: int) -> int:
            started.append(item)
            if item == 1:
                raise RuntimeError("boom")
            await asyncio.sleep(0.05)
            return item

        with pytest.raises(RuntimeError, match="boom"):
            await map_with_concurrency(list(range(20)), work, 2)
        assert len(started) < 20
