"""
Tests for bounded batch execution.

Run with: pytest tests/test_parallel.py -v
"""

import asyncio

import pytest

from reelforge.core.workflow.parallel import run_in_batches


class TestRunInBatches:
    """Tests for run_in_batches."""

    @pytest.mark.asyncio
    async def test_batches_complete_before_next_starts(self):
        events = []
        batch_starts = []
        in_flight = 0
        peak = 0

        async def worker(item, index):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            events.append(("start", index))
            await asyncio.sleep(0.001 * (index % 3))
            events.append(("end", index))
            in_flight -= 1
            return item * 2

        async def on_batch_start(first_index, total):
            batch_starts.append((first_index, total))

        results = await run_in_batches(list(range(10)), 4, worker, on_batch_start)

        assert results == [i * 2 for i in range(10)]
        assert batch_starts == [(0, 10), (4, 10), (8, 10)]
        assert peak == 4

        batches = [range(0, 4), range(4, 8), range(8, 10)]
        for current, following in zip(batches, batches[1:]):
            last_end = max(events.index(("end", i)) for i in current)
            first_start = min(events.index(("start", i)) for i in following)
            assert last_end < first_start

    @pytest.mark.asyncio
    async def test_failure_raised_after_batch_settles(self):
        finished = []

        async def worker(item, index):
            if index == 1:
                raise ValueError("boom")
            await asyncio.sleep(0.001)
            finished.append(index)
            return index

        with pytest.raises(ValueError, match="boom"):
            await run_in_batches(list(range(6)), 3, worker)

        assert sorted(finished) == [0, 2]

    @pytest.mark.asyncio
    async def test_empty_input(self):
        async def worker(item, index):
            return item

        assert await run_in_batches([], 4, worker) == []

    @pytest.mark.asyncio
    async def test_invalid_batch_size(self):
        async def worker(item, index):
            return item

        with pytest.raises(ValueError):
            await run_in_batches([1], 0, worker)
