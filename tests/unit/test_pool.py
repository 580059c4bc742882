"""
Unit tests for the bounded worker pool.
"""

import asyncio
import random

import pytest

from variantmatrix.errors import PoolCancelledError
from variantmatrix.pool import BoundedPool, map_limit


class InFlightProbe:
    """Mapper that records the maximum number of concurrently running calls."""

    def __init__(self, seed: int = 7):
        self.current = 0
        self.peak = 0
        self._rng = random.Random(seed)

    async def __call__(self, item, index):
        self.current += 1
        self.peak = max(self.peak, self.current)
        try:
            await asyncio.sleep(self._rng.uniform(0, 0.005))
            return item * 10
        finally:
            self.current -= 1


class TestConcurrencyLimit:

    @pytest.mark.parametrize("limit,count", [(1, 5), (2, 9), (3, 3), (4, 20), (8, 3)])
    def test_never_exceeds_limit(self, limit, count):
        probe = InFlightProbe()
        results = asyncio.run(map_limit(list(range(count)), limit, probe))
        assert probe.peak <= limit
        assert results == [i * 10 for i in range(count)]

    def test_reaches_limit_when_enough_work(self):
        probe = InFlightProbe()
        pool = BoundedPool(3)
        asyncio.run(pool.map(list(range(12)), probe))
        assert pool.peak_in_flight == 3
        assert probe.peak == 3

    def test_rejects_zero_limit(self):
        with pytest.raises(ValueError):
            BoundedPool(0)

    def test_empty_input(self):
        assert asyncio.run(map_limit([], 4, InFlightProbe())) == []


class TestResultIndexing:

    def test_results_follow_input_order_not_completion(self):
        # Earlier items sleep longer, so they complete last.
        async def mapper(item, index):
            await asyncio.sleep((5 - index) * 0.002)
            return f"r{item}"

        results = asyncio.run(map_limit([0, 1, 2, 3, 4], 5, mapper))
        assert results == ["r0", "r1", "r2", "r3", "r4"]

    def test_failure_stays_in_its_slot(self):
        async def mapper(item, index):
            if item == 2:
                raise RuntimeError("boom")
            return item

        results = asyncio.run(map_limit([0, 1, 2, 3], 2, mapper))
        assert results[0] == 0 and results[1] == 1 and results[3] == 3
        assert isinstance(results[2], RuntimeError)

    def test_mapper_receives_index(self):
        async def mapper(item, index):
            return (item, index)

        results = asyncio.run(map_limit(["a", "b", "c"], 2, mapper))
        assert results == [("a", 0), ("b", 1), ("c", 2)]


class TestCancellation:

    def test_cancel_stops_dispatch_but_lets_in_flight_finish(self):
        pool = BoundedPool(2)
        finished = []

        async def mapper(item, index):
            if item == 1:
                pool.cancel()
            await asyncio.sleep(0.005)
            finished.append(item)
            return item

        results = asyncio.run(pool.map(list(range(6)), mapper))
        # items 0 and 1 were dispatched before cancel and completed normally
        assert results[0] == 0 and results[1] == 1
        assert sorted(finished) == [0, 1]
        for r in results[2:]:
            assert isinstance(r, PoolCancelledError)
        assert len(results) == 6
        assert pool.cancelled

    def test_cancel_before_map_dispatches_nothing(self):
        pool = BoundedPool(3)
        pool.cancel()

        async def mapper(item, index):
            raise AssertionError("should not run")

        results = asyncio.run(pool.map([1, 2], mapper))
        assert all(isinstance(r, PoolCancelledError) for r in results)
