import asyncio
from typing import Any, Awaitable, Callable, List, Sequence, TypeVar

from .errors import PoolCancelledError
from .logs import console


T = TypeVar("T")


class BoundedPool:
    """Run an ordered list of tasks with at most `limit` in flight.

    Results come back indexed like the input. A task that raises leaves its
    exception in its slot instead of aborting siblings; slots never dispatched
    because of `cancel()` hold a `PoolCancelledError`. Only non-`Exception`
    base exceptions (interrupts, process crashes) escape `map`.
    """

    def __init__(self, limit: int, name: str = "pool") -> None:
        if limit < 1:
            raise ValueError(f"pool limit must be >= 1, got {limit}")
        self.limit = limit
        self.name = name
        self.in_flight = 0
        self.peak_in_flight = 0
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop dispatching. Tasks already running are left to finish."""
        if not self._cancelled.is_set():
            console.log(f"{self.name}: cancel requested, draining in-flight tasks")
        self._cancelled.set()

    async def map(self, items: Sequence[T], mapper: Callable[[T, int], Awaitable[Any]]) -> List[Any]:
        results: List[Any] = [None] * len(items)
        next_index = 0

        async def worker() -> None:
            nonlocal next_index
            while True:
                if next_index >= len(items):
                    return
                my = next_index
                next_index += 1
                if self._cancelled.is_set():
                    results[my] = PoolCancelledError(my)
                    continue
                self.in_flight += 1
                self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
                try:
                    results[my] = await mapper(items[my], my)
                except Exception as e:
                    results[my] = e
                finally:
                    self.in_flight -= 1

        workers = [asyncio.create_task(worker()) for _ in range(min(self.limit, len(items)))]
        if workers:
            await asyncio.gather(*workers)
        return results


async def map_limit(
    items: Sequence[T],
    limit: int,
    mapper: Callable[[T, int], Awaitable[Any]],
    name: str = "pool",
) -> List[Any]:
    return await BoundedPool(limit, name=name).map(items, mapper)
