"""Bounded fan-out for per-asset work and a cooperative stop flag."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Sequence

T = TypeVar("T")
K = TypeVar("K")


class CancellationToken:
    """Stop flag polled before each new unit of work; running work is never interrupted."""

    __slots__ = ("_reason", "_set")

    def __init__(self) -> None:
        self._set = False
        self._reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        if not self._set:
            self._reason = reason
        self._set = True

    @property
    def is_cancelled(self) -> bool:
        return self._set

    @property
    def reason(self) -> str | None:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self._set:
            raise asyncio.CancelledError(self._reason or "operation cancelled")


class BoundedSemaphore:
    """``asyncio.Semaphore`` that also records how many permits were ever held at once."""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self.limit = limit
        self.in_use = 0
        self.peak = 0
        self._semaphore = asyncio.Semaphore(limit)

    @asynccontextmanager
    async def permit(self) -> AsyncIterator[None]:
        async with self._semaphore:
            self.in_use += 1
            self.peak = max(self.peak, self.in_use)
            try:
                yield
            finally:
                self.in_use -= 1


@dataclass(slots=True)
class WorkerPool(Generic[T]):
    """Apply an async function to many items, at most ``max_concurrency`` at a time."""

    max_concurrency: int
    cancel_token: CancellationToken | None = None
    _semaphore: BoundedSemaphore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self._semaphore = BoundedSemaphore(self.max_concurrency)

    @property
    def peak_concurrency(self) -> int:
        return self._semaphore.peak

    async def map_ordered(
        self,
        func: Callable[[K], Awaitable[T]],
        items: Sequence[K],
    ) -> list[T]:
        """Results in input order. The first failure cancels the items still running."""

        self._check_cancelled()
        tasks = [asyncio.ensure_future(self._call(func, item)) for item in items]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _call(self, func: Callable[[K], Awaitable[T]], item: K) -> T:
        async with self._semaphore.permit():
            # The coroutine is only created once it is certain to be awaited.
            self._check_cancelled()
            return await func(item)

    def _check_cancelled(self) -> None:
        if self.cancel_token is not None:
            self.cancel_token.raise_if_cancelled()


__all__ = ["BoundedSemaphore", "CancellationToken", "WorkerPool"]
