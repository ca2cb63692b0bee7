"""Bounded-parallelism task execution."""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConcurrencyLimiter:
    """Admit at most ``max_concurrency`` running tasks, queueing the rest FIFO.

    Every submitted task eventually runs, and its result or exception is
    returned to (raised in) the submitting caller.

    Usage:
        limiter = ConcurrencyLimiter(3)
        results = await asyncio.gather(*(limiter.execute(lambda r=r: work(r)) for r in records))
    """

    def __init__(self, max_concurrency: int, *, timeout: float | None = None):
        """Initialize the limiter.

        Args:
            max_concurrency: Maximum number of tasks in flight
            timeout: Optional per-task timeout in seconds

        Raises:
            ValueError: If ``max_concurrency`` is less than 1
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self.timeout = timeout
        self._running = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def running(self) -> int:
        return self._running

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    async def _acquire(self) -> None:
        if self._running < self.max_concurrency and not self._waiters:
            self._running += 1
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just before cancellation, pass it on
                self._release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Hand the slot directly to the next waiter; running count is unchanged
                waiter.set_result(None)
                return
        self._running -= 1

    async def execute(self, task: Callable[[], Awaitable[T]]) -> T:
        """Run ``task()`` once a slot is free and return its result."""
        await self._acquire()
        try:
            if self.timeout is not None:
                return await asyncio.wait_for(task(), timeout=self.timeout)
            return await task()
        finally:
            self._release()
