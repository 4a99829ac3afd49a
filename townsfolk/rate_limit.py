"""Shared gate for outbound text-generation calls.

Every call in the process passes through one ``ConcurrencyGate``: at most
``max_concurrent`` calls are in flight, and consecutive call starts are
spaced by at least ``min_interval_seconds`` globally. Waiters are released in
arrival order: since Python 3.11 ``asyncio.Semaphore`` no longer lets a new
caller take a freed slot ahead of queued ones, and ``asyncio.Lock`` is FIFO.

Usage:
    gate = ConcurrencyGate(max_concurrent=3, min_interval_seconds=0.2)

    async with gate.slot():
        reply = await provider_call(...)
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")


class ConcurrencyGate:
    """Bounded-concurrency limiter with a global minimum start interval.

    Args:
        max_concurrent: Ceiling on simultaneously running calls
        min_interval_seconds: Minimum gap between two call starts
        clock: Monotonic time source (seconds), injectable for tests
        sleep: Coroutine used to wait out the spacing, injectable for tests
    """

    def __init__(
        self,
        max_concurrent: int = 3,
        min_interval_seconds: float = 0.2,
        *,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be at least 1, got {max_concurrent}")
        if min_interval_seconds < 0:
            raise ValueError(
                f"min_interval_seconds must be non-negative, got {min_interval_seconds}"
            )

        self.max_concurrent = max_concurrent
        self.min_interval_seconds = min_interval_seconds
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep

        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._spacing_lock = asyncio.Lock()
        self._last_start: Optional[float] = None
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        """Number of calls currently holding a slot."""
        return self._in_flight

    async def _wait_for_spacing(self) -> None:
        async with self._spacing_lock:
            if self._last_start is not None:
                elapsed = self._clock() - self._last_start
                remaining = self.min_interval_seconds - elapsed
                if remaining > 0:
                    await self._sleep(remaining)
            self._last_start = self._clock()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one concurrency slot for the duration of the block."""
        async with self._semaphore:
            await self._wait_for_spacing()
            self._in_flight += 1
            try:
                yield
            finally:
                self._in_flight -= 1

    async def run(self, factory: Callable[[], Awaitable[T]]) -> T:
        """Run ``factory()`` inside a slot and return its result."""
        async with self.slot():
            return await factory()


__all__ = ["ConcurrencyGate"]
