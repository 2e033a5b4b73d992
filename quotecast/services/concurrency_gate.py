"""FIFO admission control for encoder processes."""

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class ConcurrencyGate:
    """Counting semaphore that admits waiters strictly in arrival order.

    release() hands the slot straight to the oldest waiter, so a newcomer
    can never overtake a queued job between release and wake-up.
    """

    def __init__(self, max_concurrent: int = 2):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self._running = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def running(self) -> int:
        return self._running

    @property
    def queued(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    def status(self) -> dict[str, int]:
        return {"running": self._running, "queued": self.queued, "max": self.max_concurrent}

    def would_wait(self) -> bool:
        return self._running >= self.max_concurrent or bool(self._waiters)

    async def acquire(self) -> None:
        if not self._waiters and self._running < self.max_concurrent:
            self._running += 1
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just before cancellation; pass it on
                self.release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def release(self) -> None:
        if self._running <= 0:
            raise RuntimeError("release() called with no running jobs")
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Slot ownership transfers; running count is unchanged
                waiter.set_result(None)
                return
        self._running -= 1

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()
