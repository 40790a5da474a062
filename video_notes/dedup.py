from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestDeduplicator(Generic[T]):
    """Coalesce concurrent computations that share a fingerprint.

    The first caller for a fingerprint starts the computation as a task; later
    callers await the same task and receive the identical result. The entry is
    dropped as soon as the task settles, so a later call starts fresh. When every
    waiter has been cancelled the task itself is cancelled.
    """

    def __init__(self) -> None:
        self._inflight: dict[Hashable, asyncio.Task[T]] = {}
        self._waiters: dict[asyncio.Task[T], int] = {}

    def __len__(self) -> int:
        return len(self._inflight)

    def is_in_flight(self, fingerprint: Hashable) -> bool:
        return fingerprint in self._inflight

    async def submit(self, fingerprint: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._inflight.get(fingerprint)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[fingerprint] = task
            task.add_done_callback(lambda done, key=fingerprint: self._settle(key, done))
        else:
            logger.info("Joining in-flight computation for %s", fingerprint)

        self._waiters[task] = self._waiters.get(task, 0) + 1
        try:
            return await asyncio.shield(task)
        finally:
            self._waiters[task] -= 1
            if self._waiters[task] == 0:
                del self._waiters[task]
                if not task.done():
                    logger.info("All callers abandoned %s; cancelling", fingerprint)
                    task.cancel()

    def _settle(self, fingerprint: Hashable, task: asyncio.Task[T]) -> None:
        if self._inflight.get(fingerprint) is task:
            del self._inflight[fingerprint]
