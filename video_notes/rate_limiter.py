from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable


@dataclass
class TokenBucket:
    """Sliding-window limiter: at most ``per_minute`` acquisitions per ``window_sec``."""

    per_minute: int
    window_sec: float = 60
    label: str | None = None
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self):
        if self.per_minute <= 0:
            raise ValueError("per_minute must be a positive integer")
        if self.window_sec <= 0:
            raise ValueError("window_sec must be positive")
        self._times: deque[float] = deque()

    def _prune(self, now: float) -> None:
        """Drop timestamps that fall outside the current window."""
        while self._times and now - self._times[0] >= self.window_sec:
            self._times.popleft()

    def try_acquire(self) -> bool:
        now = self.clock()
        self._prune(now)
        if len(self._times) < self.per_minute:
            self._times.append(now)
            return True
        return False

    def wait_time(self) -> float:
        now = self.clock()
        self._prune(now)
        if len(self._times) < self.per_minute:
            return 0.0
        return max(self.window_sec - (now - self._times[0]), 0.0)

    async def acquire(self) -> None:
        """Suspend until a slot is free, then consume it."""
        while not self.try_acquire():
            wait_for = self.wait_time()
            await self.sleep(min(wait_for, 0.5) if wait_for > 0 else 0)

    def utilization(self) -> float:
        self._prune(self.clock())
        return min(len(self._times) / self.per_minute, 1.0)
