from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import uuid
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Awaitable, Callable

from .constants import (
    DEFAULT_DEQUEUE_DELAY_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_QUEUE_KEEP_FINISHED,
    DEFAULT_QUEUE_WORKERS,
)
from .core.types import Priority, ProcessingRequest, ProcessingResponse, QueueItem, QueueItemState

logger = logging.getLogger(__name__)

Handler = Callable[[ProcessingRequest], Awaitable[ProcessingResponse]]


@dataclass(frozen=True)
class QueueStatus:
    length: int
    is_processing: bool
    workers: int = 0

    def to_dict(self) -> dict[str, object]:
        return {"length": self.length, "is_processing": self.is_processing, "workers": self.workers}


@dataclass(frozen=True)
class FinishedItem:
    """What remains of a queue item once it completes or exhausts its retries."""

    id: str
    state: QueueItemState
    retry_count: int
    response: ProcessingResponse | None = None
    error: str | None = None


class PriorityRetryQueue:
    """Background queue ordered by priority, FIFO within a priority, with bounded retries.

    Workers are spawned on enqueue and exit once the queue drains. A failed item
    goes to the back of its priority tier while ``retry_count < max_retries``;
    after that it is marked failed and dropped.

    Live items are released as soon as they reach a terminal state. Only the
    newest ``keep_finished`` terminal records are kept for lookups.
    """

    def __init__(
        self,
        handler: Handler,
        *,
        workers: int = DEFAULT_QUEUE_WORKERS,
        dequeue_delay: float = DEFAULT_DEQUEUE_DELAY_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        keep_finished: int = DEFAULT_QUEUE_KEEP_FINISHED,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if keep_finished < 1:
            raise ValueError("keep_finished must be at least 1")
        self._handler = handler
        self._max_workers = workers
        self._dequeue_delay = max(dequeue_delay, 0.0)
        self._max_retries = max_retries
        self._keep_finished = keep_finished
        self._sleep = sleep

        self._heap: list[tuple[int, int, str]] = []
        self._seq = itertools.count()
        self._items: dict[str, QueueItem] = {}
        self._states: dict[str, QueueItemState] = {}
        self._finished: OrderedDict[str, FinishedItem] = OrderedDict()
        self._workers: set[asyncio.Task[None]] = set()
        self._active = 0
        self._closed = False
        # Most recent dequeues, oldest first.
        self.history: deque[str] = deque(maxlen=keep_finished)

    def __len__(self) -> int:
        return len(self._heap)

    def enqueue(
        self,
        request: ProcessingRequest,
        priority: Priority = Priority.MEDIUM,
        *,
        max_retries: int | None = None,
    ) -> str:
        """Add a request and return its queue item id. Must be called from a running event loop."""
        if self._closed:
            raise RuntimeError("Queue is closed")
        item = QueueItem(
            id=uuid.uuid4().hex,
            request=request,
            priority=priority,
            max_retries=self._max_retries if max_retries is None else max_retries,
        )
        self._items[item.id] = item
        self._push(item)
        logger.info("Queued %s (%s priority) for %s", item.id, priority.value, request.video.video_id)
        self._ensure_workers()
        return item.id

    def status(self) -> QueueStatus:
        live = sum(1 for w in self._workers if not w.done())
        return QueueStatus(length=len(self._heap), is_processing=self._active > 0, workers=live)

    @property
    def pending_count(self) -> int:
        """Items queued or being processed."""
        return len(self._items)

    @property
    def finished_count(self) -> int:
        return len(self._finished)

    def item(self, item_id: str) -> QueueItem:
        """A queued or in-flight item; terminal items are looked up with ``finished``."""
        return self._items[item_id]

    def finished(self, item_id: str) -> FinishedItem | None:
        return self._finished.get(item_id)

    def pop_finished(self, item_id: str) -> FinishedItem | None:
        """Remove and return a terminal record."""
        return self._finished.pop(item_id, None)

    def item_state(self, item_id: str) -> QueueItemState:
        if item_id in self._states:
            return self._states[item_id]
        record = self._finished.get(item_id)
        if record is None:
            raise KeyError(item_id)
        return record.state

    def result(self, item_id: str) -> ProcessingResponse | None:
        record = self._finished.get(item_id)
        return record.response if record else None

    def error(self, item_id: str) -> str | None:
        record = self._finished.get(item_id)
        return record.error if record else None

    async def join(self) -> None:
        """Wait until the queue is empty and no item is being processed."""
        while True:
            pending = [w for w in self._workers if not w.done()]
            if not pending:
                return
            await asyncio.gather(*pending)

    async def close(self) -> None:
        self._closed = True
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()

    def _push(self, item: QueueItem) -> None:
        heapq.heappush(self._heap, (item.priority.rank, next(self._seq), item.id))
        self._states[item.id] = QueueItemState.QUEUED

    def _finish(
        self,
        item: QueueItem,
        state: QueueItemState,
        response: ProcessingResponse | None,
        error: str | None = None,
    ) -> None:
        del self._items[item.id]
        del self._states[item.id]
        self._finished[item.id] = FinishedItem(
            id=item.id,
            state=state,
            retry_count=item.retry_count,
            response=response,
            error=error,
        )
        while len(self._finished) > self._keep_finished:
            evicted, _ = self._finished.popitem(last=False)
            logger.debug("Forgot finished queue item %s", evicted)

    def _ensure_workers(self) -> None:
        loop = asyncio.get_running_loop()
        self._workers = {w for w in self._workers if not w.done()}
        while len(self._workers) < self._max_workers:
            self._workers.add(loop.create_task(self._worker()))

    async def _worker(self) -> None:
        first = True
        while self._heap:
            if not first and self._dequeue_delay:
                await self._sleep(self._dequeue_delay)
            first = False
            if not self._heap:
                break
            _, _, item_id = heapq.heappop(self._heap)
            await self._process(self._items[item_id])

    async def _process(self, item: QueueItem) -> None:
        self._states[item.id] = QueueItemState.PROCESSING
        self.history.append(item.id)
        self._active += 1
        try:
            response = await self._handler(item.request)
            error = None if response.succeeded else (response.error or "processing failed")
        except Exception as exc:
            logger.exception("Queue item %s raised", item.id)
            response, error = None, str(exc)
        finally:
            self._active -= 1

        if error is None:
            self._finish(item, QueueItemState.COMPLETED, response)
            logger.info("Queue item %s completed", item.id)
            return

        if item.retry_count < item.max_retries:
            item.retry_count += 1
            logger.warning(
                "Queue item %s failed (%s); retry %d of %d",
                item.id,
                error,
                item.retry_count,
                item.max_retries,
            )
            self._push(item)
            return

        self._finish(item, QueueItemState.FAILED, response, error)
        logger.error("Queue item %s dropped after %d retries: %s", item.id, item.retry_count, error)
