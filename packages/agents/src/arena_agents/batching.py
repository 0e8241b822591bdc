"""
Per-executor request batching.

Submitted tasks wait in a FIFO until the queue reaches ``max_size`` or
``max_wait`` seconds have passed since the oldest unflushed item,
whichever comes first. A flush dispatches up to ``max_size`` items in
FIFO order, ``concurrency`` at a time; every item resolves or rejects on
its own. Each item runs under its own cancellation token: a submitter that
goes away takes its item out of the queue, or cancels it mid-dispatch.
"""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from arena_core import CancellationToken, EventType, get_logger
from arena_core.metrics import batch_flushes_total, batch_size

from .models import AgentTask, ExecutionResult

logger = get_logger(__name__)

Dispatch = Callable[[AgentTask, CancellationToken], Awaitable[ExecutionResult]]
EventHook = Callable[..., Any]

SUBMITTER_GONE_REASON = "submitter_cancelled"


@dataclass
class BatchItem:
    id: str
    task: AgentTask
    future: "asyncio.Future[ExecutionResult]"
    enqueued_at: float
    token: CancellationToken


class BatchQueue:
    """Size- and time-triggered batch dispatcher."""

    def __init__(
        self,
        name: str,
        dispatch: Dispatch,
        max_size: int = 10,
        max_wait: float = 1.0,
        concurrency: int = 3,
        on_event: EventHook | None = None,
    ) -> None:
        self.name = name
        self.max_size = max_size
        self.max_wait = max_wait
        self.concurrency = concurrency
        self._dispatch = dispatch
        self._on_event = on_event
        self._items: deque[BatchItem] = deque()
        self._timer: asyncio.TimerHandle | None = None
        self._processing = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._tasks: set[asyncio.Task[None]] = set()
        self.flush_count = 0

    @property
    def pending(self) -> int:
        return len(self._items)

    @property
    def processing(self) -> bool:
        return self._processing

    async def submit(
        self,
        task: AgentTask,
        token: CancellationToken | None = None,
    ) -> ExecutionResult:
        """
        Queue ``task`` and wait for its own result.

        Cancelling ``token`` cancels the item; cancelling the awaiting
        caller drops it from the queue or cancels its dispatch.
        """
        loop = asyncio.get_running_loop()
        item = BatchItem(
            id=task.id,
            task=task,
            future=loop.create_future(),
            enqueued_at=loop.time(),
            token=token.child() if token is not None else CancellationToken(),
        )
        self._items.append(item)
        self._emit(EventType.BATCH_QUEUED, task_id=task.id, queue_size=len(self._items))

        if len(self._items) >= self.max_size:
            self._trigger_flush()
        elif self._timer is None and not self._processing:
            self._arm_timer(self.max_wait)

        try:
            return await item.future
        except asyncio.CancelledError:
            self._abandon(item)
            raise

    def _abandon(self, item: BatchItem) -> None:
        item.token.cancel(SUBMITTER_GONE_REASON)
        try:
            self._items.remove(item)
        except ValueError:
            # Already taken by a flush; the token stops its dispatch
            return
        logger.debug("Batch item abandoned", executor=self.name, task_id=item.id)
        if not self._items:
            self._cancel_timer()

    async def flush(self) -> None:
        """Dispatch everything currently queued and wait for it."""
        self._cancel_timer()
        while self._items or self._processing:
            if self._processing:
                await self._idle.wait()
                continue
            await self._process()
        self._cancel_timer()

    def _arm_timer(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._trigger_flush)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _trigger_flush(self) -> None:
        self._cancel_timer()
        if self._processing:
            # The running flush re-checks the queue when it finishes
            return
        task = asyncio.ensure_future(self._process())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process(self) -> None:
        if self._processing or not self._items:
            return
        self._processing = True
        self._idle.clear()
        try:
            taken = [self._items.popleft() for _ in range(min(self.max_size, len(self._items)))]
            batch = []
            for item in taken:
                if item.future.done():
                    continue
                if item.token.cancelled:
                    item.future.set_exception(item.token.error())
                    continue
                batch.append(item)
            if batch:
                await self._dispatch_batch(batch)
        finally:
            self._processing = False
            self._idle.set()
        self._schedule_remaining()

    async def _dispatch_batch(self, batch: list[BatchItem]) -> None:
        self.flush_count += 1
        batch_flushes_total.labels(executor=self.name).inc()
        batch_size.labels(executor=self.name).observe(len(batch))
        self._emit(EventType.BATCH_PROCESSING, batch_size=len(batch))

        succeeded = 0
        for start in range(0, len(batch), self.concurrency):
            chunk = batch[start:start + self.concurrency]
            outcomes = await asyncio.gather(
                *(self._dispatch(item.task, item.token) for item in chunk),
                return_exceptions=True,
            )
            for item, outcome in zip(chunk, outcomes):
                if item.future.done():
                    continue
                if isinstance(outcome, asyncio.CancelledError):
                    item.future.cancel()
                elif isinstance(outcome, BaseException):
                    item.future.set_exception(outcome)
                else:
                    item.future.set_result(outcome)
                    succeeded += 1

        logger.debug(
            "Batch processed",
            executor=self.name,
            size=len(batch),
            succeeded=succeeded,
        )
        self._emit(
            EventType.BATCH_COMPLETE,
            batch_size=len(batch),
            succeeded=succeeded,
            failed=len(batch) - succeeded,
        )

    def _schedule_remaining(self) -> None:
        if not self._items:
            return
        if len(self._items) >= self.max_size:
            self._trigger_flush()
        elif self._timer is None:
            loop = asyncio.get_running_loop()
            age = loop.time() - self._items[0].enqueued_at
            self._arm_timer(max(0.0, self.max_wait - age))

    def _emit(self, event_type: EventType, **payload: Any) -> None:
        if self._on_event is not None:
            self._on_event(event_type, **payload)
