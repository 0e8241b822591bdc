"""
Single-worker FIFO task queue.

Jobs run strictly one at a time in submission order. ``put`` never blocks;
handler errors are logged and counted, never propagated to the submitter.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from arena_core import get_logger
from arena_core.metrics import task_queue_length

logger = get_logger(__name__)

JobHandler = Callable[[str], Awaitable[None]]


class TaskQueue:
    """FIFO of task ids processed by one worker."""

    def __init__(self, handler: JobHandler, name: str = "tasks") -> None:
        self.name = name
        self._handler = handler
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._active: str | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._closing = False
        self.processed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name=f"{self.name}-worker")
        logger.info("Task queue started", queue=self.name)

    async def stop(self, grace: float = 0.0) -> None:
        """
        Stop the worker. Jobs still waiting stay queued.

        The job being handled gets up to ``grace`` seconds to finish before
        the worker is cancelled.
        """
        if self._worker is None:
            return
        self._closing = True
        if grace > 0 and self._active is not None:
            try:
                await asyncio.wait_for(self._idle.wait(), timeout=grace)
            except asyncio.TimeoutError:
                logger.warning("Active job did not finish in time", queue=self.name, task_id=self._active)
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        self._closing = False
        logger.info("Task queue stopped", queue=self.name, waiting=self._queue.qsize())

    def put(self, task_id: str) -> None:
        self._queue.put_nowait(task_id)
        task_queue_length.set(self._queue.qsize())
        if not self.running:
            self.start()

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def _run(self) -> None:
        while not self._closing:
            task_id = await self._queue.get()
            task_queue_length.set(self._queue.qsize())
            self._active = task_id
            self._idle.clear()
            try:
                await self._handler(task_id)
                self.processed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed += 1
                logger.error(
                    "Task handler failed",
                    queue=self.name,
                    task_id=task_id,
                    error=str(e),
                    exc_info=True,
                )
            finally:
                self._active = None
                self._idle.set()
                self._queue.task_done()

    def stats(self) -> dict[str, Any]:
        return {
            "waiting": self._queue.qsize(),
            "active": 1 if self._active is not None else 0,
            "processed": self.processed,
            "failed": self.failed,
            "running": self.running,
        }
