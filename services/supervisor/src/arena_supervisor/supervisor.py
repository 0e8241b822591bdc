"""
Task supervisor.

Admits tasks, routes them, and drives each one through its lifecycle:

    queued -> running -> completed | failed | cancelled

Tasks are processed one at a time by a FIFO ``TaskQueue``. Before execution
the result cache is consulted, so repeated submissions of the same content
to the same executor complete without a provider call. Cancellation is only
honored while a task is non-terminal, and a cancelled task is never
overwritten by a late result.
"""

import asyncio
import time
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any

from arena_agents import AgentTask, ResilientExecutor
from arena_core import (
    ArenaError,
    CancellationToken,
    EventDispatcher,
    EventListener,
    EventType,
    ExecutionMode,
    ExecutorNotFoundError,
    ShuttingDownError,
    SupervisorSettings,
    TaskNotFoundError,
    TaskStatus,
    get_logger,
    set_correlation_id,
)
from arena_core.metrics import supervisor_tasks_total

from .cache import ResultCache, build_cache_key
from .collaboration import CollaborationPipeline
from .models import (
    COLLABORATION_EXECUTOR,
    CostEntry,
    CostSummary,
    Task,
    TaskAdmission,
    TaskRequest,
    TaskResultView,
    TaskUsage,
)
from .queue import TaskQueue
from .router import TaskRouter
from .store import InMemoryTaskStore, TaskStore

logger = get_logger(__name__)

SUPERVISOR_SOURCE = "supervisor"
USER_CANCEL_REASON = "cancelled"
INTERNAL_ERROR = "INTERNAL_ERROR"


class TaskSupervisor:
    """
    Sequences admission, dedupe and lifecycle of supervised tasks.

    Completion can be observed by polling ``get_task``/``get_task_result``,
    awaiting ``wait_for_task`` or subscribing to lifecycle events.
    """

    def __init__(
        self,
        executors: Mapping[str, ResilientExecutor],
        router: TaskRouter | None = None,
        pipeline: CollaborationPipeline | None = None,
        store: TaskStore | None = None,
        cache: ResultCache | None = None,
        settings: SupervisorSettings | None = None,
        events: EventDispatcher | None = None,
    ) -> None:
        self.settings = settings or SupervisorSettings()
        self.events = events or EventDispatcher()
        self.executors = executors
        self.router = router or TaskRouter(executors)
        self.pipeline = pipeline or CollaborationPipeline(executors, events=self.events)
        self.store = store or InMemoryTaskStore()
        self.cache = cache or ResultCache(
            ttl=self.settings.cache_ttl,
            enabled=self.settings.cache_enabled,
        )
        self.queue = TaskQueue(self.process_task, name="supervisor")

        self._running_tokens: dict[str, CancellationToken] = {}
        self._finished: dict[str, asyncio.Event] = {}
        self._started_at = time.time()
        self._started = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        if self._started:
            return
        for executor in self.executors.values():
            await executor.initialize()
        self.queue.start()
        self._started = True
        self._started_at = time.time()
        logger.info("Supervisor started", executors=list(self.executors))

    async def shutdown(self) -> None:
        """Cancel the running task, let it settle, then stop the queue and every executor."""
        logger.info("Supervisor shutting down", running=len(self._running_tokens))
        for token in list(self._running_tokens.values()):
            token.cancel("shutdown")
        await self.queue.stop(grace=self.settings.shutdown_grace)
        await asyncio.gather(*(executor.shutdown() for executor in self.executors.values()))
        await self.events.drain()
        self._started = False
        logger.info("Supervisor shut down")

    # -------------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------------

    async def submit(self, request: TaskRequest) -> TaskAdmission:
        """
        Admit a task, route it, persist it as queued and enqueue it.

        Never waits for execution.
        """
        routing_method: str | None
        if request.mode == ExecutionMode.COLLABORATIVE:
            executor_id: str | None = COLLABORATION_EXECUTOR
            routing_method = COLLABORATION_EXECUTOR
            task_type = request.type or self.settings.default_task_type
        else:
            decision = self.router.route(AgentTask(content=request.content, type=request.type or ""))
            executor_id = decision.executor_id
            routing_method = decision.method.value
            executor = self.executors.get(executor_id)
            task_type = request.type or (
                executor.type.value if executor else self.settings.default_task_type
            )

        task = await self.store.create(Task(
            type=task_type,
            content=request.content,
            priority=request.priority,
            mode=request.mode,
            assigned_executor=executor_id,
            routing_method=routing_method,
            metadata=request.metadata,
        ))
        logger.info(
            "Task queued",
            task_id=task.id,
            type=task.type,
            executor=executor_id,
            mode=task.mode.value,
        )
        self._emit(EventType.TASK_QUEUED, task_id=task.id, executor=executor_id)
        self.queue.put(task.id)

        return TaskAdmission(
            id=task.id,
            type=task.type,
            assigned_executor=executor_id,
            status=task.status,
            priority=task.priority,
        )

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    async def process_task(self, task_id: str) -> None:
        """Queue handler: run one queued task to a terminal status."""
        task = await self.store.get(task_id)
        if task is None:
            logger.warning("Queued task disappeared", task_id=task_id)
            return
        if task.status != TaskStatus.QUEUED:
            logger.debug("Skipping task that is no longer queued", task_id=task_id, status=task.status.value)
            return

        set_correlation_id(task_id)
        try:
            await self._process(task)
        finally:
            set_correlation_id(None)

    async def _process(self, task: Task) -> None:
        cache_key = build_cache_key(task.type, task.assigned_executor, task.content)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info("Cache hit", task_id=task.id, key=cache_key)
            self._emit(EventType.TASK_CACHE_HIT, task_id=task.id, key=cache_key)
            await self._finish(
                task.id,
                TaskStatus.COMPLETED,
                result=cached["result"],
                usage=TaskUsage.model_validate(cached["usage"]),
                cache_hit=True,
            )
            return

        token = CancellationToken()
        self._running_tokens[task.id] = token
        try:
            await self.store.update(task.id, status=TaskStatus.RUNNING)
            self._emit(EventType.TASK_RUNNING, task_id=task.id, executor=task.assigned_executor)
            try:
                result, usage = await self._execute(task, token)
            except ArenaError as e:
                await self._fail(task, e.message, e.error_code)
                return
            except asyncio.CancelledError:
                # Worker stopped before the execution settled
                await self._fail(
                    task,
                    "Supervisor shut down while the task was running",
                    ShuttingDownError.error_code,
                )
                raise
            except Exception as e:
                logger.exception("Unexpected error while processing task", task_id=task.id)
                await self._fail(task, str(e), INTERNAL_ERROR)
                return
        finally:
            self._running_tokens.pop(task.id, None)

        current = await self.store.get(task.id)
        if current is None or current.status == TaskStatus.CANCELLED:
            logger.info("Discarding result of cancelled task", task_id=task.id)
            return

        if self.settings.cost_tracking:
            await self.store.add_cost(CostEntry(
                task_id=task.id,
                executor_id=task.assigned_executor or "none",
                model=usage.model,
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
                cost_usd=usage.cost_usd,
            ))
        self.cache.set(cache_key, {"result": result, "usage": usage.model_dump()})
        await self._finish(task.id, TaskStatus.COMPLETED, result=result, usage=usage)

    async def _execute(self, task: Task, token: CancellationToken) -> tuple[str, TaskUsage]:
        if task.assigned_executor == COLLABORATION_EXECUTOR:
            outcome = await self.pipeline.execute(
                AgentTask(id=task.id, content=task.content, type=task.type, metadata=task.metadata),
                token=token,
            )
            return outcome.result, TaskUsage(
                input_tokens=outcome.usage.input_tokens,
                output_tokens=outcome.usage.output_tokens,
                cost_usd=outcome.usage.cost_usd,
                latency_ms=outcome.duration_ms,
            )

        executor = self.executors.get(task.assigned_executor or "")
        if executor is None:
            raise ExecutorNotFoundError(
                f"Executor '{task.assigned_executor}' is not registered",
                context={"executor": task.assigned_executor},
            )
        outcome = await executor.execute(
            AgentTask(id=task.id, content=task.content, type=task.type, metadata=task.metadata),
            token=token,
        )
        return outcome.result, TaskUsage(
            input_tokens=outcome.usage.input_tokens,
            output_tokens=outcome.usage.output_tokens,
            cost_usd=outcome.usage.cost_usd,
            provider=outcome.provider,
            model=outcome.model,
            used_fallback=outcome.used_fallback,
            latency_ms=outcome.latency_ms,
        )

    async def _fail(self, task: Task, message: str, error_code: str) -> None:
        current = await self.store.get(task.id)
        if current is None or current.status == TaskStatus.CANCELLED:
            return
        logger.error("Task failed", task_id=task.id, executor=task.assigned_executor, error_code=error_code, error=message[:200])
        await self._finish(task.id, TaskStatus.FAILED, error=message, error_code=error_code)

    async def _finish(self, task_id: str, status: TaskStatus, **fields: Any) -> Task:
        task = await self.store.update(task_id, status=status, **fields)
        supervisor_tasks_total.labels(status=status.value).inc()
        event_type = {
            TaskStatus.COMPLETED: EventType.TASK_COMPLETED,
            TaskStatus.FAILED: EventType.TASK_FAILED,
            TaskStatus.CANCELLED: EventType.TASK_CANCELLED,
        }[status]
        self._emit(
            event_type,
            task_id=task_id,
            executor=task.assigned_executor,
            cache_hit=task.cache_hit,
            error_code=task.error_code,
        )
        finished = self._finished.pop(task_id, None)
        if finished is not None:
            finished.set()
        return task

    # -------------------------------------------------------------------------
    # Queries and control
    # -------------------------------------------------------------------------

    async def cancel_task(self, task_id: str) -> bool:
        """
        Cancel a queued or running task.

        Returns:
            False if the task had already reached a terminal status

        Raises:
            TaskNotFoundError: If no task has ``task_id``
        """
        task = await self._require(task_id)
        if task.status.is_terminal:
            return False

        await self._finish(task_id, TaskStatus.CANCELLED)
        token = self._running_tokens.get(task_id)
        if token is not None:
            token.cancel(USER_CANCEL_REASON)
        logger.info("Task cancelled", task_id=task_id, was_running=token is not None)
        return True

    async def get_task(self, task_id: str) -> Task | None:
        return await self.store.get(task_id)

    async def list_tasks(
        self,
        status: TaskStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Task]:
        return await self.store.list_tasks(status=status, limit=limit, offset=offset)

    async def get_task_result(self, task_id: str) -> TaskResultView:
        task = await self._require(task_id)
        return TaskResultView(
            task_id=task.id,
            status=task.status,
            result=task.result,
            error=task.error,
            error_code=task.error_code,
            usage=task.usage,
            cache_hit=task.cache_hit,
        )

    async def wait_for_task(self, task_id: str, timeout: float | None = None) -> Task:
        """
        Wait until the task reaches a terminal status.

        Raises:
            TaskNotFoundError: If no task has ``task_id``
            asyncio.TimeoutError: If ``timeout`` seconds pass first
        """
        task = await self._require(task_id)
        if task.status.is_terminal:
            return task
        finished = self._finished.setdefault(task_id, asyncio.Event())
        # The task may have finished while the event did not exist yet
        task = await self._require(task_id)
        if task.status.is_terminal:
            self._finished.pop(task_id, None)
            return task
        await asyncio.wait_for(finished.wait(), timeout=timeout)
        return await self._require(task_id)

    def subscribe(
        self,
        listener: EventListener,
        event_types: Iterable[EventType] | None = None,
    ) -> Callable[[], None]:
        """Subscribe to lifecycle events. Returns an unsubscribe callable."""
        return self.events.subscribe(listener, event_types)

    def get_queue_stats(self) -> dict[str, Any]:
        return self.queue.stats()

    def get_cache_stats(self) -> dict[str, Any]:
        return self.cache.stats()

    def invalidate_cache(self, pattern: str | None = None) -> int:
        return self.cache.invalidate(pattern)

    async def get_costs(self, since: datetime | None = None) -> CostSummary:
        return await self.store.cost_summary(since)

    def get_status(self) -> dict[str, Any]:
        return {
            "status": "running" if self._started else "stopped",
            "uptime_seconds": round(time.time() - self._started_at, 1),
            "queue": self.get_queue_stats(),
            "cache": self.get_cache_stats(),
            "routing": self.router.get_stats(),
            "executors": {
                executor_id: executor.get_health()
                for executor_id, executor in self.executors.items()
            },
        }

    async def _require(self, task_id: str) -> Task:
        task = await self.store.get(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task '{task_id}' not found", context={"task_id": task_id})
        return task

    def _emit(self, event_type: EventType, **payload: Any) -> None:
        self.events.emit(event_type, source=SUPERVISOR_SOURCE, **payload)
