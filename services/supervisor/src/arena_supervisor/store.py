"""
Task persistence.

``TaskStore`` is the persistence seam of the supervisor; a database-backed
implementation can be plugged in without touching the supervisor.
``InMemoryTaskStore`` is the implementation shipped here. It hands out
copies so callers never mutate stored state by accident.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from arena_core import TaskNotFoundError, TaskStatus

from .models import CostEntry, CostSummary, Task, utcnow


class TaskStore(ABC):
    """Persistence interface for tasks and the cost ledger."""

    @abstractmethod
    async def create(self, task: Task) -> Task:
        """Insert a task. Re-inserting the same id overwrites it."""
        ...

    @abstractmethod
    async def get(self, task_id: str) -> Task | None:
        ...

    @abstractmethod
    async def update(self, task_id: str, **fields: Any) -> Task:
        """
        Update fields of a task.

        Raises:
            TaskNotFoundError: If no task has ``task_id``
        """
        ...

    @abstractmethod
    async def list_tasks(
        self,
        status: TaskStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Task]:
        """Newest first."""
        ...

    @abstractmethod
    async def add_cost(self, entry: CostEntry) -> None:
        ...

    @abstractmethod
    async def cost_summary(self, since: datetime | None = None) -> CostSummary:
        ...


class InMemoryTaskStore(TaskStore):
    """Process-local store."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._costs: list[CostEntry] = []
        self._lock = asyncio.Lock()

    async def create(self, task: Task) -> Task:
        async with self._lock:
            self._tasks[task.id] = task.model_copy(deep=True)
        return task.model_copy(deep=True)

    async def get(self, task_id: str) -> Task | None:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def update(self, task_id: str, **fields: Any) -> Task:
        async with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(f"Task '{task_id}' not found", context={"task_id": task_id})
            updated = task.model_copy(update={**fields, "updated_at": utcnow()}, deep=True)
            self._tasks[task_id] = updated
        return updated.model_copy(deep=True)

    async def list_tasks(
        self,
        status: TaskStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Task]:
        tasks = [
            t for t in self._tasks.values()
            if status is None or t.status == status
        ]
        tasks.sort(key=lambda t: t.created_at, reverse=True)
        return [t.model_copy(deep=True) for t in tasks[offset:offset + limit]]

    async def add_cost(self, entry: CostEntry) -> None:
        async with self._lock:
            self._costs.append(entry.model_copy())

    async def cost_summary(self, since: datetime | None = None) -> CostSummary:
        summary = CostSummary()
        task_ids: set[str] = set()
        for entry in self._costs:
            if since is not None and entry.created_at < since:
                continue
            summary.total_cost_usd += entry.cost_usd
            summary.total_input_tokens += entry.input_tokens
            summary.total_output_tokens += entry.output_tokens
            summary.by_executor[entry.executor_id] = (
                summary.by_executor.get(entry.executor_id, 0.0) + entry.cost_usd
            )
            task_ids.add(entry.task_id)
        summary.task_count = len(task_ids)
        return summary
