"""
Task schemas for the supervisor.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from arena_core import ExecutionMode, TaskPriority, TaskStatus

COLLABORATION_EXECUTOR = "collaboration"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskRequest(BaseModel):
    """Submission of a new task."""
    content: str = Field(min_length=1)
    type: str | None = None
    priority: TaskPriority = TaskPriority.NORMAL
    mode: ExecutionMode = ExecutionMode.SINGLE
    metadata: dict[str, Any] = Field(default_factory=dict)


class TaskUsage(BaseModel):
    """Token usage and cost attributed to a task."""
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    provider: str | None = None
    model: str | None = None
    used_fallback: bool = False
    latency_ms: float = 0.0


class Task(BaseModel):
    """A supervised task."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    type: str
    content: str
    priority: TaskPriority = TaskPriority.NORMAL
    mode: ExecutionMode = ExecutionMode.SINGLE
    status: TaskStatus = TaskStatus.QUEUED
    assigned_executor: str | None = None
    routing_method: str | None = None
    result: str | None = None
    error: str | None = None
    error_code: str | None = None
    usage: TaskUsage | None = None
    cache_hit: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class TaskAdmission(BaseModel):
    """Returned by ``submit``."""
    id: str
    type: str
    assigned_executor: str | None
    status: TaskStatus
    priority: TaskPriority


class TaskResultView(BaseModel):
    """Result query for a task."""
    task_id: str
    status: TaskStatus
    result: str | None = None
    error: str | None = None
    error_code: str | None = None
    usage: TaskUsage | None = None
    cache_hit: bool = False


class CostEntry(BaseModel):
    """One row of the cost ledger."""
    task_id: str
    executor_id: str
    model: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    created_at: datetime = Field(default_factory=utcnow)


class CostSummary(BaseModel):
    """Aggregated cost ledger."""
    total_cost_usd: float = 0.0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    task_count: int = 0
    by_executor: dict[str, float] = Field(default_factory=dict)
