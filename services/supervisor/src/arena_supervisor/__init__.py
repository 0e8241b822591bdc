"""
Arena Supervisor - Task routing, collaboration and supervision.

Admits tasks, routes them to resilient executors (or the four-phase
collaboration pipeline), dedupes repeated work through a result cache and
tracks every task through its lifecycle.
"""

from .bootstrap import create_supervisor
from .cache import ResultCache, build_cache_key, normalize_content
from .collaboration import (
    CollaborationPipeline,
    CollaborationResult,
    Subtask,
    SubtaskOutcome,
    fallback_subtasks,
    parse_subtasks,
)
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
from .router import RoutingDecision, RoutingScore, TaskRouter
from .store import InMemoryTaskStore, TaskStore
from .supervisor import TaskSupervisor

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "create_supervisor",
    # Supervision
    "TaskSupervisor",
    "TaskQueue",
    "ResultCache",
    "build_cache_key",
    "normalize_content",
    "TaskStore",
    "InMemoryTaskStore",
    # Routing
    "TaskRouter",
    "RoutingDecision",
    "RoutingScore",
    # Collaboration
    "CollaborationPipeline",
    "CollaborationResult",
    "Subtask",
    "SubtaskOutcome",
    "fallback_subtasks",
    "parse_subtasks",
    # Models
    "COLLABORATION_EXECUTOR",
    "Task",
    "TaskRequest",
    "TaskAdmission",
    "TaskResultView",
    "TaskUsage",
    "CostEntry",
    "CostSummary",
]
