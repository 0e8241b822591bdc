"""
Arena Agents - Resilient executors for the agent arena.

Each executor is one role (research, coding, creative, analysis, recruiter,
sales) bound to a primary and a fallback completion provider and wrapped in:
- circuit breaker and token bucket admission
- retry with exponential backoff and jitter
- cancellable streaming and batching
- bounded history, feedback and analytics
"""

from .batching import BatchQueue
from .capability import keyword_score, score_capability
from .context import ExecutionContext
from .executor import ResilientExecutor, hash_prompt
from .feedback import FeedbackStore, OptimalPrompt
from .history import HistoryEntry, TaskHistory
from .models import AgentTask, ExecutionResult, StreamChunk, Usage
from .registry import build_executors
from .roles import (
    ANALYSIS,
    CODING,
    CREATIVE,
    DEFAULT_ROLES,
    RECRUITER,
    RESEARCH,
    SALES,
    TYPE_ALIASES,
    ExecutorRole,
    FocusRule,
    ProviderRef,
    resolve_type,
)
from .streaming import ExecutionStream

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Executor
    "ResilientExecutor",
    "ExecutionContext",
    "ExecutionStream",
    "BatchQueue",
    "build_executors",
    "hash_prompt",
    # Models
    "AgentTask",
    "ExecutionResult",
    "StreamChunk",
    "Usage",
    # Roles
    "ExecutorRole",
    "FocusRule",
    "ProviderRef",
    "DEFAULT_ROLES",
    "TYPE_ALIASES",
    "RESEARCH",
    "CODING",
    "CREATIVE",
    "ANALYSIS",
    "RECRUITER",
    "SALES",
    "resolve_type",
    # Scoring
    "keyword_score",
    "score_capability",
    # History and feedback
    "TaskHistory",
    "HistoryEntry",
    "FeedbackStore",
    "OptimalPrompt",
]
