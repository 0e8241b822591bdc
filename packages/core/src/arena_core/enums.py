"""
Shared enumerations for the agent arena.

These enums are used across packages to keep status strings and event
names consistent.
"""

from enum import Enum


class TaskStatus(str, Enum):
    """Supervised task status."""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)


class TaskPriority(str, Enum):
    """Task priority (informational, the queue is strictly FIFO)."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class ExecutionMode(str, Enum):
    """How the supervisor executes a task."""
    SINGLE = "single"
    COLLABORATIVE = "collaborative"


class ExecutorType(str, Enum):
    """Closed set of executor roles."""
    RESEARCH = "research"
    CODING = "coding"
    CREATIVE = "creative"
    ANALYSIS = "analysis"
    RECRUITER = "recruiter"
    SALES = "sales"


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing fast
    HALF_OPEN = "half_open"  # Admitting a trial call


class RoutingMethod(str, Enum):
    """Which rule of the router produced a decision."""
    TYPE = "type"
    KEYWORDS = "keywords"
    LOAD = "load"
    DEFAULT = "default"


class StreamChunkType(str, Enum):
    """Kinds of items yielded by an execution stream."""
    CHUNK = "chunk"
    METADATA = "metadata"
    ERROR = "error"


class EventType(str, Enum):
    """Lifecycle events delivered to observers."""
    # Executor
    TASK_START = "task.start"
    TASK_COMPLETE = "task.complete"
    TASK_ERROR = "task.error"
    TASK_RETRY = "task.retry"
    TASK_REJECTED = "task.rejected"
    PROVIDER_FAILURE = "provider.failure"
    CIRCUIT_TRANSITION = "circuit.transition"
    CIRCUIT_RESET = "circuit.reset"
    STREAM_START = "stream.start"
    STREAM_COMPLETE = "stream.complete"
    STREAM_ERROR = "stream.error"
    STREAM_CANCELLED = "stream.cancelled"
    BATCH_QUEUED = "batch.queued"
    BATCH_PROCESSING = "batch.processing"
    BATCH_COMPLETE = "batch.complete"
    FEEDBACK_RECORDED = "feedback.recorded"
    FEEDBACK_ERROR = "feedback.error"
    PROMPT_OPTIMIZED = "prompt.optimized"
    ANALYTICS_RESET = "analytics.reset"
    AGENT_INITIALIZED = "agent.initialized"
    AGENT_SHUTTING_DOWN = "agent.shutting_down"
    AGENT_SHUTDOWN = "agent.shutdown"

    # Pipeline
    PIPELINE_PHASE = "pipeline.phase"

    # Supervisor
    TASK_QUEUED = "task.queued"
    TASK_RUNNING = "task.running"
    TASK_COMPLETED = "task.completed"
    TASK_FAILED = "task.failed"
    TASK_CANCELLED = "task.cancelled"
    TASK_CACHE_HIT = "task.cache_hit"
