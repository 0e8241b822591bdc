"""
Arena Core - Shared foundation for the agent arena.

This package provides:
- Structured logging and settings
- Error taxonomy and shared enums
- Resilience primitives (circuit breaker, token bucket, backoff, cancellation)
- Lifecycle event delivery
- Completion provider abstraction and pricing
"""

from .cancellation import CancellationToken
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from .config import (
    ExecutorSettings,
    PipelineSettings,
    RouterSettings,
    Settings,
    SupervisorSettings,
    get_settings,
    reload_settings,
)
from .enums import (
    CircuitState,
    EventType,
    ExecutionMode,
    ExecutorType,
    RoutingMethod,
    StreamChunkType,
    TaskPriority,
    TaskStatus,
)
from .events import EventDispatcher, EventListener, LifecycleEvent
from .exceptions import (
    AdmissionError,
    ArenaError,
    CircuitOpenError,
    CollaborationError,
    ConfigurationError,
    ExecutionCancelledError,
    ExecutionTimeoutError,
    ExecutorNotFoundError,
    NonRetryableError,
    ParseError,
    ProviderError,
    RateLimitExceededError,
    ShuttingDownError,
    TaskNotFoundError,
)
from .llm_provider import (
    CompletionMessage,
    CompletionProvider,
    CompletionResult,
    LLMProviderType,
    ProviderBinding,
)
from .logging import configure_logging, get_correlation_id, get_logger, set_correlation_id
from .pricing import UsageCost, calculate_cost
from .rate_limiter import TokenBucket
from .retry import compute_backoff, is_non_retryable

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Logging
    "configure_logging",
    "get_logger",
    "get_correlation_id",
    "set_correlation_id",
    # Config
    "Settings",
    "ExecutorSettings",
    "RouterSettings",
    "PipelineSettings",
    "SupervisorSettings",
    "get_settings",
    "reload_settings",
    # Enums
    "TaskStatus",
    "TaskPriority",
    "ExecutionMode",
    "ExecutorType",
    "CircuitState",
    "RoutingMethod",
    "StreamChunkType",
    "EventType",
    # Exceptions
    "ArenaError",
    "ConfigurationError",
    "AdmissionError",
    "ShuttingDownError",
    "RateLimitExceededError",
    "CircuitOpenError",
    "ProviderError",
    "NonRetryableError",
    "ExecutionCancelledError",
    "ExecutionTimeoutError",
    "ParseError",
    "CollaborationError",
    "TaskNotFoundError",
    "ExecutorNotFoundError",
    # Resilience
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "TokenBucket",
    "CancellationToken",
    "compute_backoff",
    "is_non_retryable",
    # Events
    "EventDispatcher",
    "EventListener",
    "LifecycleEvent",
    # Providers
    "CompletionProvider",
    "CompletionMessage",
    "CompletionResult",
    "LLMProviderType",
    "ProviderBinding",
    # Pricing
    "UsageCost",
    "calculate_cost",
]
