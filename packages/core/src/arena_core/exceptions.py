"""
Exceptions for the agent arena.

Every failure surfaced by an executor, the pipeline or the supervisor is an
``ArenaError`` carrying a stable ``error_code`` so callers can tell
admission rejections apart from upstream provider failures.
"""

from typing import Any


class ArenaError(Exception):
    """Base exception for all arena errors."""

    error_code: str = "ARENA_ERROR"

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.context = context or {}
        self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a serializable dictionary."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


# Configuration Errors
class ConfigurationError(ArenaError):
    """Configuration-related errors."""
    error_code = "CONFIGURATION_ERROR"


# Admission Errors (raised before any provider call)
class AdmissionError(ArenaError):
    """Request was rejected before execution started."""
    error_code = "ADMISSION_REJECTED"


class ShuttingDownError(AdmissionError):
    """Executor is shutting down and admits no new work."""
    error_code = "SHUTTING_DOWN"


class RateLimitExceededError(AdmissionError):
    """No rate-limit token was available."""
    error_code = "RATE_LIMIT_EXCEEDED"


class CircuitOpenError(AdmissionError):
    """Circuit breaker is open (or its half-open trial slot is taken)."""
    error_code = "CIRCUIT_OPEN"


# Execution Errors
class ProviderError(ArenaError):
    """Upstream completion failed after fallback and retries."""
    error_code = "PROVIDER_ERROR"


class NonRetryableError(ProviderError):
    """Upstream failure that retrying cannot fix (credentials, missing model)."""
    error_code = "NON_RETRYABLE"


class ExecutionCancelledError(ArenaError):
    """Execution was cancelled through its cancellation token."""
    error_code = "CANCELLED"


class ExecutionTimeoutError(ExecutionCancelledError):
    """Execution exceeded its request budget."""
    error_code = "TIMEOUT"


# Pipeline Errors
class ParseError(ArenaError):
    """Decomposition output could not be parsed into subtasks."""
    error_code = "PARSE_ERROR"


class CollaborationError(ArenaError):
    """Every collaboration path produced no output."""
    error_code = "COLLABORATION_FAILED"


# Supervisor Errors
class TaskNotFoundError(ArenaError):
    """Requested task does not exist."""
    error_code = "TASK_NOT_FOUND"


class ExecutorNotFoundError(ArenaError):
    """No executor is registered under the requested id."""
    error_code = "EXECUTOR_NOT_FOUND"
