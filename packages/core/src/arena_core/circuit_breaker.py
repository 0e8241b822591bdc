"""
Circuit breaker for completion provider calls.

Prevents cascade failures by failing fast while an executor's upstream is
unhealthy, then admitting a bounded number of trial calls to test recovery.

Each executor owns its breaker; nothing here is shared between executors.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .enums import CircuitState
from .exceptions import CircuitOpenError
from .logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]
TransitionCallback = Callable[[CircuitState, CircuitState], None]


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""
    failure_threshold: int = 3
    reset_timeout: float = 30.0
    half_open_max_attempts: int = 1
    enabled: bool = True


@dataclass
class CircuitBreaker:
    """
    Three-state circuit breaker.

    States:
    - CLOSED: Normal operation, counting failures
    - OPEN: Rejecting calls until ``reset_timeout`` has elapsed since the
      last failure
    - HALF_OPEN: Admitting up to ``half_open_max_attempts`` trial calls;
      a success closes the circuit, a failure reopens it

    ``failure_count`` only resets on a transition into CLOSED.
    """

    name: str
    config: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    clock: Clock = time.monotonic
    on_transition: TransitionCallback | None = None
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: float | None = None
    half_open_attempts: int = 0

    def before_call(self) -> None:
        """
        Admit or reject a call.

        Raises:
            CircuitOpenError: If the circuit is open, or half-open with every
                trial slot taken. Rejections do not touch the failure count.
        """
        if not self.config.enabled:
            return

        if self.state == CircuitState.OPEN:
            if not self._reset_timeout_elapsed():
                raise CircuitOpenError(
                    f"Circuit breaker '{self.name}' is open",
                    context={"executor": self.name, "retry_in": self.seconds_until_half_open()},
                )
            self._transition(CircuitState.HALF_OPEN)

        if self.state == CircuitState.HALF_OPEN:
            if self.half_open_attempts >= self.config.half_open_max_attempts:
                raise CircuitOpenError(
                    f"Circuit breaker '{self.name}' is half-open and testing recovery",
                    context={"executor": self.name},
                )
            self.half_open_attempts += 1

    def record_success(self) -> None:
        """Record successful call."""
        if not self.config.enabled:
            return
        if self.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.CLOSED)

    def record_failure(self) -> None:
        """Record failed call."""
        if not self.config.enabled:
            return
        self.failure_count += 1
        self.last_failure_time = self.clock()

        if self.state == CircuitState.HALF_OPEN:
            logger.warning(
                "Circuit breaker re-opening (trial call failed)",
                name=self.name,
                failures=self.failure_count,
            )
            self._transition(CircuitState.OPEN)
        elif (
            self.state == CircuitState.CLOSED
            and self.failure_count >= self.config.failure_threshold
        ):
            logger.warning(
                "Circuit breaker opening",
                name=self.name,
                failures=self.failure_count,
                reset_timeout=self.config.reset_timeout,
            )
            self._transition(CircuitState.OPEN)

    def release_trial(self) -> None:
        """Give back a half-open trial slot whose call ended without an outcome."""
        if self.state == CircuitState.HALF_OPEN and self.half_open_attempts > 0:
            self.half_open_attempts -= 1

    def reset(self) -> None:
        """Force the circuit closed regardless of timers."""
        logger.info("Circuit breaker manually reset", name=self.name)
        if self.state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)
        self.failure_count = 0
        self.half_open_attempts = 0
        self.last_failure_time = None

    def seconds_until_half_open(self) -> float:
        if self.state != CircuitState.OPEN or self.last_failure_time is None:
            return 0.0
        return max(0.0, self.config.reset_timeout - (self.clock() - self.last_failure_time))

    def status(self) -> dict[str, Any]:
        """Snapshot for health reporting."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "half_open_attempts": self.half_open_attempts,
            "last_failure_time": self.last_failure_time,
            "seconds_until_half_open": self.seconds_until_half_open(),
        }

    def _reset_timeout_elapsed(self) -> bool:
        if self.last_failure_time is None:
            return True
        return self.clock() - self.last_failure_time >= self.config.reset_timeout

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self.state
        if old_state == new_state:
            return
        self.state = new_state
        if new_state == CircuitState.CLOSED:
            self.failure_count = 0
            self.half_open_attempts = 0
        elif new_state == CircuitState.HALF_OPEN:
            self.half_open_attempts = 0

        logger.info(
            "Circuit breaker transition",
            name=self.name,
            from_state=old_state.value,
            to_state=new_state.value,
        )
        if self.on_transition is not None:
            self.on_transition(old_state, new_state)
