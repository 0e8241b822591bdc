"""
Token bucket rate limiter.

Refill is computed lazily from elapsed clock time at each consumption
attempt, so no background timer is needed.
"""

import time
from collections.abc import Callable


class TokenBucket:
    """
    Token bucket with fractional refill.

    Invariant: ``0 <= tokens <= capacity``. A consumption needs a whole token.
    """

    def __init__(
        self,
        capacity: int = 100,
        refill_rate: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.capacity = float(capacity)
        self.refill_rate = refill_rate
        self._clock = clock
        self.tokens = float(capacity)
        self.last_refill = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def try_consume(self, amount: float = 1.0) -> bool:
        """Take ``amount`` tokens if available. Returns False when empty."""
        self._refill()
        if self.tokens >= amount:
            self.tokens -= amount
            return True
        return False

    @property
    def available(self) -> float:
        self._refill()
        return self.tokens

    def reset(self) -> None:
        self.tokens = self.capacity
        self.last_refill = self._clock()
