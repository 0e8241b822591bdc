"""Per-call execution context."""

import time
import uuid
from dataclasses import dataclass, field

from arena_core import CancellationToken


@dataclass
class ExecutionContext:
    """Created when ``execute()`` admits a call, dropped when it returns."""
    task_id: str
    token: CancellationToken = field(default_factory=CancellationToken)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    start_time: float = field(default_factory=time.monotonic)
    attempts: int = 0

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.start_time) * 1000
