"""
Bounded task history.

Keeps the most recent executions of an executor for analytics and for
mapping feedback back to the prompt that produced a result. Entries older
than the retention window are pruned lazily whenever the history is read.
"""

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class HistoryEntry:
    """One finished execution."""
    id: str
    task_type: str
    success: bool
    timestamp: float
    latency_ms: float = 0.0
    error: str | None = None
    prompt_hash: str = ""
    used_fallback: bool = False


class TaskHistory:
    """Ring buffer of ``HistoryEntry`` indexed by task id."""

    def __init__(
        self,
        max_size: int = 100,
        retention: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_size = max_size
        self.retention = retention
        self._clock = clock
        self._entries: OrderedDict[str, HistoryEntry] = OrderedDict()

    def add(self, entry: HistoryEntry) -> None:
        # Re-recording an id moves it to the newest position
        self._entries.pop(entry.id, None)
        self._entries[entry.id] = entry
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def get(self, task_id: str) -> HistoryEntry | None:
        self.prune()
        return self._entries.get(task_id)

    def entries(self) -> list[HistoryEntry]:
        self.prune()
        return list(self._entries.values())

    def prune(self) -> int:
        """Drop entries past retention. Returns how many were removed."""
        cutoff = self._clock() - self.retention
        removed = 0
        # Oldest first, so stop at the first entry inside the window
        while self._entries:
            oldest = next(iter(self._entries.values()))
            if oldest.timestamp >= cutoff:
                break
            self._entries.popitem(last=False)
            removed += 1
        return removed

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        self.prune()
        return len(self._entries)
