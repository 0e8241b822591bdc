"""
Result cache keyed by task type, assigned executor and normalized content.

Entries expire after ``ttl`` seconds; expired entries are dropped on read
and swept when the cache grows past ``max_entries``.
"""

import fnmatch
import hashlib
import re
import time
from collections.abc import Callable
from typing import Any

from arena_core import get_logger
from arena_core.metrics import cache_lookups_total

logger = get_logger(__name__)

KEY_PREFIX = "task"

_WHITESPACE = re.compile(r"\s+")


def normalize_content(content: str) -> str:
    """Trim and collapse runs of whitespace."""
    return _WHITESPACE.sub(" ", content).strip()


def build_cache_key(task_type: str, executor_id: str | None, content: str) -> str:
    digest = hashlib.sha256(normalize_content(content).encode()).hexdigest()[:16]
    return f"{KEY_PREFIX}:{task_type}:{executor_id or 'none'}:{digest}"


class ResultCache:
    """TTL cache of completed task results."""

    def __init__(
        self,
        ttl: float = 600.0,
        enabled: bool = True,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.enabled = enabled
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, tuple[dict[str, Any], float]] = {}  # key -> (value, stored_at)
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> dict[str, Any] | None:
        if not self.enabled:
            return None
        entry = self._entries.get(key)
        if entry is not None:
            value, stored_at = entry
            if self._clock() - stored_at < self.ttl:
                self.hits += 1
                cache_lookups_total.labels(result="hit").inc()
                return dict(value)
            del self._entries[key]
        self.misses += 1
        cache_lookups_total.labels(result="miss").inc()
        return None

    def set(self, key: str, value: dict[str, Any]) -> None:
        if not self.enabled:
            return
        now = self._clock()
        if len(self._entries) >= self.max_entries:
            cutoff = now - self.ttl
            self._entries = {k: v for k, v in self._entries.items() if v[1] > cutoff}
            while len(self._entries) >= self.max_entries:
                # Oldest insertion first
                self._entries.pop(next(iter(self._entries)))
        self._entries[key] = (dict(value), now)

    def invalidate(self, pattern: str | None = None) -> int:
        """
        Drop entries whose key matches ``pattern``.

        A pattern with ``*``/``?`` is a glob, anything else a key prefix;
        None clears the cache.

        Returns:
            Number of entries removed
        """
        if pattern is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            is_glob = any(ch in pattern for ch in "*?[")
            doomed = [
                key for key in self._entries
                if (fnmatch.fnmatchcase(key, pattern) if is_glob else key.startswith(pattern))
            ]
            for key in doomed:
                del self._entries[key]
            removed = len(doomed)
        logger.info("Cache invalidated", pattern=pattern, removed=removed)
        return removed

    def stats(self) -> dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            "enabled": self.enabled,
            "size": len(self._entries),
            "ttl": self.ttl,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / lookups, 4) if lookups else 0.0,
        }
