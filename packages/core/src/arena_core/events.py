"""
Lifecycle event delivery.

Components receive an ``EventDispatcher`` at construction and emit
``LifecycleEvent``s through it. Listeners may be plain callables or
coroutine functions; coroutine listeners are scheduled on the running loop
and never awaited by the emitter. A listener that raises is logged and
otherwise ignored, so observability can never break an execution.
"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .enums import EventType
from .logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class LifecycleEvent:
    """A single lifecycle notification."""
    type: EventType
    source: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "source": self.source,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }


EventListener = Callable[[LifecycleEvent], Awaitable[None] | None]


class EventDispatcher:
    """Fan-out of lifecycle events to subscribed listeners."""

    def __init__(self) -> None:
        self._listeners: list[tuple[EventListener, frozenset[EventType] | None]] = []
        self._pending: set[asyncio.Task[Any]] = set()

    def subscribe(
        self,
        listener: EventListener,
        event_types: set[EventType] | None = None,
    ) -> Callable[[], None]:
        """
        Register a listener, optionally filtered by event type.

        Returns:
            A callable that removes the subscription
        """
        entry = (listener, frozenset(event_types) if event_types else None)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def emit(self, event_type: EventType, source: str, **payload: Any) -> LifecycleEvent:
        event = LifecycleEvent(type=event_type, source=source, payload=payload)
        logger.debug("Lifecycle event", event_type=event_type.value, source=source)

        for listener, types in list(self._listeners):
            if types is not None and event_type not in types:
                continue
            try:
                outcome = listener(event)
                if inspect.isawaitable(outcome):
                    self._schedule(outcome, event)
            except Exception as e:
                logger.warning(
                    "Event listener failed",
                    event_type=event_type.value,
                    source=source,
                    error=str(e),
                )
        return event

    def _schedule(self, outcome: Awaitable[None], event: LifecycleEvent) -> None:
        task = asyncio.ensure_future(outcome)
        self._pending.add(task)

        def _done(finished: asyncio.Task[Any]) -> None:
            self._pending.discard(finished)
            if not finished.cancelled() and finished.exception() is not None:
                logger.warning(
                    "Async event listener failed",
                    event_type=event.type.value,
                    source=event.source,
                    error=str(finished.exception()),
                )

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait for scheduled async listeners to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
