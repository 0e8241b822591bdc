"""Tests for lifecycle event delivery."""

import asyncio

import pytest

from arena_core import EventDispatcher, EventType


class TestEventDispatcher:
    """Tests for subscription and fan-out."""

    def test_sync_listener_receives_events(self, events):
        """Test that a sync listener is called with the event."""
        received = []
        events.subscribe(received.append)

        events.emit(EventType.TASK_START, source="research", task_id="t1")

        assert len(received) == 1
        assert received[0].type == EventType.TASK_START
        assert received[0].source == "research"
        assert received[0].payload == {"task_id": "t1"}

    def test_filter_by_event_type(self, events):
        """Test that filtered listeners only see their event types."""
        received = []
        events.subscribe(received.append, {EventType.TASK_ERROR})

        events.emit(EventType.TASK_START, source="research")
        events.emit(EventType.TASK_ERROR, source="research")

        assert [e.type for e in received] == [EventType.TASK_ERROR]

    def test_unsubscribe(self, events):
        """Test that unsubscribed listeners are no longer called."""
        received = []
        unsubscribe = events.subscribe(received.append)
        unsubscribe()

        events.emit(EventType.TASK_START, source="research")

        assert received == []
        assert events.listener_count == 0

    def test_listener_errors_are_contained(self, events):
        """Test that a failing listener neither raises nor blocks others."""
        received = []

        def broken(event):
            raise RuntimeError("listener bug")

        events.subscribe(broken)
        events.subscribe(received.append)

        events.emit(EventType.TASK_COMPLETE, source="coding")

        assert len(received) == 1

    def test_to_dict(self, events):
        """Test event serialization."""
        event = events.emit(EventType.CIRCUIT_TRANSITION, source="sales", to_state="open")
        data = event.to_dict()
        assert data["type"] == "circuit.transition"
        assert data["source"] == "sales"
        assert data["payload"] == {"to_state": "open"}


@pytest.mark.asyncio
class TestAsyncListeners:
    """Tests for coroutine listeners."""

    async def test_async_listener_is_scheduled(self):
        """Test that coroutine listeners run without being awaited by emit."""
        events = EventDispatcher()
        received = []

        async def listener(event):
            await asyncio.sleep(0)
            received.append(event.type)

        events.subscribe(listener)
        events.emit(EventType.TASK_START, source="research")
        assert received == []

        await events.drain()
        assert received == [EventType.TASK_START]

    async def test_async_listener_errors_are_contained(self):
        """Test that a failing coroutine listener is only logged."""
        events = EventDispatcher()

        async def listener(event):
            raise RuntimeError("async listener bug")

        events.subscribe(listener)
        events.emit(EventType.TASK_START, source="research")
        await events.drain()
