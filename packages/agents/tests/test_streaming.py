"""Tests for chunked streaming."""

import time

import pytest

from arena_agents import AgentTask
from arena_core import EventType, StreamChunkType
from arena_core.config import RetrySettings, StreamingSettings


@pytest.fixture
def task():
    return AgentTask(content="Write a short story", type="creative")


@pytest.mark.asyncio
class TestExecutionStream:
    """Tests for stream iteration and cancellation."""

    async def test_chunks_then_metadata(self, executor_factory, provider_factory, task):
        """Test that the text arrives in order, followed by one metadata chunk."""
        executor = executor_factory(primary=provider_factory(default="abcdefghij"))

        stream = executor.open_stream(task)
        assert executor.active_streams == 1
        chunks = [chunk async for chunk in stream]

        text_chunks = [c for c in chunks if c.type == StreamChunkType.CHUNK]
        assert [c.content for c in text_chunks] == ["abcd", "efgh", "ij"]
        assert [c.index for c in text_chunks] == [0, 1, 2]
        assert text_chunks[-1].done

        metadata = chunks[-1]
        assert metadata.type == StreamChunkType.METADATA
        assert metadata.metadata["total_chunks"] == 3
        assert metadata.metadata["stream_id"] == stream.id
        assert executor.active_streams == 0

    async def test_error_chunk(self, executor_factory, provider_factory, settings_factory, task):
        """Test that a failed execution yields a single error chunk."""
        executor = executor_factory(
            primary=provider_factory(script=[RuntimeError("down")]),
            settings=settings_factory(
                retry=RetrySettings(max_attempts=0, base_delay=0.0, max_delay=0.0, jitter_factor=0.0),
            ),
        )

        chunks = [chunk async for chunk in executor.open_stream(task)]

        assert len(chunks) == 1
        assert chunks[0].type == StreamChunkType.ERROR
        assert chunks[0].done
        assert chunks[0].metadata["error_code"] == "PROVIDER_ERROR"
        assert executor.active_streams == 0

    async def test_cancel_mid_stream(
        self, executor_factory, provider_factory, settings_factory, events, task
    ):
        """Test that cancelling stops the stream within one pacing interval."""
        received = []
        events.subscribe(received.append, {EventType.STREAM_CANCELLED})
        executor = executor_factory(
            primary=provider_factory(default="x" * 20),
            settings=settings_factory(streaming=StreamingSettings(chunk_size=1, flush_interval=0.5)),
            events=events,
        )

        stream = executor.open_stream(task)
        collected = []
        started = time.monotonic()
        async for chunk in stream:
            collected.append(chunk)
            if len(collected) == 1:
                assert stream.cancel()
                assert executor.active_streams == 0

        assert len(collected) == 1
        assert stream.cancelled
        assert time.monotonic() - started < 0.5
        assert len(received) == 1
        assert received[0].payload["stream_id"] == stream.id

    async def test_cancel_before_iteration(self, executor_factory, provider_factory, task):
        """Test that a stream cancelled before iteration makes no provider call."""
        primary = provider_factory()
        executor = executor_factory(primary=primary)

        stream = executor.open_stream(task)
        assert executor.cancel_stream(stream.id)
        assert not executor.cancel_stream(stream.id)

        chunks = [chunk async for chunk in stream]
        assert chunks == []
        assert primary.call_count == 0

    async def test_context_releases_unread_stream(self, executor_factory, provider_factory, events, task):
        """Test that leaving the context of a never-iterated stream releases it."""
        cancelled = []
        events.subscribe(cancelled.append, {EventType.STREAM_CANCELLED})
        primary = provider_factory()
        executor = executor_factory(primary=primary, events=events)

        async with executor.open_stream(task) as stream:
            assert executor.active_streams == 1

        assert stream.cancelled
        assert executor.active_streams == 0
        assert primary.call_count == 0
        assert len(cancelled) == 1

    async def test_context_releases_abandoned_stream(self, executor_factory, provider_factory, task):
        """Test that breaking out of iteration inside the context releases the stream."""
        executor = executor_factory(primary=provider_factory(default="abcdefghijkl"))

        async with executor.open_stream(task) as stream:
            async for chunk in stream:
                assert chunk.content == "abcd"
                break

        assert executor.active_streams == 0

    async def test_context_after_completion(self, executor_factory, provider_factory, events, task):
        """Test that a finished stream is not reported as cancelled on exit."""
        cancelled = []
        events.subscribe(cancelled.append, {EventType.STREAM_CANCELLED})
        executor = executor_factory(primary=provider_factory(default="abc"), events=events)

        async with executor.open_stream(task) as stream:
            chunks = [chunk async for chunk in stream]

        assert chunks[-1].type == StreamChunkType.METADATA
        assert cancelled == []
        assert executor.active_streams == 0

    async def test_shutdown_cancels_open_streams(self, executor_factory, task):
        """Test that shutdown cancels registered streams."""
        executor = executor_factory()
        stream = executor.open_stream(task)

        await executor.shutdown()

        assert stream.cancelled
        assert executor.active_streams == 0
