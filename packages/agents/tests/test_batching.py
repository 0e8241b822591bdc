"""Tests for request batching."""

import asyncio

import pytest

from arena_agents import AgentTask, BatchQueue, ExecutionResult
from arena_core import CancellationToken, EventType, ExecutionCancelledError, ProviderError
from arena_core.config import BatchSettings, RetrySettings


def make_result(task):
    return ExecutionResult(
        task_id=task.id,
        executor_id="research",
        result=task.content.upper(),
        provider="fake",
        model="fake-model",
    )


@pytest.mark.asyncio
class TestBatchQueue:
    """Tests for size- and time-triggered flushes."""

    async def test_flush_by_size(self):
        """Test that reaching max_size flushes immediately."""
        dispatched = []

        async def dispatch(task, token):
            dispatched.append(task.id)
            return make_result(task)

        queue = BatchQueue("research", dispatch, max_size=3, max_wait=10.0, concurrency=3)
        tasks = [AgentTask(content=f"item {i}") for i in range(3)]

        results = await asyncio.wait_for(
            asyncio.gather(*(queue.submit(t) for t in tasks)), timeout=1.0
        )

        assert [r.result for r in results] == ["ITEM 0", "ITEM 1", "ITEM 2"]
        assert dispatched == [t.id for t in tasks]
        assert queue.flush_count == 1

    async def test_flush_by_wait(self):
        """Test that a partial batch flushes after max_wait."""
        async def dispatch(task, token):
            return make_result(task)

        queue = BatchQueue("research", dispatch, max_size=10, max_wait=0.05)
        result = await asyncio.wait_for(queue.submit(AgentTask(content="lonely")), timeout=1.0)

        assert result.result == "LONELY"
        assert queue.flush_count == 1
        assert queue.pending == 0

    async def test_items_fail_independently(self):
        """Test that one failing item does not fail its batch mates."""
        async def dispatch(task, token):
            if task.content == "bad":
                raise ProviderError("boom")
            return make_result(task)

        queue = BatchQueue("research", dispatch, max_size=2, max_wait=10.0)
        good, bad = await asyncio.gather(
            queue.submit(AgentTask(content="good")),
            queue.submit(AgentTask(content="bad")),
            return_exceptions=True,
        )

        assert good.result == "GOOD"
        assert isinstance(bad, ProviderError)

    async def test_concurrency_bound(self):
        """Test that at most ``concurrency`` items run at once."""
        running = 0
        peak = 0

        async def dispatch(task, token):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return make_result(task)

        queue = BatchQueue("research", dispatch, max_size=5, max_wait=10.0, concurrency=2)
        await asyncio.gather(*(queue.submit(AgentTask(content=str(i))) for i in range(5)))

        assert peak == 2

    async def test_explicit_flush(self):
        """Test that flush dispatches everything queued."""
        async def dispatch(task, token):
            return make_result(task)

        queue = BatchQueue("research", dispatch, max_size=10, max_wait=10.0)
        pending = asyncio.ensure_future(queue.submit(AgentTask(content="now")))
        await asyncio.sleep(0)
        assert queue.pending == 1

        await queue.flush()

        assert (await pending).result == "NOW"

    async def test_cancelled_submitter_is_dropped(self):
        """Test that an item whose submitter went away is never dispatched."""
        dispatched = []

        async def dispatch(task, token):
            dispatched.append(task.id)
            return make_result(task)

        queue = BatchQueue("research", dispatch, max_size=10, max_wait=0.05)
        pending = asyncio.ensure_future(queue.submit(AgentTask(content="gone")))
        await asyncio.sleep(0.01)
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending
        await asyncio.sleep(0.1)

        assert dispatched == []
        assert queue.pending == 0
        assert queue.flush_count == 0

    async def test_cancelled_token_rejects_item(self):
        """Test that a cancelled token rejects its item at flush time."""
        dispatched = []

        async def dispatch(task, token):
            dispatched.append(task.id)
            return make_result(task)

        queue = BatchQueue("research", dispatch, max_size=10, max_wait=10.0)
        token = CancellationToken()
        pending = asyncio.ensure_future(queue.submit(AgentTask(content="stop"), token))
        await asyncio.sleep(0)
        token.cancel("user")

        await queue.flush()

        with pytest.raises(ExecutionCancelledError):
            await pending
        assert dispatched == []

    async def test_submitter_cancel_stops_dispatch(self):
        """Test that cancelling the submitter cancels an item already dispatched."""
        started = asyncio.Event()
        reasons = []

        async def dispatch(task, token):
            started.set()
            await token.wait()
            reasons.append(token.reason)
            raise token.error()

        queue = BatchQueue("research", dispatch, max_size=1, max_wait=10.0)
        pending = asyncio.ensure_future(queue.submit(AgentTask(content="slow")))
        await asyncio.wait_for(started.wait(), timeout=1.0)
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending

        await asyncio.wait_for(queue.flush(), timeout=1.0)

        assert reasons == ["submitter_cancelled"]


@pytest.mark.asyncio
class TestExecutorBatching:
    """Tests for batching through the executor."""

    async def test_submit_batch(self, executor_factory, provider_factory, events):
        """Test that batched tasks resolve with their own results."""
        received = []
        events.subscribe(received.append, {EventType.BATCH_PROCESSING})
        primary = provider_factory(default="batched")
        executor = executor_factory(primary=primary, events=events)

        results = await asyncio.wait_for(
            asyncio.gather(*(executor.submit_batch(AgentTask(content=f"q{i}")) for i in range(3))),
            timeout=2.0,
        )

        assert [r.result for r in results] == ["batched"] * 3
        assert primary.call_count == 3
        assert len(received) == 1
        assert received[0].payload["batch_size"] == 3

    async def test_shutdown_flushes_batch(self, executor_factory, provider_factory, settings_factory):
        """Test that queued batch items still run during shutdown."""
        executor = executor_factory(
            primary=provider_factory(default="flushed"),
            settings=settings_factory(
                batch=BatchSettings(max_size=10, max_wait=10.0, concurrency=2),
                retry=RetrySettings(max_attempts=0, base_delay=0.0, max_delay=0.0, jitter_factor=0.0),
            ),
        )
        pending = asyncio.ensure_future(executor.submit_batch(AgentTask(content="late")))
        await asyncio.sleep(0)
        assert executor.batch_queue_size == 1

        await executor.shutdown()

        assert (await pending).result == "flushed"

    async def test_flush_batch(self, executor_factory, provider_factory, settings_factory):
        """Test that an explicit flush dispatches before size or wait triggers."""
        executor = executor_factory(
            primary=provider_factory(default="now"),
            settings=settings_factory(batch=BatchSettings(max_size=10, max_wait=10.0, concurrency=2)),
        )
        pending = asyncio.ensure_future(executor.submit_batch(AgentTask(content="early")))
        await asyncio.sleep(0)

        await executor.flush_batch()

        result = await asyncio.wait_for(pending, timeout=1.0)
        assert result.result == "now"
        assert executor.batch_queue_size == 0
        await executor.shutdown()

    async def test_cancelled_submitter_makes_no_call(self, executor_factory, provider_factory):
        """Test that a batch submitter cancelled before the flush costs no provider call."""
        primary = provider_factory()
        executor = executor_factory(primary=primary)

        pending = asyncio.ensure_future(executor.submit_batch(AgentTask(content="never mind")))
        await asyncio.sleep(0.01)
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending
        await asyncio.sleep(0.1)

        assert primary.call_count == 0
        assert executor.batch_queue_size == 0
        await executor.shutdown()
