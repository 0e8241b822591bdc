"""Tests for the single-worker task queue."""

import asyncio

import pytest

from arena_supervisor import TaskQueue


@pytest.mark.asyncio
class TestTaskQueue:
    """Tests for FIFO processing."""

    async def test_fifo_one_at_a_time(self):
        """Test that jobs run in order and never overlap."""
        order = []
        running = 0
        peak = 0

        async def handler(task_id):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            order.append(task_id)
            running -= 1

        queue = TaskQueue(handler)
        for task_id in ("a", "b", "c"):
            queue.put(task_id)
        await asyncio.wait_for(queue.join(), timeout=1.0)

        assert order == ["a", "b", "c"]
        assert peak == 1
        assert queue.stats()["processed"] == 3
        await queue.stop()

    async def test_handler_errors_are_contained(self):
        """Test that a failing job does not stop the worker."""
        done = []

        async def handler(task_id):
            if task_id == "bad":
                raise RuntimeError("handler bug")
            done.append(task_id)

        queue = TaskQueue(handler)
        queue.put("bad")
        queue.put("good")
        await asyncio.wait_for(queue.join(), timeout=1.0)

        assert done == ["good"]
        stats = queue.stats()
        assert stats["failed"] == 1
        assert stats["processed"] == 1
        await queue.stop()

    async def test_stop_keeps_waiting_jobs(self):
        """Test that stopping leaves unprocessed jobs queued."""
        async def handler(task_id):
            await asyncio.sleep(0)

        queue = TaskQueue(handler)
        queue.start()
        assert queue.running
        await queue.stop()
        assert not queue.running

        queue._queue.put_nowait("later")
        assert queue.stats()["waiting"] == 1

    async def test_stop_lets_active_job_finish(self):
        """Test that a graceful stop waits for the active job and takes no new one."""
        started = asyncio.Event()
        release = asyncio.Event()
        done = []

        async def handler(task_id):
            started.set()
            await release.wait()
            done.append(task_id)

        queue = TaskQueue(handler)
        queue.put("first")
        queue.put("second")
        await asyncio.wait_for(started.wait(), timeout=1.0)

        stopping = asyncio.create_task(queue.stop(grace=1.0))
        await asyncio.sleep(0.01)
        assert not stopping.done()
        release.set()
        await asyncio.wait_for(stopping, timeout=1.0)

        assert done == ["first"]
        assert queue.stats()["waiting"] == 1
        assert not queue.running

    async def test_stop_interrupts_slow_job(self):
        """Test that a job outliving the grace period is cancelled."""
        started = asyncio.Event()
        interrupted = []

        async def handler(task_id):
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                interrupted.append(task_id)
                raise

        queue = TaskQueue(handler)
        queue.put("slow")
        await asyncio.wait_for(started.wait(), timeout=1.0)
        await asyncio.wait_for(queue.stop(grace=0.05), timeout=1.0)

        assert interrupted == ["slow"]
        assert queue.stats()["processed"] == 0
