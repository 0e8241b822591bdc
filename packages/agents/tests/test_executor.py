"""Tests for the resilient executor."""

import asyncio

import pytest

from arena_agents import CODING, AgentTask
from arena_core import (
    CancellationToken,
    CircuitOpenError,
    CircuitState,
    EventType,
    ExecutionCancelledError,
    ExecutionTimeoutError,
    NonRetryableError,
    ProviderError,
    RateLimitExceededError,
    ShuttingDownError,
)
from arena_core.config import CircuitBreakerSettings, RateLimitSettings, RetrySettings, TimeoutSettings


@pytest.fixture
def task():
    return AgentTask(content="Explain the history of the printing press", type="research")


@pytest.mark.asyncio
class TestExecute:
    """Tests for primary, fallback and retry behavior."""

    async def test_primary_success(self, executor_factory, provider_factory, task):
        """Test a successful call through the primary provider."""
        primary = provider_factory(name="anthropic", default="The press spread literacy.")
        executor = executor_factory(primary=primary)

        result = await executor.execute(task)

        assert result.result == "The press spread literacy."
        assert result.provider == "anthropic"
        assert result.executor_id == "research"
        assert not result.used_fallback
        assert result.attempts == 1
        assert result.usage.input_tokens == 10
        assert result.usage.output_tokens == 20
        assert result.usage.cost_usd > 0
        assert len(result.prompt_hash) == 16
        assert primary.call_count == 1

    async def test_prompt_is_role_scoped(self, executor_factory, provider_factory, task):
        """Test that the role's system prompt and the request reach the provider."""
        primary = provider_factory()
        executor = executor_factory(primary=primary)

        await executor.execute(task)

        messages = primary.calls[0]["messages"]
        assert messages[0].role == "system"
        assert messages[1].role == "user"
        assert messages[1].content == task.content

    async def test_fallback_on_primary_failure(self, executor_factory, provider_factory, task):
        """Test that the fallback answers when the primary fails."""
        primary = provider_factory(script=[RuntimeError("overloaded")])
        fallback = provider_factory(name="openai", default="fallback answer")
        executor = executor_factory(primary=primary, fallback=fallback)

        result = await executor.execute(task)

        assert result.result == "fallback answer"
        assert result.provider == "openai"
        assert result.used_fallback
        assert result.attempts == 1

    async def test_retry_after_transient_failure(self, executor_factory, provider_factory, task):
        """Test that a failed attempt is retried."""
        primary = provider_factory(script=[RuntimeError("connection reset"), "second time lucky"])
        executor = executor_factory(primary=primary)

        result = await executor.execute(task)

        assert result.result == "second time lucky"
        assert result.attempts == 2
        assert executor.get_analytics()["retry_count"] == 1

    async def test_exhausted_retries(self, executor_factory, provider_factory, task):
        """Test that max_attempts retries follow the first attempt."""
        primary = provider_factory(script=[RuntimeError("down")] * 5)
        executor = executor_factory(primary=primary)

        with pytest.raises(ProviderError) as exc_info:
            await executor.execute(task)

        assert primary.call_count == 3
        assert exc_info.value.error_code == "PROVIDER_ERROR"

    async def test_non_retryable_is_not_retried(
        self, executor_factory, provider_factory, failure_factory, task
    ):
        """Test that a 401 fails immediately."""
        primary = provider_factory(script=[failure_factory("bad key", status_code=401)])
        executor = executor_factory(primary=primary)

        with pytest.raises(NonRetryableError):
            await executor.execute(task)

        assert primary.call_count == 1

    async def test_timeout(self, executor_factory, provider_factory, settings_factory, task):
        """Test that the request budget maps to ExecutionTimeoutError."""
        primary = provider_factory(delay=1.0)
        executor = executor_factory(
            primary=primary,
            settings=settings_factory(timeout=TimeoutSettings(request=0.05, graceful=0.1)),
        )

        with pytest.raises(ExecutionTimeoutError):
            await executor.execute(task)

        assert executor.circuit.failure_count == 1
        assert executor.in_flight == 0

    async def test_explicit_cancellation(self, executor_factory, provider_factory, task):
        """Test that cancelling the token aborts the call without a circuit failure."""
        primary = provider_factory(delay=1.0)
        executor = executor_factory(primary=primary)
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.02, token.cancel)

        with pytest.raises(ExecutionCancelledError) as exc_info:
            await executor.execute(task, token=token)

        assert not isinstance(exc_info.value, ExecutionTimeoutError)
        assert executor.circuit.failure_count == 0


@pytest.mark.asyncio
class TestAdmission:
    """Tests for shutdown, rate limit and circuit admission."""

    async def test_circuit_opens_and_blocks_provider_calls(
        self, executor_factory, provider_factory, settings_factory, clock, task
    ):
        """Test that an open circuit rejects without calling the provider."""
        primary = provider_factory(script=[RuntimeError("down")] * 3)
        executor = executor_factory(
            primary=primary,
            clock=clock,
            settings=settings_factory(
                retry=RetrySettings(max_attempts=0, base_delay=0.0, max_delay=0.0, jitter_factor=0.0),
                circuit_breaker=CircuitBreakerSettings(failure_threshold=3, reset_timeout=30.0),
            ),
        )

        for _ in range(3):
            with pytest.raises(ProviderError):
                await executor.execute(task)
        assert executor.circuit.state == CircuitState.OPEN

        with pytest.raises(CircuitOpenError):
            await executor.execute(task)
        assert primary.call_count == 3

        clock.advance(30)
        result = await executor.execute(task)
        assert result.result == "ok"
        assert executor.circuit.state == CircuitState.CLOSED
        assert executor.circuit.failure_count == 0

    async def test_rate_limit_rejects_without_circuit_side_effects(
        self, executor_factory, provider_factory, settings_factory, task
    ):
        """Test that an empty bucket rejects and leaves the circuit alone."""
        primary = provider_factory()
        executor = executor_factory(
            primary=primary,
            settings=settings_factory(rate_limit=RateLimitSettings(max_tokens=2, refill_rate=0.0)),
        )

        await executor.execute(task)
        await executor.execute(task)
        with pytest.raises(RateLimitExceededError):
            await executor.execute(task)

        assert primary.call_count == 2
        assert executor.circuit.failure_count == 0
        assert executor.circuit.state == CircuitState.CLOSED
        assert executor.get_analytics()["rejected_tasks"] == 1

    async def test_shutdown_rejects_new_work(self, executor_factory, provider_factory, task):
        """Test that a shut down executor rejects calls."""
        primary = provider_factory()
        executor = executor_factory(primary=primary)
        await executor.shutdown()

        with pytest.raises(ShuttingDownError):
            await executor.execute(task)
        assert primary.call_count == 0
        assert executor.get_health()["status"] == "shutting_down"

    async def test_shutdown_waits_for_in_flight(self, executor_factory, provider_factory, task):
        """Test that graceful shutdown lets running calls finish."""
        executor = executor_factory(primary=provider_factory(delay=0.05, default="done"))

        running = asyncio.create_task(executor.execute(task))
        await asyncio.sleep(0)
        await executor.shutdown()

        assert (await running).result == "done"
        assert executor.in_flight == 0

    async def test_shutdown_cancels_after_graceful_timeout(
        self, executor_factory, provider_factory, settings_factory, task
    ):
        """Test that calls still running after the graceful timeout are cancelled."""
        executor = executor_factory(
            primary=provider_factory(delay=5.0),
            settings=settings_factory(timeout=TimeoutSettings(request=10.0, graceful=0.05)),
        )

        running = asyncio.create_task(executor.execute(task))
        await asyncio.sleep(0)
        await executor.shutdown()

        with pytest.raises(ExecutionCancelledError):
            await running


@pytest.mark.asyncio
class TestBookkeeping:
    """Tests for events, history, feedback and analytics."""

    async def test_lifecycle_events(self, executor_factory, events, task):
        """Test that start and complete events are emitted."""
        received = []
        events.subscribe(received.append)
        executor = executor_factory(events=events)

        await executor.execute(task)

        types = [e.type for e in received]
        assert EventType.TASK_START in types
        assert EventType.TASK_COMPLETE in types
        assert all(e.source == "research" for e in received)

    async def test_history_and_feedback(self, executor_factory, task):
        """Test that feedback is only accepted for tasks in history."""
        executor = executor_factory()
        await executor.execute(task)

        assert executor.history.get(task.id).success
        assert executor.record_feedback(task.id, 4.5, comments="clear")
        assert not executor.record_feedback("unknown-task", 3.0)
        assert executor.get_analytics()["avg_feedback_score"] == 4.5

    async def test_failure_is_recorded(self, executor_factory, provider_factory, task):
        """Test that failures land in history and analytics."""
        executor = executor_factory(primary=provider_factory(script=[RuntimeError("down")] * 3))

        with pytest.raises(ProviderError):
            await executor.execute(task)

        entry = executor.history.get(task.id)
        assert not entry.success
        assert entry.error
        analytics = executor.get_analytics()
        assert analytics["failed_tasks"] == 1
        assert analytics["success_rate"] == 0.0

    async def test_health_reflects_circuit(
        self, executor_factory, provider_factory, settings_factory, clock, task
    ):
        """Test that an open circuit reports unhealthy."""
        executor = executor_factory(
            primary=provider_factory(script=[RuntimeError("down")]),
            clock=clock,
            settings=settings_factory(
                retry=RetrySettings(max_attempts=0, base_delay=0.0, max_delay=0.0, jitter_factor=0.0),
                circuit_breaker=CircuitBreakerSettings(failure_threshold=1),
            ),
        )
        assert executor.get_health()["status"] == "healthy"

        with pytest.raises(ProviderError):
            await executor.execute(task)

        assert executor.get_health()["status"] == "unhealthy"
        executor.reset_circuit()
        assert executor.get_health()["status"] == "healthy"

    async def test_reset_analytics(self, executor_factory, task):
        """Test that analytics and history can be cleared."""
        executor = executor_factory()
        await executor.execute(task)
        executor.reset_analytics()

        analytics = executor.get_analytics()
        assert analytics["total_tasks"] == 0
        assert analytics["history_size"] == 0


class TestCanHandle:
    """Tests for capability scoring."""

    def test_declared_type_scores_one(self, executor_factory):
        """Test that the executor's own type is a perfect match."""
        executor = executor_factory(role=CODING)
        assert executor.can_handle(AgentTask(content="anything", type="coding")) == 1.0

    def test_keywords_without_type(self, executor_factory):
        """Test that content keywords drive the score without a declared type."""
        executor = executor_factory(role=CODING)
        assert executor.can_handle(AgentTask(content="fix this python bug")) > 0
        assert executor.can_handle(AgentTask(content="hello there")) == 0
