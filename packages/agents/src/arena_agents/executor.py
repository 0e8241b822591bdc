"""
Resilient executor.

Wraps one executor role's calls to its completion providers with:
- admission control (shutdown, token bucket, circuit breaker)
- primary/fallback provider calls with retry, backoff and jitter
- a per-call timeout mapped onto the cancellation token
- chunked streaming, batching, bounded history and feedback
"""

import asyncio
import hashlib
import json
import random
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any

from arena_core import (
    AdmissionError,
    ArenaError,
    CancellationToken,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
    CompletionMessage,
    CompletionResult,
    EventDispatcher,
    EventType,
    ExecutionCancelledError,
    ExecutionTimeoutError,
    ExecutorSettings,
    NonRetryableError,
    ProviderBinding,
    ProviderError,
    RateLimitExceededError,
    ShuttingDownError,
    StreamChunkType,
    TokenBucket,
    calculate_cost,
    compute_backoff,
    get_logger,
    is_non_retryable,
)
from arena_core.cancellation import TIMEOUT_REASON
from arena_core.metrics import (
    circuit_state,
    circuit_transitions_total,
    executor_in_flight,
    executor_rejections_total,
    executor_retries_total,
    executor_task_duration_seconds,
    executor_tasks_total,
    provider_cost_dollars,
    provider_failures_total,
    provider_tokens_total,
    streams_active,
)

from .batching import BatchQueue
from .capability import score_capability
from .context import ExecutionContext
from .feedback import FeedbackStore
from .history import HistoryEntry, TaskHistory
from .models import AgentTask, ExecutionResult, StreamChunk, Usage
from .roles import ExecutorRole
from .streaming import STREAM_CANCEL_REASON, ExecutionStream, StreamHandle, StreamRegistry, chunk_text

logger = get_logger(__name__)

SHUTDOWN_REASON = "shutdown"

_CIRCUIT_GAUGE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


def hash_prompt(messages: list[CompletionMessage]) -> str:
    """Stable short hash identifying a prompt."""
    payload = json.dumps([m.to_dict() for m in messages], sort_keys=True)
    return hashlib.sha256(payload.encode()).hexdigest()[:16]


@dataclass
class ExecutorAnalytics:
    total_tasks: int = 0
    successful_tasks: int = 0
    failed_tasks: int = 0
    rejected_tasks: int = 0
    fallback_count: int = 0
    retry_count: int = 0
    total_latency_ms: float = 0.0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost_usd: float = 0.0

    @property
    def avg_latency_ms(self) -> float:
        return self.total_latency_ms / self.successful_tasks if self.successful_tasks else 0.0

    @property
    def success_rate(self) -> float:
        finished = self.successful_tasks + self.failed_tasks
        return self.successful_tasks / finished if finished else 1.0


class ResilientExecutor:
    """
    An executor role bound to its providers and resilience policy.

    All state (circuit, bucket, history, batch queue, streams) is private to
    the instance.
    """

    def __init__(
        self,
        role: ExecutorRole,
        primary: ProviderBinding,
        fallback: ProviderBinding | None = None,
        settings: ExecutorSettings | None = None,
        events: EventDispatcher | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self.role = role
        self.id = role.id
        self.name = role.name
        self.type = role.type
        self.primary = primary
        self.fallback = fallback
        self.settings = settings or ExecutorSettings()
        self.events = events or EventDispatcher()
        self._rng = rng

        cb = self.settings.circuit_breaker
        self._circuit = CircuitBreaker(
            name=self.id,
            config=CircuitBreakerConfig(
                failure_threshold=cb.failure_threshold,
                reset_timeout=cb.reset_timeout,
                half_open_max_attempts=cb.half_open_max_attempts,
                enabled=cb.enabled,
            ),
            clock=clock,
            on_transition=self._on_circuit_transition,
        )

        rl = self.settings.rate_limit
        self._rate_limiter: TokenBucket | None = (
            TokenBucket(capacity=rl.max_tokens, refill_rate=rl.refill_rate, clock=clock)
            if rl.enabled
            else None
        )

        self._history = TaskHistory(
            max_size=self.settings.history.max_size,
            retention=self.settings.history.retention,
        )
        self._feedback = FeedbackStore(
            min_samples=self.settings.feedback.min_samples,
            learning_rate=self.settings.feedback.learning_rate,
        )
        self._streams = StreamRegistry()
        self._batch = BatchQueue(
            name=self.id,
            dispatch=self._run_admitted,
            max_size=self.settings.batch.max_size,
            max_wait=self.settings.batch.max_wait,
            concurrency=self.settings.batch.concurrency,
            on_event=self._emit,
        )

        self._active: dict[str, ExecutionContext] = {}
        self._idle = asyncio.Event()
        self._idle.set()
        self._shutting_down = False
        self._analytics = ExecutorAnalytics()
        self._started_at = time.time()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def circuit(self) -> CircuitBreaker:
        return self._circuit

    @property
    def rate_limiter(self) -> TokenBucket | None:
        return self._rate_limiter

    @property
    def history(self) -> TaskHistory:
        return self._history

    @property
    def feedback(self) -> FeedbackStore:
        return self._feedback

    @property
    def in_flight(self) -> int:
        return len(self._active)

    @property
    def active_streams(self) -> int:
        return len(self._streams)

    @property
    def batch_queue_size(self) -> int:
        return self._batch.pending

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    def can_handle(self, task: AgentTask) -> float:
        return score_capability(self.role, task)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        circuit_state.labels(executor=self.id).set(_CIRCUIT_GAUGE_VALUES[self._circuit.state])
        logger.info(
            "Executor initialized",
            executor=self.id,
            primary=f"{self.primary.name}/{self.primary.model}",
            fallback=f"{self.fallback.name}/{self.fallback.model}" if self.fallback else None,
        )
        self._emit(EventType.AGENT_INITIALIZED)

    async def shutdown(self) -> None:
        """
        Stop admitting work, flush the batch queue, cancel open streams and
        wait up to the graceful timeout for in-flight calls before
        cancelling them.
        """
        if self._shutting_down:
            return
        self._shutting_down = True
        logger.info("Executor shutting down", executor=self.id, in_flight=self.in_flight)
        self._emit(EventType.AGENT_SHUTTING_DOWN, in_flight=self.in_flight)

        await self._batch.flush()

        for stream_id in self._streams.ids():
            self._cancel_stream(stream_id, SHUTDOWN_REASON)

        forced = 0
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=self.settings.timeout.graceful)
        except asyncio.TimeoutError:
            forced = len(self._active)
            logger.warning(
                "Graceful shutdown timed out, cancelling in-flight calls",
                executor=self.id,
                in_flight=forced,
            )
            for context in list(self._active.values()):
                context.token.cancel(SHUTDOWN_REASON)

        logger.info("Executor shut down", executor=self.id, forced=forced)
        self._emit(EventType.AGENT_SHUTDOWN, forced=forced)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def execute(
        self,
        task: AgentTask,
        *,
        token: CancellationToken | None = None,
    ) -> ExecutionResult:
        """
        Run ``task`` under the resilience policy.

        Raises:
            ShuttingDownError, RateLimitExceededError, CircuitOpenError:
                Admission rejected; no provider was called
            NonRetryableError: Upstream failure retrying cannot fix
            ProviderError: Primary, fallback and retries all failed
            ExecutionTimeoutError: The request budget ran out
            ExecutionCancelledError: ``token`` was cancelled
        """
        if self._shutting_down:
            self._reject(ShuttingDownError(
                f"Executor '{self.id}' is shutting down",
                context={"executor": self.id},
            ))
        return await self._run_admitted(task, token)

    async def _run_admitted(
        self,
        task: AgentTask,
        token: CancellationToken | None = None,
    ) -> ExecutionResult:
        """Rate limit and circuit checks, then execution. Skips the shutdown check."""
        if self._rate_limiter is not None and not self._rate_limiter.try_consume():
            self._reject(RateLimitExceededError(
                f"Rate limit exceeded for executor '{self.id}'",
                context={"executor": self.id},
            ))
        try:
            self._circuit.before_call()
        except CircuitOpenError as e:
            self._reject(e)

        context = ExecutionContext(task_id=task.id, token=token or CancellationToken())
        timer = asyncio.get_running_loop().call_later(
            self.settings.timeout.request, context.token.cancel, TIMEOUT_REASON
        )
        self._begin(context)
        self._emit(EventType.TASK_START, task_id=task.id, task_type=task.type)

        try:
            result = await self._execute_with_retry(task, context)
        except ArenaError as e:
            self._record_failure(task, context, e)
            raise
        except asyncio.CancelledError:
            # Caller went away: no outcome to report to the circuit
            self._circuit.release_trial()
            raise
        else:
            self._record_success(task, context, result)
            return result
        finally:
            timer.cancel()
            self._end(context)

    async def _execute_with_retry(
        self,
        task: AgentTask,
        context: ExecutionContext,
    ) -> ExecutionResult:
        retry = self.settings.retry
        messages = self.role.build_prompt(task)
        last_error: ProviderError | None = None

        for attempt in range(retry.max_attempts + 1):
            if attempt > 0:
                delay = compute_backoff(
                    attempt,
                    base_delay=retry.base_delay,
                    max_delay=retry.max_delay,
                    jitter_factor=retry.jitter_factor,
                    rng=self._rng,
                )
                self._analytics.retry_count += 1
                executor_retries_total.labels(executor=self.id).inc()
                logger.warning(
                    "Provider attempt failed, backing off",
                    executor=self.id,
                    task_id=task.id,
                    attempt=attempt,
                    max_attempts=retry.max_attempts,
                    delay=round(delay, 3),
                    error=str(last_error)[:200],
                )
                self._emit(EventType.TASK_RETRY, task_id=task.id, attempt=attempt, delay=delay)
                if not await context.token.sleep(delay):
                    raise context.token.error()

            context.attempts = attempt + 1
            try:
                completion, binding, used_fallback = await self._execute_with_fallback(
                    messages, context
                )
            except NonRetryableError:
                raise
            except ProviderError as e:
                last_error = e
                continue

            return self._build_result(task, context, messages, completion, binding, used_fallback)

        raise ProviderError(
            f"Executor '{self.id}' failed after {retry.max_attempts + 1} attempts: {last_error}",
            context={"executor": self.id, "attempts": retry.max_attempts + 1},
            cause=last_error,
        )

    async def _execute_with_fallback(
        self,
        messages: list[CompletionMessage],
        context: ExecutionContext,
    ) -> tuple[CompletionResult, ProviderBinding, bool]:
        """One attempt: primary, then fallback on any primary failure."""
        try:
            completion = await self._call(self.primary, messages, context)
            return completion, self.primary, False
        except ExecutionCancelledError:
            raise
        except Exception as e:
            self._provider_failed(self.primary, "primary", e)
            if self.fallback is None:
                raise self._classify(e) from e

        try:
            completion = await self._call(self.fallback, messages, context)
            return completion, self.fallback, True
        except ExecutionCancelledError:
            raise
        except Exception as e:
            self._provider_failed(self.fallback, "fallback", e)
            raise self._classify(e) from e

    async def _call(
        self,
        binding: ProviderBinding,
        messages: list[CompletionMessage],
        context: ExecutionContext,
    ) -> CompletionResult:
        options: dict[str, Any] = {
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
            **binding.options,
        }
        return await context.token.run(
            binding.provider.complete(binding.model, messages, options)
        )

    def _classify(self, error: Exception) -> ProviderError:
        if is_non_retryable(error):
            return NonRetryableError(
                str(error),
                context={"executor": self.id},
                cause=error,
            )
        return ProviderError(str(error), context={"executor": self.id}, cause=error)

    def _provider_failed(self, binding: ProviderBinding, role: str, error: Exception) -> None:
        provider_failures_total.labels(executor=self.id, provider=binding.name, role=role).inc()
        logger.warning(
            "Provider call failed",
            executor=self.id,
            provider=binding.name,
            model=binding.model,
            role=role,
            error=str(error)[:200],
        )
        self._emit(
            EventType.PROVIDER_FAILURE,
            provider=binding.name,
            model=binding.model,
            role=role,
            error=str(error),
        )

    def _build_result(
        self,
        task: AgentTask,
        context: ExecutionContext,
        messages: list[CompletionMessage],
        completion: CompletionResult,
        binding: ProviderBinding,
        used_fallback: bool,
    ) -> ExecutionResult:
        model = completion.model or binding.model
        cost = calculate_cost(model, completion.input_tokens, completion.output_tokens)
        return ExecutionResult(
            task_id=task.id,
            executor_id=self.id,
            result=completion.text,
            provider=completion.provider or binding.name,
            model=model,
            used_fallback=used_fallback,
            attempts=context.attempts,
            latency_ms=context.elapsed_ms,
            usage=Usage(
                input_tokens=completion.input_tokens,
                output_tokens=completion.output_tokens,
                cost_usd=float(cost.total_cost),
            ),
            prompt_hash=hash_prompt(messages),
        )

    # -------------------------------------------------------------------------
    # Outcome bookkeeping
    # -------------------------------------------------------------------------

    def _reject(self, error: AdmissionError) -> None:
        self._analytics.rejected_tasks += 1
        executor_rejections_total.labels(executor=self.id, reason=error.error_code).inc()
        logger.info("Execution rejected", executor=self.id, reason=error.error_code)
        self._emit(EventType.TASK_REJECTED, error_code=error.error_code, error=error.message)
        raise error

    def _begin(self, context: ExecutionContext) -> None:
        self._active[context.id] = context
        self._idle.clear()
        self._analytics.total_tasks += 1
        executor_in_flight.labels(executor=self.id).set(len(self._active))

    def _end(self, context: ExecutionContext) -> None:
        self._active.pop(context.id, None)
        if not self._active:
            self._idle.set()
        executor_in_flight.labels(executor=self.id).set(len(self._active))

    def _record_success(
        self,
        task: AgentTask,
        context: ExecutionContext,
        result: ExecutionResult,
    ) -> None:
        self._circuit.record_success()

        analytics = self._analytics
        analytics.successful_tasks += 1
        analytics.total_latency_ms += result.latency_ms
        analytics.total_input_tokens += result.usage.input_tokens
        analytics.total_output_tokens += result.usage.output_tokens
        analytics.total_cost_usd += result.usage.cost_usd
        if result.used_fallback:
            analytics.fallback_count += 1

        self._history.add(HistoryEntry(
            id=task.id,
            task_type=task.type or self.type.value,
            success=True,
            timestamp=time.time(),
            latency_ms=result.latency_ms,
            prompt_hash=result.prompt_hash,
            used_fallback=result.used_fallback,
        ))

        executor_tasks_total.labels(executor=self.id, status="success").inc()
        executor_task_duration_seconds.labels(executor=self.id).observe(result.latency_ms / 1000)
        provider_tokens_total.labels(executor=self.id, token_type="input").inc(result.usage.input_tokens)
        provider_tokens_total.labels(executor=self.id, token_type="output").inc(result.usage.output_tokens)
        provider_cost_dollars.labels(executor=self.id, model=result.model).inc(result.usage.cost_usd)

        logger.info(
            "Task completed",
            executor=self.id,
            task_id=task.id,
            provider=result.provider,
            used_fallback=result.used_fallback,
            attempts=result.attempts,
            latency_ms=round(result.latency_ms, 1),
        )
        self._emit(
            EventType.TASK_COMPLETE,
            task_id=task.id,
            provider=result.provider,
            used_fallback=result.used_fallback,
            latency_ms=result.latency_ms,
        )

    def _record_failure(
        self,
        task: AgentTask,
        context: ExecutionContext,
        error: ArenaError,
    ) -> None:
        if isinstance(error, ExecutionCancelledError) and not isinstance(error, ExecutionTimeoutError):
            self._circuit.release_trial()
        else:
            self._circuit.record_failure()

        self._analytics.failed_tasks += 1
        self._history.add(HistoryEntry(
            id=task.id,
            task_type=task.type or self.type.value,
            success=False,
            timestamp=time.time(),
            latency_ms=context.elapsed_ms,
            error=error.message,
        ))
        executor_tasks_total.labels(executor=self.id, status="failure").inc()

        logger.error(
            "Task failed",
            executor=self.id,
            task_id=task.id,
            error_code=error.error_code,
            error=error.message[:200],
            attempts=context.attempts,
        )
        self._emit(
            EventType.TASK_ERROR,
            task_id=task.id,
            error_code=error.error_code,
            error=error.message,
        )

    def _on_circuit_transition(self, old: CircuitState, new: CircuitState) -> None:
        circuit_state.labels(executor=self.id).set(_CIRCUIT_GAUGE_VALUES[new])
        circuit_transitions_total.labels(
            executor=self.id, from_state=old.value, to_state=new.value
        ).inc()
        self._emit(EventType.CIRCUIT_TRANSITION, from_state=old.value, to_state=new.value)

    def reset_circuit(self) -> None:
        self._circuit.reset()
        self._emit(EventType.CIRCUIT_RESET)

    # -------------------------------------------------------------------------
    # Streaming
    # -------------------------------------------------------------------------

    def open_stream(
        self,
        task: AgentTask,
        *,
        token: CancellationToken | None = None,
    ) -> ExecutionStream:
        """
        Register a stream for ``task``. The completion is requested when
        iteration starts.
        """
        handle = StreamHandle(task_id=task.id, token=token or CancellationToken())
        self._streams.register(handle)
        streams_active.labels(executor=self.id).set(len(self._streams))
        return ExecutionStream(handle, self._stream_chunks(handle, task), self.cancel_stream)

    def cancel_stream(self, stream_id: str) -> bool:
        """Cancel an open stream. Returns False if it is not registered."""
        return self._cancel_stream(stream_id, STREAM_CANCEL_REASON)

    def _cancel_stream(self, stream_id: str, reason: str) -> bool:
        handle = self._streams.remove(stream_id)
        if handle is None:
            return False
        handle.token.cancel(reason)
        streams_active.labels(executor=self.id).set(len(self._streams))
        logger.info("Stream cancelled", executor=self.id, stream_id=stream_id, reason=reason)
        self._emit(
            EventType.STREAM_CANCELLED,
            stream_id=stream_id,
            task_id=handle.task_id,
            chunks_sent=handle.chunks_sent,
        )
        return True

    async def _stream_chunks(
        self,
        handle: StreamHandle,
        task: AgentTask,
    ) -> AsyncIterator[StreamChunk]:
        streaming = self.settings.streaming
        self._emit(EventType.STREAM_START, stream_id=handle.id, task_id=task.id)
        try:
            try:
                result = await self.execute(task, token=handle.token)
            except ArenaError as e:
                if isinstance(e, ExecutionCancelledError) and not isinstance(e, ExecutionTimeoutError):
                    return
                self._emit(
                    EventType.STREAM_ERROR,
                    stream_id=handle.id,
                    error_code=e.error_code,
                    error=e.message,
                )
                yield StreamChunk(
                    type=StreamChunkType.ERROR,
                    content=e.message,
                    done=True,
                    metadata={"error_code": e.error_code},
                )
                return

            pieces = chunk_text(result.result, streaming.chunk_size)
            for index, piece in enumerate(pieces):
                if handle.token.cancelled:
                    return
                yield StreamChunk(
                    type=StreamChunkType.CHUNK,
                    content=piece,
                    index=index,
                    done=index == len(pieces) - 1,
                )
                handle.chunks_sent += 1
                if not await handle.token.sleep(streaming.flush_interval):
                    return

            yield StreamChunk(
                type=StreamChunkType.METADATA,
                done=True,
                metadata={
                    **result.to_dict(),
                    "stream_id": handle.id,
                    "total_chunks": len(pieces),
                },
            )
            self._emit(
                EventType.STREAM_COMPLETE,
                stream_id=handle.id,
                task_id=task.id,
                chunks=len(pieces),
            )
        finally:
            if self._streams.remove(handle.id) is not None:
                streams_active.labels(executor=self.id).set(len(self._streams))

    # -------------------------------------------------------------------------
    # Batching
    # -------------------------------------------------------------------------

    async def submit_batch(
        self,
        task: AgentTask,
        *,
        token: CancellationToken | None = None,
    ) -> ExecutionResult:
        """Queue ``task`` for batched dispatch and wait for its result."""
        if self._shutting_down:
            self._reject(ShuttingDownError(
                f"Executor '{self.id}' is shutting down",
                context={"executor": self.id},
            ))
        return await self._batch.submit(task, token)

    async def flush_batch(self) -> None:
        await self._batch.flush()

    # -------------------------------------------------------------------------
    # Feedback and analytics
    # -------------------------------------------------------------------------

    def record_feedback(
        self,
        task_id: str,
        rating: float,
        comments: str | None = None,
        corrections: str | None = None,
    ) -> bool:
        """
        Attach a rating to a task still in history.

        Returns:
            True if the feedback was recorded
        """
        if not self.settings.feedback.enabled:
            return False

        entry = self._history.get(task_id)
        if entry is None:
            self._emit(EventType.FEEDBACK_ERROR, task_id=task_id, error="Task not found")
            return False

        optimized = self._feedback.record(entry, rating, comments, corrections)
        self._emit(EventType.FEEDBACK_RECORDED, task_id=task_id, rating=rating)
        for optimal in optimized:
            logger.info(
                "Prompt ranking updated",
                executor=self.id,
                task_type=optimal.task_type,
                avg_rating=round(optimal.avg_rating, 2),
            )
            self._emit(
                EventType.PROMPT_OPTIMIZED,
                task_type=optimal.task_type,
                prompt_hash=optimal.prompt_hash,
                avg_rating=optimal.avg_rating,
            )
        return True

    def get_analytics(self) -> dict[str, Any]:
        a = self._analytics
        return {
            "executor": self.id,
            "total_tasks": a.total_tasks,
            "successful_tasks": a.successful_tasks,
            "failed_tasks": a.failed_tasks,
            "rejected_tasks": a.rejected_tasks,
            "success_rate": round(a.success_rate, 4),
            "avg_latency_ms": round(a.avg_latency_ms, 2),
            "fallback_count": a.fallback_count,
            "retry_count": a.retry_count,
            "tokens": {"input": a.total_input_tokens, "output": a.total_output_tokens},
            "cost_usd": round(a.total_cost_usd, 8),
            "avg_feedback_score": self._feedback.average_rating,
            "optimal_prompts": {
                task_type: {
                    "prompt_hash": optimal.prompt_hash,
                    "avg_rating": optimal.avg_rating,
                    "sample_count": optimal.sample_count,
                }
                for task_type, optimal in self._feedback.optimal_prompts.items()
            },
            "history_size": len(self._history),
            "circuit": self._circuit.status(),
            "in_flight": self.in_flight,
            "batch_queue_size": self.batch_queue_size,
            "active_streams": self.active_streams,
        }

    def get_health(self) -> dict[str, Any]:
        if self._shutting_down:
            status = "shutting_down"
        elif self._circuit.state == CircuitState.OPEN:
            status = "unhealthy"
        elif self._circuit.state == CircuitState.HALF_OPEN:
            status = "degraded"
        else:
            status = "healthy"
        return {
            "executor": self.id,
            "status": status,
            "circuit_state": self._circuit.state.value,
            "in_flight": self.in_flight,
            "rate_limit_tokens": (
                round(self._rate_limiter.available, 2) if self._rate_limiter else None
            ),
            "uptime_seconds": round(time.time() - self._started_at, 1),
        }

    def reset_analytics(self) -> None:
        self._analytics = ExecutorAnalytics()
        self._history.clear()
        self._feedback.clear()
        self._emit(EventType.ANALYTICS_RESET)

    def _emit(self, event_type: EventType, **payload: Any) -> None:
        self.events.emit(event_type, source=self.id, **payload)
