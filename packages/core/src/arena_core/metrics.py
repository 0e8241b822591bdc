"""
Prometheus metrics for the agent arena.

Provides pre-defined metrics for monitoring:
- Executor task and resilience metrics
- Completion provider metrics
- Routing and collaboration metrics
- Supervisor, queue and cache metrics
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# =============================================================================
# Application Info
# =============================================================================

app_info = Info(
    "agent_arena",
    "Agent arena application information",
)

# =============================================================================
# Executor Metrics
# =============================================================================

executor_tasks_total = Counter(
    "arena_executor_tasks_total",
    "Total executor tasks processed",
    ["executor", "status"],  # status: success, failure
)

executor_task_duration_seconds = Histogram(
    "arena_executor_task_duration_seconds",
    "Executor task duration in seconds",
    ["executor"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

executor_in_flight = Gauge(
    "arena_executor_in_flight",
    "Number of in-flight executions per executor",
    ["executor"],
)

executor_rejections_total = Counter(
    "arena_executor_rejections_total",
    "Executions rejected at admission",
    ["executor", "reason"],  # reason: SHUTTING_DOWN, RATE_LIMIT_EXCEEDED, CIRCUIT_OPEN
)

executor_retries_total = Counter(
    "arena_executor_retries_total",
    "Retry attempts after a failed provider attempt",
    ["executor"],
)

# =============================================================================
# Circuit Breaker Metrics
# =============================================================================

circuit_state = Gauge(
    "arena_circuit_state",
    "Circuit state per executor (0=closed, 1=half_open, 2=open)",
    ["executor"],
)

circuit_transitions_total = Counter(
    "arena_circuit_transitions_total",
    "Circuit breaker state transitions",
    ["executor", "from_state", "to_state"],
)

# =============================================================================
# Provider Metrics
# =============================================================================

provider_failures_total = Counter(
    "arena_provider_failures_total",
    "Failed completion provider calls",
    ["executor", "provider", "role"],  # role: primary, fallback
)

provider_tokens_total = Counter(
    "arena_provider_tokens_total",
    "Tokens consumed by completions",
    ["executor", "token_type"],  # token_type: input, output
)

provider_cost_dollars = Counter(
    "arena_provider_cost_dollars",
    "Completion cost in USD",
    ["executor", "model"],
)

# =============================================================================
# Streaming and Batching Metrics
# =============================================================================

streams_active = Gauge(
    "arena_streams_active",
    "Open execution streams",
    ["executor"],
)

batch_flushes_total = Counter(
    "arena_batch_flushes_total",
    "Batch queue flushes",
    ["executor"],
)

batch_size = Histogram(
    "arena_batch_size",
    "Items dispatched per batch flush",
    ["executor"],
    buckets=(1, 2, 3, 5, 10, 20, 50),
)

# =============================================================================
# Routing and Collaboration Metrics
# =============================================================================

routing_decisions_total = Counter(
    "arena_routing_decisions_total",
    "Routing decisions",
    ["executor", "method"],  # method: type, keywords, load, default
)

pipeline_runs_total = Counter(
    "arena_pipeline_runs_total",
    "Collaboration pipeline runs",
    ["status"],
)

pipeline_phase_duration_seconds = Histogram(
    "arena_pipeline_phase_duration_seconds",
    "Collaboration phase duration in seconds",
    ["phase"],  # decompose, execute, synthesize, quality_check
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# =============================================================================
# Supervisor Metrics
# =============================================================================

supervisor_tasks_total = Counter(
    "arena_supervisor_tasks_total",
    "Supervised tasks reaching a terminal status",
    ["status"],
)

cache_lookups_total = Counter(
    "arena_cache_lookups_total",
    "Result cache lookups",
    ["result"],  # hit, miss
)

task_queue_length = Gauge(
    "arena_task_queue_length",
    "Tasks waiting in the supervisor queue",
)
