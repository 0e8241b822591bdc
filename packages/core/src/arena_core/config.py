"""
Configuration management using Pydantic Settings.

Provides type-safe configuration loading from environment variables. Every
resilience knob of an executor lives in its own nested settings group so a
deployment can tune, e.g., ``ARENA_CIRCUIT_FAILURE_THRESHOLD`` alone.

All durations are in seconds.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class CircuitBreakerSettings(BaseSettings):
    """Per-executor circuit breaker."""

    model_config = SettingsConfigDict(env_prefix="ARENA_CIRCUIT_")

    enabled: bool = True
    failure_threshold: int = Field(default=3, ge=1)
    reset_timeout: float = Field(default=30.0, ge=0)
    half_open_max_attempts: int = Field(default=1, ge=1)


class RetrySettings(BaseSettings):
    """Retry with exponential backoff and jitter."""

    model_config = SettingsConfigDict(env_prefix="ARENA_RETRY_")

    max_attempts: int = Field(default=2, ge=0)  # retries after the first attempt
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=10.0, ge=0)
    jitter_factor: float = Field(default=0.3, ge=0, le=1)


class RateLimitSettings(BaseSettings):
    """Token bucket admission control."""

    model_config = SettingsConfigDict(env_prefix="ARENA_RATE_LIMIT_")

    enabled: bool = True
    max_tokens: int = Field(default=100, ge=1)
    refill_rate: float = Field(default=10.0, ge=0)  # tokens per second


class TimeoutSettings(BaseSettings):
    """Request and shutdown budgets."""

    model_config = SettingsConfigDict(env_prefix="ARENA_TIMEOUT_")

    request: float = Field(default=60.0, gt=0)
    graceful: float = Field(default=5.0, ge=0)


class HistorySettings(BaseSettings):
    """Bounded task history."""

    model_config = SettingsConfigDict(env_prefix="ARENA_HISTORY_")

    max_size: int = Field(default=100, ge=1)
    retention: float = Field(default=24 * 60 * 60, gt=0)


class StreamingSettings(BaseSettings):
    """Chunked streaming of a full completion."""

    model_config = SettingsConfigDict(env_prefix="ARENA_STREAM_")

    chunk_size: int = Field(default=100, ge=1)
    flush_interval: float = Field(default=0.05, ge=0)


class BatchSettings(BaseSettings):
    """Per-executor request batching."""

    model_config = SettingsConfigDict(env_prefix="ARENA_BATCH_")

    max_size: int = Field(default=10, ge=1)
    max_wait: float = Field(default=1.0, ge=0)
    concurrency: int = Field(default=3, ge=1)


class FeedbackSettings(BaseSettings):
    """Rating-driven prompt ranking."""

    model_config = SettingsConfigDict(env_prefix="ARENA_FEEDBACK_")

    enabled: bool = True
    learning_rate: float = 0.1
    min_samples: int = Field(default=10, ge=1)


class ExecutorSettings(BaseSettings):
    """Resilience policy applied to every executor."""

    model_config = SettingsConfigDict(env_prefix="ARENA_EXECUTOR_")

    max_tokens: int = 4096
    temperature: float = 0.7

    circuit_breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    timeout: TimeoutSettings = Field(default_factory=TimeoutSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    streaming: StreamingSettings = Field(default_factory=StreamingSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    feedback: FeedbackSettings = Field(default_factory=FeedbackSettings)


class RouterSettings(BaseSettings):
    """Content-based routing."""

    model_config = SettingsConfigDict(env_prefix="ARENA_ROUTER_")

    match_threshold: float = Field(default=0.3, ge=0, le=1)
    default_executor: str = "creative"
    load_balancing: bool = True


class PipelineSettings(BaseSettings):
    """Four-phase collaboration pipeline."""

    model_config = SettingsConfigDict(env_prefix="ARENA_PIPELINE_")

    decomposer: str = "research"
    synthesizer: str = "creative"
    reviewer: str = "coding"
    min_subtasks: int = Field(default=2, ge=1)
    max_subtasks: int = Field(default=6, ge=1)
    quality_check: bool = True


class SupervisorSettings(BaseSettings):
    """Task supervision, dedupe cache and cost ledger."""

    model_config = SettingsConfigDict(env_prefix="ARENA_SUPERVISOR_")

    cache_enabled: bool = True
    cache_ttl: float = Field(default=600.0, gt=0)
    cost_tracking: bool = True
    default_task_type: str = "research"
    # Seconds the running task gets to settle on shutdown before it is interrupted
    shutdown_grace: float = Field(default=5.0, ge=0)


class APISettings(BaseSettings):
    """Completion provider credentials."""

    model_config = SettingsConfigDict(env_prefix="")

    anthropic_api_key: SecretStr = Field(default=SecretStr(""), alias="ANTHROPIC_API_KEY")
    openai_api_key: SecretStr = Field(default=SecretStr(""), alias="OPENAI_API_KEY")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "json"


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Literal["development", "staging", "production"] = "development"
    service_name: str = "agent-arena"

    api: APISettings = Field(default_factory=APISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    executor: ExecutorSettings = Field(default_factory=ExecutorSettings)
    router: RouterSettings = Field(default_factory=RouterSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    supervisor: SupervisorSettings = Field(default_factory=SupervisorSettings)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance (cached after first call)
    """
    return Settings()


def reload_settings() -> Settings:
    """
    Reload settings (clears cache).

    Returns:
        Fresh Settings instance
    """
    get_settings.cache_clear()
    return get_settings()
