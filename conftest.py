"""Shared test fixtures: scripted completion providers, a manual clock and fast settings."""

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from arena_agents import RESEARCH, ExecutorRole, ResilientExecutor
from arena_core import (
    CompletionMessage,
    CompletionProvider,
    CompletionResult,
    EventDispatcher,
    ExecutorSettings,
    ProviderBinding,
)
from arena_core.config import (
    BatchSettings,
    RetrySettings,
    StreamingSettings,
    TimeoutSettings,
)


class ProviderFailure(Exception):
    """Upstream error with an optional HTTP status, like the SDK errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FakeProvider(CompletionProvider):
    """
    Completion provider replaying a script.

    Script items are returned in order: strings become completions,
    exceptions are raised, callables receive the messages and return text.
    Once the script is used up ``default`` is returned.
    """

    def __init__(
        self,
        name: str = "anthropic",
        script: list[Any] | None = None,
        default: str = "ok",
        delay: float = 0.0,
        input_tokens: int = 10,
        output_tokens: int = 20,
    ) -> None:
        self.name = name
        self.script = list(script or [])
        self.default = default
        self.delay = delay
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.calls: list[dict[str, Any]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def complete(
        self,
        model: str,
        messages: list[CompletionMessage],
        options: dict[str, Any] | None = None,
    ) -> CompletionResult:
        self.calls.append({"model": model, "messages": messages, "options": options})
        if self.delay:
            await asyncio.sleep(self.delay)

        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            item = item(messages)
        return CompletionResult(
            text=item,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            model=model,
            provider=self.name,
        )


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_fast_settings(**overrides: Any) -> ExecutorSettings:
    """Executor settings without backoff or pacing delays."""
    fields: dict[str, Any] = {
        "retry": RetrySettings(max_attempts=2, base_delay=0.0, max_delay=0.0, jitter_factor=0.0),
        "timeout": TimeoutSettings(request=5.0, graceful=0.5),
        "streaming": StreamingSettings(chunk_size=4, flush_interval=0.0),
        "batch": BatchSettings(max_size=3, max_wait=0.05, concurrency=2),
    }
    fields.update(overrides)
    return ExecutorSettings(**fields)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def events() -> EventDispatcher:
    return EventDispatcher()


@pytest.fixture
def fast_settings() -> ExecutorSettings:
    return make_fast_settings()


@pytest.fixture
def provider_factory() -> type[FakeProvider]:
    return FakeProvider


@pytest.fixture
def failure_factory() -> type[ProviderFailure]:
    return ProviderFailure


@pytest.fixture
def settings_factory() -> Callable[..., ExecutorSettings]:
    return make_fast_settings


@pytest.fixture
def executor_factory(fast_settings: ExecutorSettings) -> Callable[..., ResilientExecutor]:
    """Build a ``ResilientExecutor`` around fake providers."""

    def _make(
        role: ExecutorRole = RESEARCH,
        primary: FakeProvider | None = None,
        fallback: FakeProvider | None = None,
        settings: ExecutorSettings | None = None,
        events: EventDispatcher | None = None,
        clock: Callable[[], float] | None = None,
    ) -> ResilientExecutor:
        kwargs: dict[str, Any] = {}
        if clock is not None:
            kwargs["clock"] = clock
        return ResilientExecutor(
            role=role,
            primary=ProviderBinding(provider=primary or FakeProvider(), model="claude-sonnet-4-20250514"),
            fallback=ProviderBinding(provider=fallback, model="gpt-4o") if fallback else None,
            settings=settings or fast_settings,
            events=events,
            **kwargs,
        )

    return _make
