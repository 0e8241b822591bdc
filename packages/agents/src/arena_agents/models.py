"""
Data types exchanged with executors.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any

from arena_core import StreamChunkType


@dataclass
class AgentTask:
    """A unit of work handed to an executor."""

    content: str
    type: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Usage:
    """Token usage and cost of one or more completions."""

    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cost_usd=self.cost_usd + other.cost_usd,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "cost_usd": round(self.cost_usd, 8),
        }


@dataclass
class ExecutionResult:
    """Successful outcome of ``ResilientExecutor.execute``."""

    task_id: str
    executor_id: str
    result: str
    provider: str
    model: str
    used_fallback: bool = False
    attempts: int = 1
    latency_ms: float = 0.0
    usage: Usage = field(default_factory=Usage)
    prompt_hash: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "executor_id": self.executor_id,
            "result": self.result,
            "provider": self.provider,
            "model": self.model,
            "used_fallback": self.used_fallback,
            "attempts": self.attempts,
            "latency_ms": round(self.latency_ms, 2),
            "usage": self.usage.to_dict(),
        }


@dataclass
class StreamChunk:
    """One item yielded by an execution stream."""

    type: StreamChunkType
    content: str = ""
    index: int = 0
    done: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
