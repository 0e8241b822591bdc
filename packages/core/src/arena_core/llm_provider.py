"""
Completion provider abstraction.

Executors talk to upstream models only through ``CompletionProvider``:
given a model reference, a message list and options, return text plus
token usage. Anthropic and OpenAI adapters live in ``arena_core.providers``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class LLMProviderType(str, Enum):
    """Supported completion providers."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"


@dataclass
class CompletionMessage:
    """One chat message. ``role`` is "system", "user" or "assistant"."""

    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class CompletionResult:
    """Normalized completion from any provider."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    provider: str = ""


@dataclass
class ProviderBinding:
    """A provider plus the model and options an executor calls it with."""

    provider: "CompletionProvider"
    model: str
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.provider.name


class CompletionProvider(ABC):
    """Abstract base class for completion providers."""

    name: str = "provider"

    @abstractmethod
    async def complete(
        self,
        model: str,
        messages: list[CompletionMessage],
        options: dict[str, Any] | None = None,
    ) -> CompletionResult:
        """
        Produce a completion.

        Args:
            model: Model identifier
            messages: Conversation; a leading "system" message is the
                system prompt
            options: ``max_tokens``, ``temperature`` and provider-specific
                parameters

        Returns:
            Normalized CompletionResult
        """
        ...


def split_system(messages: list[CompletionMessage]) -> tuple[str, list[CompletionMessage]]:
    """Separate system messages from the conversation."""
    system_parts = [m.content for m in messages if m.role == "system"]
    rest = [m for m in messages if m.role != "system"]
    return "\n\n".join(system_parts), rest
