"""
Anthropic Provider - Wraps AsyncAnthropic behind the CompletionProvider interface.
"""

from typing import Any

from anthropic import AsyncAnthropic

from ..llm_provider import (
    CompletionMessage,
    CompletionProvider,
    CompletionResult,
    LLMProviderType,
    split_system,
)

DEFAULT_MAX_TOKENS = 4096


class AnthropicProvider(CompletionProvider):
    """Anthropic Claude provider."""

    name = LLMProviderType.ANTHROPIC.value

    def __init__(self, api_key: str, client: AsyncAnthropic | None = None):
        self._client = client or AsyncAnthropic(api_key=api_key)

    async def complete(
        self,
        model: str,
        messages: list[CompletionMessage],
        options: dict[str, Any] | None = None,
    ) -> CompletionResult:
        """Create a message using the Claude API."""
        options = dict(options or {})
        system, conversation = split_system(messages)

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": options.pop("max_tokens", DEFAULT_MAX_TOKENS),
            "messages": [m.to_dict() for m in conversation],
        }
        if system:
            kwargs["system"] = system
        if "temperature" in options:
            kwargs["temperature"] = options.pop("temperature")
        kwargs.update(options)

        response = await self._client.messages.create(**kwargs)

        text_content = "".join(
            block.text for block in response.content if block.type == "text"
        )

        return CompletionResult(
            text=text_content,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=model,
            provider=self.name,
        )
