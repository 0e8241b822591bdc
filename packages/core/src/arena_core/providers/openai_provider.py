"""
OpenAI Provider - Wraps AsyncOpenAI behind the CompletionProvider interface.
"""

from typing import Any

from openai import AsyncOpenAI

from ..llm_provider import (
    CompletionMessage,
    CompletionProvider,
    CompletionResult,
    LLMProviderType,
)

DEFAULT_MAX_TOKENS = 4096


class OpenAIProvider(CompletionProvider):
    """OpenAI GPT provider."""

    name = LLMProviderType.OPENAI.value

    # Models that use max_completion_tokens instead of max_tokens
    _COMPLETION_TOKEN_MODELS = {"gpt-5.2", "gpt-5", "gpt-5-mini", "gpt-5-nano"}

    def __init__(self, api_key: str, client: AsyncOpenAI | None = None):
        self._client = client or AsyncOpenAI(api_key=api_key)

    def _uses_completion_tokens(self, model: str) -> bool:
        """Check if model uses max_completion_tokens instead of max_tokens."""
        return model.startswith("o") or model in self._COMPLETION_TOKEN_MODELS

    async def complete(
        self,
        model: str,
        messages: list[CompletionMessage],
        options: dict[str, Any] | None = None,
    ) -> CompletionResult:
        """Create a chat completion using the OpenAI API."""
        options = dict(options or {})

        # o-series and GPT-5 series use max_completion_tokens instead of max_tokens
        token_param = "max_completion_tokens" if self._uses_completion_tokens(model) else "max_tokens"
        api_kwargs: dict[str, Any] = {
            "model": model,
            token_param: options.pop("max_tokens", DEFAULT_MAX_TOKENS),
            "messages": [m.to_dict() for m in messages],
        }
        api_kwargs.update(options)

        response = await self._client.chat.completions.create(**api_kwargs)

        choice = response.choices[0]
        input_tokens = response.usage.prompt_tokens if response.usage else 0
        output_tokens = response.usage.completion_tokens if response.usage else 0

        return CompletionResult(
            text=choice.message.content or "",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=response.model or model,
            provider=self.name,
        )
