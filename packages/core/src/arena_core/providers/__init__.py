"""Completion provider adapters."""

from ..config import APISettings
from ..llm_provider import CompletionProvider, LLMProviderType
from .anthropic_provider import AnthropicProvider
from .openai_provider import OpenAIProvider


def create_providers(api: APISettings) -> dict[str, CompletionProvider]:
    """Build a provider for every API key that is configured."""
    providers: dict[str, CompletionProvider] = {}
    anthropic_key = api.anthropic_api_key.get_secret_value()
    if anthropic_key:
        providers[LLMProviderType.ANTHROPIC.value] = AnthropicProvider(api_key=anthropic_key)
    openai_key = api.openai_api_key.get_secret_value()
    if openai_key:
        providers[LLMProviderType.OPENAI.value] = OpenAIProvider(api_key=openai_key)
    return providers


__all__ = [
    "AnthropicProvider",
    "OpenAIProvider",
    "create_providers",
]
