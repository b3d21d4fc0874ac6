"""LLM adapter layer: OpenAI-compatible and Anthropic behind a common protocol."""

from articlegen.llm.anthropic_provider import AnthropicProvider
from articlegen.llm.base import ChatCompletion, LLMProvider, ProviderError
from articlegen.llm.gateway import ErrorCode, GatewayResult, ModelCallConfig, call_model
from articlegen.llm.openai_provider import OpenAIProvider


def get_provider(provider_name: str, **kwargs: object) -> LLMProvider:
    """Return the configured LLM provider. provider_name: 'openai' | 'anthropic'."""
    if provider_name.lower() == "anthropic":
        kwargs.pop("base_url", None)
        return AnthropicProvider(**kwargs)
    return OpenAIProvider(**kwargs)


__all__ = [
    "AnthropicProvider",
    "ChatCompletion",
    "ErrorCode",
    "GatewayResult",
    "LLMProvider",
    "ModelCallConfig",
    "OpenAIProvider",
    "ProviderError",
    "call_model",
    "get_provider",
]
