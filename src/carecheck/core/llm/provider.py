"""LLM provider protocol — the opaque text-generation call behind check-in copy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


class GenerationError(Exception):
    """Raised by providers when a completion is missing or malformed."""


@dataclass
class ProviderResponse:
    """Response from an LLM provider."""

    content: str
    input_tokens: int
    output_tokens: int
    model: str
    latency_ms: float


@runtime_checkable
class LLMProvider(Protocol):
    """Abstract interface for a single system + user prompt completion.

    Implementations may raise anything (network, timeout, SDK errors); the
    message crafter treats every failure as a reason to use its fallback pool.
    """

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 200,
        temperature: float = 0.7,
    ) -> ProviderResponse: ...


def create_provider(
    provider_name: str,
    api_key: str = "",
    model: str = "",
    max_retries: int = 2,
) -> LLMProvider:
    """Factory function to create an LLM provider by name.

    Args:
        provider_name: "anthropic", "openai", or "mock"
        api_key: API key for the provider.
        model: Model identifier override.
        max_retries: Transport-level retries handled by the SDK client.
    """
    if provider_name == "anthropic":
        from carecheck.core.llm.providers.anthropic import AnthropicProvider

        return AnthropicProvider(
            api_key=api_key,
            model=model or "claude-sonnet-4-5-20250929",
            max_retries=max_retries,
        )
    elif provider_name == "openai":
        from carecheck.core.llm.providers.openai import OpenAIProvider

        return OpenAIProvider(api_key=api_key, model=model or "gpt-4o", max_retries=max_retries)
    elif provider_name == "mock":
        from carecheck.core.llm.providers.mock import MockProvider

        return MockProvider()
    else:
        raise ValueError(f"Unknown LLM provider: {provider_name}")
