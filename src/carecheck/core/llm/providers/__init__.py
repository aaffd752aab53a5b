"""LLM provider implementations."""

from carecheck.core.llm.providers.anthropic import AnthropicProvider
from carecheck.core.llm.providers.mock import MockProvider
from carecheck.core.llm.providers.openai import OpenAIProvider

__all__ = ["AnthropicProvider", "MockProvider", "OpenAIProvider"]
