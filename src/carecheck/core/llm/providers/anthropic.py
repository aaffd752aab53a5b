"""Anthropic Claude provider."""

from __future__ import annotations

import time

from carecheck.core.llm.provider import GenerationError, ProviderResponse


class AnthropicProvider:
    """Claude provider using the async Anthropic SDK."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5-20250929",
        max_retries: int = 2,
    ) -> None:
        import anthropic

        self.client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=max_retries)
        self.model = model

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 200,
        temperature: float = 0.7,
    ) -> ProviderResponse:
        start = time.monotonic()
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_message,
            messages=[{"role": "user", "content": user_message}],
        )
        elapsed_ms = (time.monotonic() - start) * 1000

        text_blocks = [b.text for b in response.content if getattr(b, "type", "") == "text"]
        if not text_blocks:
            raise GenerationError("Anthropic response contained no text block")

        return ProviderResponse(
            content="".join(text_blocks),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=self.model,
            latency_ms=elapsed_ms,
        )
