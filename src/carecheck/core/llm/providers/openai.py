"""OpenAI GPT provider."""

from __future__ import annotations

import time

from carecheck.core.llm.provider import GenerationError, ProviderResponse


class OpenAIProvider:
    """OpenAI provider using the async OpenAI SDK."""

    def __init__(self, api_key: str, model: str = "gpt-4o", max_retries: int = 2) -> None:
        import openai

        self.client = openai.AsyncOpenAI(api_key=api_key, max_retries=max_retries)
        self.model = model

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 200,
        temperature: float = 0.7,
    ) -> ProviderResponse:
        start = time.monotonic()
        response = await self.client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[
                {"role": "system", "content": system_message},
                {"role": "user", "content": user_message},
            ],
        )
        elapsed_ms = (time.monotonic() - start) * 1000

        if not response.choices or not response.choices[0].message.content:
            raise GenerationError("OpenAI response contained no message content")

        usage = response.usage
        return ProviderResponse(
            content=response.choices[0].message.content,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self.model,
            latency_ms=elapsed_ms,
        )
