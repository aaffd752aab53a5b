"""Mock LLM provider for tests and key-less local runs."""

from __future__ import annotations

import asyncio

from carecheck.core.llm.provider import ProviderResponse

DEFAULT_MOCK_MESSAGE = "Hi there! Just wanted to see how your afternoon is going."


class MockProvider:
    """Returns a canned completion, optionally after a delay or by raising.

    ``error`` is raised instead of returning when set; ``delay_seconds`` lets
    tests exercise the crafter's generation timeout.
    """

    def __init__(
        self,
        response_content: str = DEFAULT_MOCK_MESSAGE,
        *,
        error: Exception | None = None,
        delay_seconds: float = 0.0,
    ) -> None:
        self.response_content = response_content
        self.error = error
        self.delay_seconds = delay_seconds
        self.last_system_message: str = ""
        self.last_user_message: str = ""
        self.call_count: int = 0

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 200,
        temperature: float = 0.7,
    ) -> ProviderResponse:
        self.last_system_message = system_message
        self.last_user_message = user_message
        self.call_count += 1
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        return ProviderResponse(
            content=self.response_content,
            input_tokens=len(system_message.split()) + len(user_message.split()),
            output_tokens=len(self.response_content.split()),
            model="mock",
            latency_ms=self.delay_seconds * 1000,
        )
