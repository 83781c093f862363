"""Scripted LLM provider for tests and offline runs."""

from typing import Any

from taskgraph.llm.provider import LLMProvider, LLMResponse


class MockLLMProvider(LLMProvider):
    """
    Returns canned responses in order, repeating the last one when exhausted.

    Every call is recorded in ``calls`` for assertions.
    """

    def __init__(self, responses: list[str] | str | None = None, model: str = "mock"):
        if isinstance(responses, str):
            responses = [responses]
        self.responses = list(responses or ["{}"])
        self.model = model
        self.calls: list[dict[str, Any]] = []

    def complete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> LLMResponse:
        self.calls.append({"messages": messages, "system": system, "json_mode": json_mode})
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        return LLMResponse(content=self.responses[index], model=self.model)
