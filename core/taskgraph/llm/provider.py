"""LLM Provider abstraction for pluggable planning backends."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class LLMResponse:
    """Response from an LLM call."""

    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str = ""
    raw_response: Any = None


@dataclass
class Tool:
    """A tool the planner can schedule."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


class LLMProvider(ABC):
    """
    Abstract LLM provider - plug in any LLM backend.

    Implementations should handle:
    - API authentication
    - Request/response formatting
    - Token counting
    """

    @abstractmethod
    def complete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation history [{role: "user"|"assistant", content: str}]
            system: System prompt
            max_tokens: Maximum tokens to generate
            json_mode: If True, request structured JSON output from the LLM

        Returns:
            LLMResponse with content and metadata
        """
        pass

    async def acomplete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Async completion.

        Default implementation runs complete() in a worker thread so a slow
        backend does not stall other graph branches. Subclasses with a native
        async client SHOULD override.
        """
        return await asyncio.to_thread(
            self.complete,
            messages,
            system,
            max_tokens,
            json_mode,
        )
