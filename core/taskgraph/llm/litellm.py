"""LiteLLM provider - one interface to Anthropic, OpenAI, Ollama and others."""

import logging
from typing import Any

import litellm

from taskgraph.llm.provider import LLMProvider, LLMResponse

logger = logging.getLogger(__name__)


class LiteLLMProvider(LLMProvider):
    """
    LLM provider backed by LiteLLM.

    Example:
        llm = LiteLLMProvider(model="anthropic/claude-haiku-4-5-20251001")
        response = await llm.acomplete([{"role": "user", "content": "hi"}])
    """

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        api_base: str | None = None,
        temperature: float = 0.2,
    ):
        self.model = model
        self.api_key = api_key
        self.api_base = api_base
        self.temperature = temperature

    def _build_kwargs(
        self,
        messages: list[dict[str, Any]],
        system: str,
        max_tokens: int,
        json_mode: bool,
    ) -> dict[str, Any]:
        full_messages = list(messages)
        if system:
            full_messages.insert(0, {"role": "system", "content": system})

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": full_messages,
            "max_tokens": max_tokens,
            "temperature": self.temperature,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    def _to_response(self, response: Any) -> LLMResponse:
        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=choice.message.content or "",
            model=getattr(response, "model", self.model) or self.model,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            stop_reason=choice.finish_reason or "",
            raw_response=response,
        )

    def complete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> LLMResponse:
        response = litellm.completion(**self._build_kwargs(messages, system, max_tokens, json_mode))
        return self._to_response(response)

    async def acomplete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> LLMResponse:
        response = await litellm.acompletion(
            **self._build_kwargs(messages, system, max_tokens, json_mode)
        )
        result = self._to_response(response)
        logger.debug(
            f"LLM call to {result.model}: {result.input_tokens} in / {result.output_tokens} out"
        )
        return result
