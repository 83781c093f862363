"""LLM provider abstraction."""

from taskgraph.llm.mock import MockLLMProvider
from taskgraph.llm.provider import LLMProvider, LLMResponse, Tool

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "MockLLMProvider",
    "Tool",
]
