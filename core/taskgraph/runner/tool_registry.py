"""Tool registration, discovery and invocation.

ToolRegistry plays two roles for the executor:
- Tool Catalog: list_tool_names() and describe() feed the PlanningContext
- Tool Runner: invoke(name, args) runs a tool for an action node
"""

import asyncio
import importlib.util
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from taskgraph.errors import ToolNotFoundError
from taskgraph.llm.provider import Tool

logger = logging.getLogger(__name__)


@runtime_checkable
class ToolRunner(Protocol):
    """Executes a named capability. Any raised error fails the calling node."""

    async def invoke(self, tool_name: str, args: dict[str, Any]) -> Any: ...


@runtime_checkable
class ToolCatalog(Protocol):
    def list_tool_names(self) -> list[str]: ...

    def describe(self) -> dict[str, dict[str, Any]]: ...


@dataclass
class RegisteredTool:
    """A tool with its executor function."""

    tool: Tool
    executor: Callable[[dict], Any]

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.executor)


_JSON_TYPES: dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
}


def parameters_schema(func: Callable) -> dict[str, Any]:
    """JSON schema for a tool's keyword arguments, read from its signature.

    Unannotated or unrecognized annotations are treated as strings.
    """
    properties: dict[str, Any] = {}
    required: list[str] = []
    for param in inspect.signature(func).parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD) or param.name in ("self", "cls"):
            continue
        properties[param.name] = {"type": _JSON_TYPES.get(param.annotation, "string")}
        if param.default is param.empty:
            required.append(param.name)
    return {"type": "object", "properties": properties, "required": required}


class ToolRegistry:
    """
    Manages tool discovery, registration and invocation.

    Executors take the tool input dict. Coroutine executors are awaited;
    plain functions run in a worker thread so parallel branches overlap.

    Example:
        registry = ToolRegistry()

        @tool(description="Search saved documents")
        def search_documents(query: str, limit: int = 5) -> dict:
            ...

        registry.register_function(search_documents)
        result = await registry.invoke("search_documents", {"query": "notes"})
    """

    def __init__(self):
        self._tools: dict[str, RegisteredTool] = {}

    def register(
        self,
        name: str,
        tool: Tool,
        executor: Callable[[dict], Any],
    ) -> None:
        """
        Register a single tool with its executor.

        Args:
            name: Tool name (must match tool.name)
            tool: Tool definition
            executor: Function that takes tool input dict and returns result
        """
        self._tools[name] = RegisteredTool(tool=tool, executor=executor)

    def register_function(
        self,
        func: Callable,
        name: str | None = None,
        description: str | None = None,
    ) -> None:
        """
        Register a function as a tool, auto-generating the Tool definition.

        Args:
            func: Function to register (sync or async)
            name: Tool name (defaults to function name)
            description: Tool description (defaults to docstring)
        """
        tool_name = name or func.__name__
        tool_desc = description or func.__doc__ or f"Run {tool_name}"
        tool = Tool(
            name=tool_name,
            description=tool_desc.strip(),
            parameters=parameters_schema(func),
        )

        if inspect.iscoroutinefunction(func):

            async def async_executor(inputs: dict) -> Any:
                return await func(**inputs)

            self.register(tool_name, tool, async_executor)
        else:

            def executor(inputs: dict) -> Any:
                return func(**inputs)

            self.register(tool_name, tool, executor)

    def discover_from_module(self, module_path: Path) -> int:
        """
        Load @tool decorated functions from a Python module file.

        Args:
            module_path: Path to a tools.py file

        Returns:
            Number of tools discovered
        """
        if not module_path.exists():
            return 0

        spec = importlib.util.spec_from_file_location("taskgraph_tools", module_path)
        if spec is None or spec.loader is None:
            return 0

        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        count = 0
        for name in dir(module):
            obj = getattr(module, name)
            if callable(obj) and hasattr(obj, "_tool_metadata"):
                metadata = obj._tool_metadata
                self.register_function(
                    obj,
                    name=metadata.get("name", name),
                    description=metadata.get("description"),
                )
                count += 1

        logger.info(f"Discovered {count} tools in {module_path}")
        return count

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get_tools(self) -> dict[str, Tool]:
        """Get all registered Tool objects."""
        return {name: rt.tool for name, rt in self._tools.items()}

    def describe(self) -> dict[str, dict[str, Any]]:
        """Description and argument schema of every registered tool, for planning."""
        return {
            name: {"description": rt.tool.description, "parameters": rt.tool.parameters}
            for name, rt in self._tools.items()
        }

    def list_tool_names(self) -> list[str]:
        """Names of the tools registered right now."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    async def invoke(self, tool_name: str, args: dict[str, Any]) -> Any:
        """
        Run a tool and return its raw result.

        Raises:
            ToolNotFoundError: tool is not registered
            Exception: whatever the tool raises, unchanged
        """
        registered = self._tools.get(tool_name)
        if registered is None:
            raise ToolNotFoundError(tool_name)

        logger.debug(f"Invoking tool {tool_name} with {sorted(args)}")
        if registered.is_async:
            return await registered.executor(args)
        return await asyncio.to_thread(registered.executor, args)


def tool(
    description: str | None = None,
    name: str | None = None,
) -> Callable:
    """
    Decorator to mark a function as a tool.

    Usage:
        @tool(description="Create a new note")
        def create_document(title: str, content: str) -> dict:
            return {"id": "doc_1"}
    """

    def decorator(func: Callable) -> Callable:
        func._tool_metadata = {
            "name": name or func.__name__,
            "description": description or func.__doc__,
        }
        return func

    return decorator
