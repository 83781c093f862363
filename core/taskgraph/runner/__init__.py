"""Tool catalog and tool runner."""

from taskgraph.runner.tool_registry import (
    RegisteredTool,
    ToolCatalog,
    ToolRegistry,
    ToolRunner,
    tool,
)

__all__ = ["RegisteredTool", "ToolCatalog", "ToolRegistry", "ToolRunner", "tool"]
