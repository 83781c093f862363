"""
Graph Builder - Turns a planning context into a validated TaskGraph.

The builder asks the planning oracle for a plan, parses the (untrusted)
response into typed nodes and assembles the graph. Oracle output that is
unusable (not JSON, no nodes, duplicate ids, schema errors, too many steps)
is replaced by a one-step fallback plan. A plan that parses but is
structurally broken (dangling ids, cycles, no root) is a construction error
and is raised to the caller.
"""

import json
import logging
from typing import Any

from pydantic import ValidationError

from taskgraph.config import DEFAULT_FALLBACK_TOOL
from taskgraph.errors import PlanParseError
from taskgraph.graph.node import ActionNode, SequentialNode, TaskNode, parse_node
from taskgraph.graph.task_graph import TaskGraph
from taskgraph.planning.json_repair import parse_json_response
from taskgraph.planning.oracle import PlanningOracle
from taskgraph.schemas.planning import PlanningContext

logger = logging.getLogger(__name__)

_EXAMPLE_PLAN = {
    "nodes": [
        {
            "id": "root",
            "type": "sequential",
            "name": "Main Task",
            "description": "Execute main task",
            "dependencies": [],
            "children": ["step1", "step2"],
        },
        {
            "id": "step1",
            "type": "action",
            "name": "Search Documents",
            "description": "Find relevant information",
            "dependencies": [],
            "tool": "search_documents",
            "toolInput": {"query": "example query"},
        },
        {
            "id": "step2",
            "type": "action",
            "name": "Create Document",
            "description": "Save the outcome",
            "dependencies": ["step1"],
            "tool": "create_document",
            "toolInput": {"title": "Summary"},
        },
    ]
}


class GraphBuilder:
    """
    Builds task graphs from planning contexts.

    Example:
        builder = GraphBuilder(oracle=LLMPlanningOracle(provider))
        graph = await builder.build_graph(PlanningContext(user_request="..."))
    """

    def __init__(self, oracle: PlanningOracle, fallback_tool: str = DEFAULT_FALLBACK_TOOL):
        self.oracle = oracle
        self.fallback_tool = fallback_tool

    def build_prompt(self, context: PlanningContext) -> str:
        """Planning prompt: request, tools, constraints and the output format."""
        tools = ", ".join(context.available_tools) or "(none)"
        lines = [
            "Break down the following user request into a structured task graph.",
            "",
            f'User Request: "{context.user_request}"',
            "",
            f"Available Tools: {tools}",
        ]
        for name in context.available_tools:
            details = context.tool_descriptions.get(name)
            if details is not None:
                lines.append(_describe_tool(name, details))
        lines += [
            "",
            f"Conversation Context: {len(context.conversation_history)} previous messages",
        ]
        constraints = context.constraints.model_dump(exclude_none=True)
        if constraints:
            lines.append(f"Constraints: {json.dumps(constraints)}")
        lines += [
            "",
            "Please create a task graph that:",
            "1. Decomposes the request into logical steps",
            "2. Identifies dependencies between steps",
            "3. Uses only the available tools for each action, with toolInput keys",
            "   matching the arguments listed for that tool",
            "4. Includes decision points where needed",
            "5. Considers parallel execution where possible",
            "",
            "Node types: action, decision, parallel, sequential, conditional.",
            "Each node has: id, type, name, description, dependencies, and",
            "children (composite types), tool and toolInput (action),",
            "condition (conditional; children are [true_branch, false_branch]).",
            "The first node without dependencies is the root.",
            "",
            "Return only JSON in this structure:",
            json.dumps(_EXAMPLE_PLAN, indent=2),
        ]
        return "\n".join(lines)

    async def build_graph(self, context: PlanningContext) -> TaskGraph:
        """
        Ask the oracle for a plan and build a validated graph from it.

        Raises:
            GraphValidationError: the plan references unknown nodes or has cycles
            MissingRootError: every node in the plan has dependencies
        """
        prompt = self.build_prompt(context)
        fallback_reason = None
        try:
            response = await self.oracle.propose(prompt)
            nodes = self.parse_plan(response, max_steps=context.constraints.max_steps)
        except (PlanParseError, ValidationError) as e:
            fallback_reason = str(e)
        except Exception as e:
            fallback_reason = f"Planning oracle failed: {e}"

        if fallback_reason is not None:
            logger.warning(f"⚠ Using fallback plan: {fallback_reason}")
            nodes = self.fallback_nodes(context)

        metadata: dict[str, Any] = {"planning_context": context.summary()}
        if fallback_reason is not None:
            metadata["fallback_plan"] = True
            metadata["fallback_reason"] = fallback_reason

        graph = TaskGraph.from_nodes(
            nodes,
            name=f"Task Graph for: {context.user_request[:50]}...",
            description=context.user_request,
            metadata=metadata,
        )
        logger.info(f"📋 Built graph {graph.id} with {len(graph.nodes)} nodes (root: {graph.root_node})")
        return graph

    def parse_plan(self, response: str, max_steps: int | None = None) -> list[TaskNode]:
        """
        Parse oracle output into nodes.

        Raises:
            PlanParseError: not JSON, no nodes, duplicate ids or too many steps
            ValidationError: a node does not match its kind's schema
        """
        data = parse_json_response(response)
        if data is None:
            raise PlanParseError("Plan response is not valid JSON")

        raw_nodes = data.get("nodes") if isinstance(data, dict) else data
        if not isinstance(raw_nodes, list) or not raw_nodes:
            raise PlanParseError("Plan contains no nodes")
        if max_steps is not None and len(raw_nodes) > max_steps:
            raise PlanParseError(f"Plan has {len(raw_nodes)} nodes, more than max_steps={max_steps}")

        nodes = []
        seen: set[str] = set()
        for raw in raw_nodes:
            if not isinstance(raw, dict):
                raise PlanParseError(f"Plan node is not an object: {raw!r}")
            node = parse_node(_normalize_node(raw))
            if node.id in seen:
                raise PlanParseError(f"Duplicate node id in plan: '{node.id}'")
            seen.add(node.id)
            nodes.append(node)
        return nodes

    def fallback_nodes(self, context: PlanningContext) -> list[TaskNode]:
        """One sequential root running the fallback tool on the raw request."""
        return [
            SequentialNode(
                id="root",
                name="Execute Request",
                description=context.user_request,
                children=["action1"],
            ),
            ActionNode(
                id="action1",
                name="Process Request",
                description="Process the user request",
                tool=self.fallback_tool,
                tool_input={"request": context.user_request},
            ),
        ]


def _describe_tool(name: str, details: dict[str, Any]) -> str:
    """One prompt line per tool: ``- name(arg: type, opt?: type): description``."""
    parameters = details.get("parameters") or {}
    required = set(parameters.get("required", []))
    args = ", ".join(
        f"{arg}{'' if arg in required else '?'}: {schema.get('type', 'any')}"
        for arg, schema in parameters.get("properties", {}).items()
    )
    description = (details.get("description") or "").strip().splitlines()
    summary = description[0] if description else ""
    return f"- {name}({args}): {summary}"


def _normalize_node(raw: dict[str, Any]) -> dict[str, Any]:
    """Map oracle field names onto the node model (``type`` -> ``kind``)."""
    data = dict(raw)
    kind = data.pop("type", None)
    if "kind" not in data:
        data["kind"] = kind or "action"
    if isinstance(data["kind"], str):
        data["kind"] = data["kind"].strip().lower()
    if "id" in data and not isinstance(data["id"], str):
        data["id"] = str(data["id"])
    return data
