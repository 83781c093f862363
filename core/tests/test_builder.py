"""
Tests for GraphBuilder: plan parsing, the fallback plan and fatal structure errors.
"""

import json

import pytest

from taskgraph.errors import GraphValidationError, MissingRootError
from taskgraph.graph.builder import GraphBuilder
from taskgraph.graph.node import ActionNode, NodeKind, SequentialNode
from taskgraph.schemas.planning import PlanningConstraints, PlanningContext

REQUEST = "Summarize my notes and save a note"


# ---- Fake oracle with a scripted answer ----
class FakeOracle:
    def __init__(self, response="", error=None):
        self.response = response
        self.error = error
        self.prompts = []

    async def propose(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


def _plan(*nodes):
    return json.dumps({"nodes": list(nodes)})


SUMMARIZE_PLAN = _plan(
    {"id": "root", "type": "sequential", "name": "Main Task", "children": ["search", "save"]},
    {
        "id": "search",
        "type": "action",
        "name": "Search Documents",
        "tool": "search_documents",
        "toolInput": {"query": "notes"},
    },
    {
        "id": "save",
        "type": "action",
        "name": "Create Document",
        "tool": "create_document",
        "toolInput": {"title": "Summary"},
        "dependencies": ["search"],
    },
)


def _context(**kwargs):
    kwargs.setdefault("available_tools", ["search_documents", "create_document"])
    return PlanningContext(user_request=REQUEST, **kwargs)


def _assert_fallback(graph, tool="handle_request"):
    assert graph.metadata["fallback_plan"] is True
    assert graph.root_node == "root"
    assert list(graph.nodes) == ["root", "action1"]
    root, action = graph.nodes["root"], graph.nodes["action1"]
    assert isinstance(root, SequentialNode)
    assert root.children == ["action1"]
    assert isinstance(action, ActionNode)
    assert action.tool == tool
    assert action.tool_input == {"request": REQUEST}


@pytest.mark.asyncio
async def test_builds_graph_from_plan():
    builder = GraphBuilder(FakeOracle(SUMMARIZE_PLAN))

    graph = await builder.build_graph(_context())

    assert graph.root_node == "root"
    assert graph.nodes["root"].kind == NodeKind.SEQUENTIAL
    assert graph.nodes["search"].tool == "search_documents"
    assert graph.nodes["save"].tool_input == {"title": "Summary"}
    assert graph.nodes["save"].dependencies == ["search"]
    assert graph.name.startswith("Task Graph for: Summarize my notes")
    assert graph.description == REQUEST
    assert "fallback_plan" not in graph.metadata
    assert graph.metadata["planning_context"]["user_request"] == REQUEST


@pytest.mark.asyncio
async def test_prompt_carries_request_tools_and_constraints():
    oracle = FakeOracle(SUMMARIZE_PLAN)
    context = _context(
        conversation_history=["hi", "hello"],
        constraints=PlanningConstraints(max_steps=5),
    )

    await GraphBuilder(oracle).build_graph(context)

    [prompt] = oracle.prompts
    assert REQUEST in prompt
    assert "Available Tools: search_documents, create_document" in prompt
    assert "2 previous messages" in prompt
    assert '"max_steps": 5' in prompt
    assert '"toolInput"' in prompt


def test_prompt_lists_tool_arguments():
    context = _context(
        tool_descriptions={
            "search_documents": {
                "description": "Search saved documents.\nReturns matches.",
                "parameters": {
                    "type": "object",
                    "properties": {"query": {"type": "string"}, "limit": {"type": "integer"}},
                    "required": ["query"],
                },
            }
        }
    )

    prompt = GraphBuilder(FakeOracle(SUMMARIZE_PLAN)).build_prompt(context)

    assert "- search_documents(query: string, limit?: integer): Search saved documents." in prompt
    assert "Returns matches." not in prompt
    assert "- create_document(" not in prompt


@pytest.mark.asyncio
async def test_accepts_fenced_bare_list_with_default_type():
    response = (
        "Here is the plan:\n```json\n"
        '[{"id": "root", "tool": "search_documents", "toolInput": {"query": "notes"}}]\n'
        "```"
    )

    graph = await GraphBuilder(FakeOracle(response)).build_graph(_context())

    assert "fallback_plan" not in graph.metadata
    assert isinstance(graph.nodes["root"], ActionNode)
    assert graph.nodes["root"].tool_input == {"query": "notes"}


@pytest.mark.asyncio
async def test_repairs_python_literals():
    response = "{'nodes': [{'id': 'root', 'type': 'Action', 'tool': 'search_documents'}]}"

    graph = await GraphBuilder(FakeOracle(response)).build_graph(_context())

    assert "fallback_plan" not in graph.metadata
    assert graph.nodes["root"].kind == NodeKind.ACTION


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        "I could not come up with a plan, sorry.",
        "",
        '{"nodes": []}',
        '{"plan": "do it"}',
        _plan({"id": "a", "tool": "t"}, {"id": "a", "tool": "t"}),
        _plan({"id": "a", "type": "action"}),
        _plan({"id": "a", "type": "loop", "children": ["b"]}),
        _plan({"id": "c", "type": "conditional", "children": ["a"]}, {"id": "a", "tool": "t"}),
        '{"nodes": ["not an object"]}',
    ],
)
async def test_unusable_plan_falls_back(response):
    graph = await GraphBuilder(FakeOracle(response)).build_graph(_context())

    _assert_fallback(graph)
    assert graph.metadata["fallback_reason"]


@pytest.mark.asyncio
async def test_oracle_error_falls_back():
    oracle = FakeOracle(error=ConnectionError("planner offline"))

    graph = await GraphBuilder(oracle).build_graph(_context())

    _assert_fallback(graph)
    assert "planner offline" in graph.metadata["fallback_reason"]


@pytest.mark.asyncio
async def test_plan_over_max_steps_falls_back():
    context = _context(constraints=PlanningConstraints(max_steps=2))

    graph = await GraphBuilder(FakeOracle(SUMMARIZE_PLAN)).build_graph(context)

    _assert_fallback(graph)


@pytest.mark.asyncio
async def test_fallback_tool_is_configurable():
    builder = GraphBuilder(FakeOracle("nope"), fallback_tool="search_documents")

    graph = await builder.build_graph(_context())

    _assert_fallback(graph, tool="search_documents")


@pytest.mark.asyncio
async def test_unknown_dependency_is_fatal():
    response = _plan({"id": "root", "tool": "t"}, {"id": "b", "tool": "t", "dependencies": ["ghost"]})

    with pytest.raises(GraphValidationError, match="ghost"):
        await GraphBuilder(FakeOracle(response)).build_graph(_context())


@pytest.mark.asyncio
async def test_dependency_cycle_is_fatal():
    response = _plan(
        {"id": "root", "tool": "t"},
        {"id": "a", "tool": "t", "dependencies": ["b"]},
        {"id": "b", "tool": "t", "dependencies": ["a"]},
    )

    with pytest.raises(GraphValidationError, match="cycle"):
        await GraphBuilder(FakeOracle(response)).build_graph(_context())


@pytest.mark.asyncio
async def test_plan_without_root_is_fatal():
    response = _plan(
        {"id": "a", "tool": "t", "dependencies": ["b"]},
        {"id": "b", "tool": "t", "dependencies": ["a"]},
    )

    with pytest.raises(MissingRootError):
        await GraphBuilder(FakeOracle(response)).build_graph(_context())
