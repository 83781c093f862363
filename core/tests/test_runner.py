"""
Tests for GraphRunner: whole-graph traversal, final status and failure containment.
"""

import asyncio

import pytest

from taskgraph.graph.cancellation import CancellationToken
from taskgraph.graph.dispatcher import NodeDispatcher
from taskgraph.graph.node import (
    ActionNode,
    ConditionalNode,
    NodeStatus,
    ParallelNode,
    SequentialNode,
)
from taskgraph.graph.runner import GraphRunner, entry_node
from taskgraph.graph.task_graph import GraphStatus, TaskGraph
from taskgraph.planning.oracle import StaticDecisionMaker


class RecordingTools:
    def __init__(self, failures=None, on_call=None):
        self.failures = failures or {}
        self.on_call = on_call
        self.calls = []

    async def invoke(self, tool_name, args):
        self.calls.append(tool_name)
        if self.on_call is not None:
            self.on_call(tool_name)
        if tool_name in self.failures:
            raise RuntimeError(self.failures[tool_name])
        return {"tool": tool_name}


def _action(node_id, deps=None):
    return ActionNode(id=node_id, tool=node_id, dependencies=deps or [])


def _runner(tools):
    return GraphRunner(NodeDispatcher(tool_runner=tools, decision_maker=StaticDecisionMaker()))


def _assert_status_invariant(graph):
    statuses = {n.status for n in graph.nodes.values()}
    if graph.status == GraphStatus.COMPLETED:
        assert statuses <= {NodeStatus.COMPLETED, NodeStatus.SKIPPED}
    else:
        assert graph.status == GraphStatus.FAILED
        assert NodeStatus.FAILED in statuses
    assert NodeStatus.PENDING not in statuses
    assert NodeStatus.RUNNING not in statuses


@pytest.mark.asyncio
async def test_completed_graph_with_skipped_branch():
    graph = TaskGraph.from_nodes(
        [
            ConditionalNode(id="root", condition="true", children=["yes", "no"]),
            _action("yes"),
            _action("no"),
        ]
    )

    result = await _runner(RecordingTools()).run(graph)

    assert result is graph
    assert graph.status == GraphStatus.COMPLETED
    assert graph.nodes["no"].status == NodeStatus.SKIPPED
    _assert_status_invariant(graph)


@pytest.mark.asyncio
async def test_failed_node_fails_graph():
    tools = RecordingTools(failures={"a": "boom"})
    graph = TaskGraph.from_nodes(
        [SequentialNode(id="root", children=["a", "b"]), _action("a"), _action("b")]
    )

    await _runner(tools).run(graph)

    assert graph.status == GraphStatus.FAILED
    assert graph.nodes["b"].status == NodeStatus.COMPLETED
    assert "error" not in graph.metadata
    _assert_status_invariant(graph)


@pytest.mark.asyncio
async def test_dependent_of_failed_node_is_skipped():
    tools = RecordingTools(failures={"a": "boom"})
    graph = TaskGraph.from_nodes(
        [ParallelNode(id="root", children=["a", "b"]), _action("a"), _action("b", deps=["a"])]
    )

    await _runner(tools).run(graph)

    assert graph.status == GraphStatus.FAILED
    assert graph.nodes["b"].status == NodeStatus.SKIPPED
    assert "a" in graph.nodes["b"].metadata["skip_reason"]
    assert tools.calls == ["a"]
    _assert_status_invariant(graph)


@pytest.mark.asyncio
async def test_node_outside_root_tree_runs_once_ready():
    tools = RecordingTools()
    graph = TaskGraph.from_nodes([_action("a"), _action("b", deps=["a"]), _action("c", deps=["b"])])

    await _runner(tools).run(graph)

    assert graph.status == GraphStatus.COMPLETED
    assert tools.calls == ["a", "b", "c"]
    assert [e.node_id for e in graph.execution_history] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_children_of_failed_composite_are_skipped():
    graph = TaskGraph.from_nodes(
        [
            SequentialNode(id="root", children=["check"]),
            ConditionalNode(id="check", condition="undefined_name", children=["yes"]),
            _action("yes"),
        ]
    )

    await _runner(RecordingTools()).run(graph)

    assert graph.nodes["check"].status == NodeStatus.FAILED
    assert graph.nodes["yes"].status == NodeStatus.SKIPPED
    assert graph.status == GraphStatus.FAILED
    _assert_status_invariant(graph)


@pytest.mark.asyncio
async def test_cancellation_abandons_remaining_nodes():
    token = CancellationToken()

    def cancel_after_first(tool_name):
        token.cancel("user pressed stop")

    tools = RecordingTools(on_call=cancel_after_first)
    graph = TaskGraph.from_nodes(
        [SequentialNode(id="root", children=["a", "b", "c"]), _action("a"), _action("b"), _action("c")]
    )

    await _runner(tools).run(graph, token)

    assert tools.calls == ["a"]
    assert graph.nodes["a"].status == NodeStatus.COMPLETED
    for node_id in ("b", "c"):
        assert graph.nodes[node_id].status == NodeStatus.FAILED
        assert graph.nodes[node_id].error == "Execution cancelled: user pressed stop"
    assert graph.status == GraphStatus.FAILED
    _assert_status_invariant(graph)


@pytest.mark.asyncio
async def test_expired_deadline_cancels_execution():
    token = CancellationToken(max_duration=0.01)
    graph = TaskGraph.from_nodes([_action("a")])
    await asyncio.sleep(0.05)

    await _runner(RecordingTools()).run(graph, token)

    assert graph.status == GraphStatus.FAILED
    assert graph.nodes["a"].error == "Execution cancelled: max duration exceeded"


@pytest.mark.asyncio
async def test_runner_never_raises():
    class ExplodingDispatcher:
        async def run_node(self, graph, node_id, token=None):
            raise RuntimeError("dispatcher exploded")

    graph = TaskGraph.from_nodes([_action("a")])

    await GraphRunner(ExplodingDispatcher()).run(graph)

    assert graph.status == GraphStatus.FAILED
    assert graph.metadata["error"] == "dispatcher exploded"


@pytest.mark.asyncio
async def test_children_listed_before_their_conditional_run_through_it():
    tools = RecordingTools()
    graph = TaskGraph.from_nodes(
        [
            _action("yes"),
            _action("no"),
            ConditionalNode(id="check", condition="false", children=["yes", "no"]),
        ]
    )
    assert graph.root_node == "yes"
    assert entry_node(graph) == "check"

    await _runner(tools).run(graph)

    assert tools.calls == ["no"]
    assert graph.nodes["yes"].status == NodeStatus.SKIPPED
    assert graph.status == GraphStatus.COMPLETED
    _assert_status_invariant(graph)


def test_entry_node_walks_up_to_outermost_owner():
    graph = TaskGraph.from_nodes(
        [
            _action("leaf"),
            ParallelNode(id="fan", children=["leaf", "other"]),
            _action("other"),
            SequentialNode(id="outer", children=["fan"]),
        ]
    )

    assert graph.root_node == "leaf"
    assert entry_node(graph) == "outer"
