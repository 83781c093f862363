"""
Node Dispatcher - Runs one node of a task graph by kind.

The dispatcher:
1. Ignores nodes that are not pending
2. Checks the cancellation token and the node's dependencies
3. Routes the node to its kind's strategy (tool call, decision, composite)
4. Records the outcome on the node, plus a TaskExecution for leaf work
   and for any failure
5. Executes children that became ready once the node completed

Failures stay local to the node: every exception raised by a tool, decision
maker or condition is recorded as a failed node and never re-raised, so one
failing branch cannot corrupt sibling branches already in flight.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from taskgraph.errors import ConfigurationError, ExecutionCancelledError
from taskgraph.graph.cancellation import CancellationToken
from taskgraph.graph.dependencies import dependencies_satisfied
from taskgraph.graph.node import (
    ActionNode,
    ConditionalNode,
    DecisionNode,
    NodeStatus,
    ParallelNode,
    SequentialNode,
    TaskNode,
)
from taskgraph.graph.safe_eval import safe_eval
from taskgraph.graph.task_graph import TaskExecution, TaskGraph
from taskgraph.observability import bind_trace_context, reset_trace_context
from taskgraph.planning.oracle import DecisionContext, DecisionMaker
from taskgraph.runner.tool_registry import ToolRunner
from taskgraph.runtime.event_bus import EventBus, EventType

ConditionEvaluator = Callable[[str, TaskGraph], bool | Awaitable[bool]]


def build_condition_context(graph: TaskGraph) -> dict[str, Any]:
    """Names visible to a condition expression."""
    return {
        "results": graph.results(),
        "status": {n.id: str(n.status) for n in graph.nodes.values()},
        "completed": [n.id for n in graph.nodes_with_status(NodeStatus.COMPLETED)],
        "failed": [n.id for n in graph.nodes_with_status(NodeStatus.FAILED)],
        "history": [e.model_dump() for e in graph.execution_history],
        "request": graph.description,
        "true": True,
        "false": False,
        "null": None,
        "none": None,
    }


def evaluate_condition(condition: str, graph: TaskGraph) -> bool:
    """
    Default condition evaluator.

    Example conditions:
        "status['search'] == 'completed'"
        "results.search.count > 0"
        "'urgent' in request"
    """
    return bool(safe_eval(condition, build_condition_context(graph)))


class NodeDispatcher:
    """
    Executes task graph nodes.

    Example:
        dispatcher = NodeDispatcher(
            tool_runner=tool_registry,
            decision_maker=StaticDecisionMaker(),
        )
        await dispatcher.run_node(graph, graph.root_node)
    """

    def __init__(
        self,
        tool_runner: ToolRunner,
        decision_maker: DecisionMaker,
        condition_evaluator: ConditionEvaluator | None = None,
        event_bus: EventBus | None = None,
    ):
        """
        Args:
            tool_runner: Runs tools for action nodes
            decision_maker: Produces outcomes for decision nodes
            condition_evaluator: Evaluates conditional node predicates
                (defaults to a safe expression evaluator over graph state)
            event_bus: Optional bus for node lifecycle events
        """
        self.tool_runner = tool_runner
        self.decision_maker = decision_maker
        self.condition_evaluator = condition_evaluator or evaluate_condition
        self.logger = logging.getLogger(__name__)
        self._event_bus = event_bus

    async def run_node(
        self,
        graph: TaskGraph,
        node_id: str,
        token: CancellationToken | None = None,
    ) -> None:
        """
        Execute a node if it is pending and ready.

        Returns without side effects for nodes that are not pending. A node
        whose dependencies are not yet completed goes back to pending so the
        caller can retry it later.
        """
        node = graph.require_node(node_id)
        if node.status != NodeStatus.PENDING:
            return

        ctx_token = bind_trace_context(node_id=node.id)
        try:
            await self._run_pending_node(graph, node, token)
        finally:
            reset_trace_context(ctx_token)

    async def _run_pending_node(
        self,
        graph: TaskGraph,
        node: TaskNode,
        token: CancellationToken | None,
    ) -> None:
        if token is not None:
            try:
                token.check()
            except ExecutionCancelledError as e:
                await self.abandon_node(graph, node.id, str(e))
                return

        node.mark_running()
        if not dependencies_satisfied(graph, node):
            node.mark_pending()
            self.logger.debug(f"   ⏳ {node.id} waiting on dependencies {node.dependencies}")
            return

        self.logger.info(f"▶ {node.name} ({node.kind})")
        await self._emit(EventType.NODE_STARTED, graph, node.id, kind=str(node.kind))

        try:
            result = await self._dispatch(graph, node, token)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._record_failure(graph, node, e)
            return

        node.mark_completed(result)
        self._record_execution(graph, node, result=result)
        self.logger.info(f"   ✓ {node.name} completed in {node.duration or 0:.0f}ms")
        await self._emit(EventType.NODE_COMPLETED, graph, node.id, duration=node.duration)

        # Children held back by sibling dependencies can run now
        for child_id in node.child_ids():
            child = graph.get_node(child_id)
            if (
                child is not None
                and child.status == NodeStatus.PENDING
                and dependencies_satisfied(graph, child)
            ):
                await self.run_node(graph, child_id, token)

    async def _dispatch(
        self,
        graph: TaskGraph,
        node: TaskNode,
        token: CancellationToken | None,
    ) -> Any:
        if isinstance(node, ActionNode):
            return await self._run_action(node)
        if isinstance(node, DecisionNode):
            return await self._run_decision(graph, node)
        if isinstance(node, ParallelNode):
            return await self._run_parallel(graph, node, token)
        if isinstance(node, SequentialNode):
            return await self._run_sequential(graph, node, token)
        if isinstance(node, ConditionalNode):
            return await self._run_conditional(graph, node, token)
        raise ConfigurationError(f"Unknown node type: {node.kind}")

    # === STRATEGIES ===

    async def _run_action(self, node: ActionNode) -> Any:
        if not node.tool:
            raise ConfigurationError(f"Action node {node.id} has no tool specified")
        self.logger.info(f"   🔧 {node.tool}", extra={"tool": node.tool})
        return await self.tool_runner.invoke(node.tool, dict(node.tool_input or {}))

    async def _run_decision(self, graph: TaskGraph, node: DecisionNode) -> Any:
        context = DecisionContext.from_graph(graph, node)
        return await self.decision_maker.decide(context)

    async def _run_parallel(
        self,
        graph: TaskGraph,
        node: ParallelNode,
        token: CancellationToken | None,
    ) -> list[Any]:
        if not node.children:
            raise ConfigurationError(f"Parallel node {node.id} has no children")

        self.logger.info(f"   ⑂ Fan-out: {len(node.children)} branches in parallel")
        # Each child settles on its own; gather is a join over all of them
        await asyncio.gather(*(self.run_node(graph, c, token) for c in node.children))
        return [self._child_result(graph, c) for c in node.children]

    async def _run_sequential(
        self,
        graph: TaskGraph,
        node: SequentialNode,
        token: CancellationToken | None,
    ) -> list[Any]:
        if not node.children:
            raise ConfigurationError(f"Sequential node {node.id} has no children")

        results: list[Any] = []
        for index, child_id in enumerate(node.children):
            await self.run_node(graph, child_id, token)
            results.append(self._child_result(graph, child_id))

            child = graph.get_node(child_id)
            if node.stop_on_failure and child is not None and child.status == NodeStatus.FAILED:
                reason = f"Sequence '{node.id}' stopped after '{child_id}' failed"
                for remaining in node.children[index + 1 :]:
                    await self.skip_node(graph, remaining, reason)
                    results.append(None)
                break
        return results

    async def _run_conditional(
        self,
        graph: TaskGraph,
        node: ConditionalNode,
        token: CancellationToken | None,
    ) -> Any:
        if not node.condition or not node.children:
            raise ConfigurationError(f"Conditional node {node.id} missing condition or children")

        outcome = self.condition_evaluator(node.condition, graph)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        condition_met = bool(outcome)
        self.logger.info(f"   ⎇ Condition '{node.condition}' -> {condition_met}")

        if condition_met:
            taken, untaken = node.true_branch, node.false_branch
        else:
            taken, untaken = node.false_branch, node.true_branch

        if untaken is not None:
            await self.skip_node(
                graph,
                untaken,
                f"Branch not taken: condition of '{node.id}' was {condition_met}",
            )
        if taken is None:
            return None

        await self.run_node(graph, taken, token)
        return self._child_result(graph, taken)

    # === OUTCOME HELPERS ===

    async def skip_node(self, graph: TaskGraph, node_id: str, reason: str) -> None:
        """Mark a pending node and its pending descendants as skipped."""
        node = graph.get_node(node_id)
        if node is None or node.status != NodeStatus.PENDING:
            return
        node.mark_skipped(reason)
        self.logger.info(f"   ⤼ Skipped {node.id}: {reason}")
        await self._emit(EventType.NODE_SKIPPED, graph, node.id, reason=reason)
        for child_id in node.child_ids():
            await self.skip_node(graph, child_id, reason)

    async def abandon_node(self, graph: TaskGraph, node_id: str, reason: str) -> None:
        """Fail a pending node that will never run (cancelled or never ready)."""
        node = graph.get_node(node_id)
        if node is None or node.status != NodeStatus.PENDING:
            return
        node.mark_failed(reason)
        self.logger.warning(f"   ✗ {node.id} abandoned: {reason}")
        await self._emit(EventType.NODE_FAILED, graph, node.id, error=reason)

    async def _record_failure(self, graph: TaskGraph, node: TaskNode, error: Exception) -> None:
        message = str(error) or type(error).__name__
        node.mark_failed(message)
        self._record_execution(graph, node, error=message)
        self.logger.error(f"   ✗ {node.name} failed: {message}")
        await self._emit(EventType.NODE_FAILED, graph, node.id, error=message)

    @staticmethod
    def _record_execution(
        graph: TaskGraph,
        node: TaskNode,
        result: Any = None,
        error: str | None = None,
    ) -> None:
        # A completed composite is summarized by its children; a failed one is recorded
        if node.is_composite and error is None:
            return
        graph.record_execution(
            TaskExecution(
                node_id=node.id,
                action=node.name,
                input=dict(node.tool_input) if isinstance(node, ActionNode) else None,
                result=result,
                success=error is None,
                error=error,
                duration=node.duration or 0.0,
            )
        )

    @staticmethod
    def _child_result(graph: TaskGraph, child_id: str) -> Any:
        child = graph.get_node(child_id)
        return child.result if child is not None else None

    async def _emit(self, event_type: EventType, graph: TaskGraph, node_id: str, **data) -> None:
        if self._event_bus is not None:
            await self._event_bus.emit_node_event(event_type, graph.id, node_id, **data)
