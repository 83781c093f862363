"""
Graph Runner - Drives a whole task graph to a terminal status.

Execution starts at the root node; composites run their children inline.
Nodes that could not run at that point (for example a sequential child that
depends on a later sibling) are picked up by a readiness sweep. Whatever is
still pending once no sweep makes progress can never run and is failed, so
a graph never reports ``completed`` with unexecuted work.
"""

import logging

from taskgraph.graph.cancellation import CancellationToken
from taskgraph.graph.dependencies import blocking_dependencies, dependencies_satisfied
from taskgraph.graph.dispatcher import NodeDispatcher
from taskgraph.graph.node import NodeStatus
from taskgraph.graph.task_graph import GraphStatus, TaskGraph
from taskgraph.observability import bind_trace_context, reset_trace_context

logger = logging.getLogger(__name__)

NEVER_READY = "Node never became ready"


def entry_node(graph: TaskGraph) -> str:
    """
    Node that traversal starts from.

    The root is the first dependency-free node in plan order, which can be a
    child listed ahead of its composite. Children only run through their
    owner, so start from the root's outermost owner instead.
    """
    owners = graph.owners()
    node_id = graph.root_node
    seen = {node_id}
    while node_id in owners and owners[node_id] not in seen:
        node_id = owners[node_id]
        seen.add(node_id)
    return node_id


class GraphRunner:
    """
    Runs graphs with a NodeDispatcher.

    Example:
        runner = GraphRunner(NodeDispatcher(tool_runner=tools, decision_maker=maker))
        graph = await runner.run(graph)
        print(graph.status)
    """

    def __init__(self, dispatcher: NodeDispatcher):
        self.dispatcher = dispatcher

    async def run(self, graph: TaskGraph, token: CancellationToken | None = None) -> TaskGraph:
        """
        Execute ``graph`` in place and return it.

        Never raises for execution problems: anything escaping traversal marks
        the graph failed with the message in ``metadata["error"]``.
        """
        ctx_token = bind_trace_context(graph_id=graph.id)
        try:
            graph.set_status(GraphStatus.EXECUTING)
            logger.info(f"🚀 Executing graph {graph.id} ({len(graph.nodes)} nodes)")

            await self.dispatcher.run_node(graph, entry_node(graph), token)
            await self._sweep(graph, token)
            await self._abandon_stalled(graph, token)

            final_status = graph.compute_final_status() or GraphStatus.FAILED
            graph.set_status(final_status)
            if final_status == GraphStatus.COMPLETED:
                logger.info(f"✓ Graph {graph.id} completed")
            else:
                failed = [n.id for n in graph.nodes_with_status(NodeStatus.FAILED)]
                logger.warning(f"✗ Graph {graph.id} failed (failed nodes: {failed})")
        except Exception as e:
            logger.error(f"✗ Graph {graph.id} execution error: {e}", exc_info=True)
            graph.metadata["error"] = str(e)
            graph.set_status(GraphStatus.FAILED)
        finally:
            reset_trace_context(ctx_token)
        return graph

    async def _sweep(self, graph: TaskGraph, token: CancellationToken | None) -> None:
        """Run or skip pending nodes until a full pass changes nothing."""
        progress = True
        while progress:
            progress = False
            owners = graph.owners()
            for node in list(graph.nodes.values()):
                if node.status != NodeStatus.PENDING:
                    continue

                owner = graph.get_node(owners[node.id]) if node.id in owners else None
                if owner is not None and owner.status in (NodeStatus.FAILED, NodeStatus.SKIPPED):
                    await self.dispatcher.skip_node(
                        graph, node.id, f"Parent '{owner.id}' {owner.status}"
                    )
                    progress = True
                    continue

                blocked_by = blocking_dependencies(graph, node)
                if blocked_by:
                    await self.dispatcher.skip_node(
                        graph, node.id, f"Dependencies did not complete: {blocked_by}"
                    )
                    progress = True
                    continue

                if owner is not None and owner.status != NodeStatus.COMPLETED:
                    continue
                if dependencies_satisfied(graph, node):
                    await self.dispatcher.run_node(graph, node.id, token)
                    progress = True

    async def _abandon_stalled(self, graph: TaskGraph, token: CancellationToken | None) -> None:
        reason = NEVER_READY
        if token is not None and token.is_cancelled:
            reason = f"Execution cancelled: {token.reason}"
        for node in graph.nodes_with_status(NodeStatus.PENDING):
            await self.dispatcher.abandon_node(graph, node.id, reason)
