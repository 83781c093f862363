"""Dependency Resolver - decides whether a node's prerequisites are met."""

from taskgraph.errors import GraphValidationError
from taskgraph.graph.node import NodeStatus, TaskNode
from taskgraph.graph.task_graph import TaskGraph


def _dependency_nodes(graph: TaskGraph, node: TaskNode) -> list[TaskNode]:
    resolved = []
    for dep_id in node.dependencies:
        dep = graph.get_node(dep_id)
        if dep is None:
            # The builder rejects dangling ids, so reaching this is a bug upstream
            raise GraphValidationError(
                f"Node '{node.id}' depends on missing node '{dep_id}' in graph {graph.id}"
            )
        resolved.append(dep)
    return resolved


def dependencies_satisfied(graph: TaskGraph, node: TaskNode) -> bool:
    """True iff every dependency of ``node`` has completed.

    Once a dependency is completed it stays completed, so a node that is
    ready never becomes unready again.
    """
    return all(dep.status == NodeStatus.COMPLETED for dep in _dependency_nodes(graph, node))


def blocking_dependencies(graph: TaskGraph, node: TaskNode) -> list[str]:
    """Dependency ids that settled without completing and so can never satisfy ``node``."""
    return [
        dep.id
        for dep in _dependency_nodes(graph, node)
        if dep.status in (NodeStatus.FAILED, NodeStatus.SKIPPED)
    ]
