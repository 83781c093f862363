"""
Task Graph - One planning episode and its execution record.

A TaskGraph is created once by the builder, mutated in place by the runner
while it executes, and is terminal once its status leaves ``executing``.
"""

import uuid
from collections import deque
from collections.abc import Iterable
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from taskgraph.errors import GraphValidationError, MissingRootError
from taskgraph.graph.node import NodeStatus, TaskNode


class GraphStatus(StrEnum):
    """Lifecycle status of a task graph."""

    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"

    def is_terminal(self) -> bool:
        return self in (GraphStatus.COMPLETED, GraphStatus.FAILED)


class TaskExecution(BaseModel):
    """Immutable record of one node execution attempt."""

    node_id: str
    action: str
    input: Any | None = None
    result: Any | None = None
    success: bool
    error: str | None = None
    duration: float = 0.0  # milliseconds
    timestamp: datetime = Field(default_factory=datetime.now)

    model_config = {"frozen": True}


def new_graph_id() -> str:
    return f"graph_{uuid.uuid4().hex[:12]}"


class TaskGraph(BaseModel):
    """
    A directed graph of task nodes plus its execution history.

    ``nodes`` keeps insertion order so listings are deterministic.
    ``execution_history`` is append-only; use record_execution().
    """

    id: str = Field(default_factory=new_graph_id)
    name: str = ""
    description: str = ""
    root_node: str
    nodes: dict[str, TaskNode] = Field(default_factory=dict)

    status: GraphStatus = GraphStatus.PLANNING
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    execution_history: list[TaskExecution] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_nodes(
        cls,
        nodes: Iterable[TaskNode],
        *,
        graph_id: str | None = None,
        name: str = "",
        description: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> "TaskGraph":
        """
        Assemble and validate a graph from nodes in builder order.

        The root is the first node without dependencies.

        Raises:
            GraphValidationError: duplicate ids, dangling references or cycles
            MissingRootError: no node is free of dependencies
        """
        node_map: dict[str, TaskNode] = {}
        duplicates = []
        for node in nodes:
            if node.id in node_map:
                duplicates.append(node.id)
                continue
            node_map[node.id] = node
        if duplicates:
            raise GraphValidationError([f"Duplicate node id: '{d}'" for d in duplicates])

        root = find_root(node_map)
        graph = cls(
            id=graph_id or new_graph_id(),
            name=name,
            description=description,
            root_node=root,
            nodes=node_map,
            metadata=metadata or {},
        )
        errors = graph.validate()
        if errors:
            raise GraphValidationError(errors)
        return graph

    # === LOOKUP ===

    def get_node(self, node_id: str) -> TaskNode | None:
        return self.nodes.get(node_id)

    def require_node(self, node_id: str) -> TaskNode:
        node = self.nodes.get(node_id)
        if node is None:
            raise GraphValidationError(f"Node {node_id} not found in graph {self.id}")
        return node

    def owners(self) -> dict[str, str]:
        """Map each child id to the composite node that lists it."""
        owners: dict[str, str] = {}
        for node in self.nodes.values():
            for child_id in node.child_ids():
                owners.setdefault(child_id, node.id)
        return owners

    def nodes_with_status(self, *statuses: NodeStatus) -> list[TaskNode]:
        return [n for n in self.nodes.values() if n.status in statuses]

    def results(self) -> dict[str, Any]:
        """Results of completed nodes, keyed by node id."""
        return {
            n.id: n.result for n in self.nodes.values() if n.status == NodeStatus.COMPLETED
        }

    # === MUTATION ===

    def set_status(self, status: GraphStatus) -> None:
        self.status = status
        self.updated_at = datetime.now()

    def record_execution(self, execution: TaskExecution) -> None:
        self.execution_history.append(execution)

    def compute_final_status(self) -> GraphStatus | None:
        """
        Status implied by node outcomes.

        Returns COMPLETED when every node is completed or skipped, FAILED when
        any node failed, and None when neither holds (work still pending).
        """
        statuses = [n.status for n in self.nodes.values()]
        if all(s.is_successful() for s in statuses):
            return GraphStatus.COMPLETED
        if any(s == NodeStatus.FAILED for s in statuses):
            return GraphStatus.FAILED
        return None

    # === VALIDATION ===

    def validate(self) -> list[str]:
        """Validate the graph structure."""
        errors = []

        if self.root_node not in self.nodes:
            errors.append(f"Root node '{self.root_node}' not found")
        elif self.nodes[self.root_node].dependencies:
            errors.append(f"Root node '{self.root_node}' has dependencies")

        for node in self.nodes.values():
            for dep in node.dependencies:
                if dep not in self.nodes:
                    errors.append(f"Node '{node.id}' depends on missing node '{dep}'")
            for child_id in node.child_ids():
                if child_id not in self.nodes:
                    errors.append(f"Node '{node.id}' references missing child '{child_id}'")

        owners: dict[str, str] = {}
        for node in self.nodes.values():
            for child_id in node.child_ids():
                if child_id in owners:
                    errors.append(
                        f"Node '{child_id}' is a child of both "
                        f"'{owners[child_id]}' and '{node.id}'"
                    )
                else:
                    owners[child_id] = node.id

        if errors:
            # Cycle checks assume every reference resolves
            return errors

        # Edges point from a dependency to the node waiting on it
        dependency_edges: dict[str, list[str]] = {node_id: [] for node_id in self.nodes}
        for node in self.nodes.values():
            for dep in node.dependencies:
                dependency_edges[dep].append(node.id)
        stuck = _unsortable(self.nodes.keys(), dependency_edges)
        if stuck:
            errors.append(f"Dependency cycle detected among nodes: {sorted(stuck)}")
            return errors

        # A composite that waits on its own descendant can never start
        combined = {node_id: list(targets) for node_id, targets in dependency_edges.items()}
        for node in self.nodes.values():
            combined[node.id].extend(node.child_ids())
        stuck = _unsortable(self.nodes.keys(), combined)
        if stuck:
            errors.append(
                f"Dependencies conflict with parent/child structure among nodes: {sorted(stuck)}"
            )

        return errors


def find_root(nodes: dict[str, TaskNode]) -> str:
    """First node, in insertion order, with no dependencies."""
    for node in nodes.values():
        if not node.dependencies:
            return node.id
    raise MissingRootError()


def _unsortable(node_ids: Iterable[str], edges: dict[str, list[str]]) -> set[str]:
    """Kahn's algorithm; returns the ids left over when a cycle blocks the sort."""
    indegree = {node_id: 0 for node_id in node_ids}
    for targets in edges.values():
        for target in targets:
            indegree[target] += 1

    queue = deque(node_id for node_id, degree in indegree.items() if degree == 0)
    visited = 0
    while queue:
        current = queue.popleft()
        visited += 1
        for target in edges.get(current, []):
            indegree[target] -= 1
            if indegree[target] == 0:
                queue.append(target)

    if visited == len(indegree):
        return set()
    return {node_id for node_id, degree in indegree.items() if degree > 0}
