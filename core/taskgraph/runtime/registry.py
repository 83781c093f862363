"""
Graph Registry - In-memory store of task graphs.

The registry owns every graph it was given until delete() is called; there
is no eviction. One registry per executor, shared by whoever holds it.
"""

import threading
from dataclasses import asdict, dataclass
from datetime import datetime

from taskgraph.errors import GraphNotFoundError
from taskgraph.graph.task_graph import GraphStatus, TaskGraph


@dataclass
class ExecutionStats:
    """Aggregate numbers over the graphs currently held."""

    total_graphs: int = 0
    completed_graphs: int = 0
    failed_graphs: int = 0
    average_execution_time: float = 0.0  # milliseconds

    def to_dict(self) -> dict:
        return asdict(self)


class GraphRegistry:
    """Thread-safe map of graph id to TaskGraph, in insertion order."""

    def __init__(self):
        self._graphs: dict[str, TaskGraph] = {}
        self._lock = threading.RLock()

    def create(self, graph: TaskGraph) -> TaskGraph:
        with self._lock:
            if graph.id in self._graphs:
                raise ValueError(f"Task graph {graph.id} already exists")
            self._graphs[graph.id] = graph
        return graph

    def get(self, graph_id: str) -> TaskGraph | None:
        with self._lock:
            return self._graphs.get(graph_id)

    def require(self, graph_id: str) -> TaskGraph:
        graph = self.get(graph_id)
        if graph is None:
            raise GraphNotFoundError(graph_id)
        return graph

    def list(self) -> list[TaskGraph]:
        with self._lock:
            return list(self._graphs.values())

    def delete(self, graph_id: str) -> bool:
        """Remove a graph. Returns False if it was not present."""
        with self._lock:
            return self._graphs.pop(graph_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._graphs)

    def __contains__(self, graph_id: object) -> bool:
        with self._lock:
            return graph_id in self._graphs

    def stats(self) -> ExecutionStats:
        """
        Counts by status plus the mean wall time per graph.

        A graph's time runs from creation to its last status change; graphs
        still executing are measured up to now.
        """
        graphs = self.list()
        if not graphs:
            return ExecutionStats()

        now = datetime.now()
        total_ms = 0.0
        for graph in graphs:
            end = now if graph.status == GraphStatus.EXECUTING else graph.updated_at
            total_ms += (end - graph.created_at).total_seconds() * 1000

        return ExecutionStats(
            total_graphs=len(graphs),
            completed_graphs=sum(1 for g in graphs if g.status == GraphStatus.COMPLETED),
            failed_graphs=sum(1 for g in graphs if g.status == GraphStatus.FAILED),
            average_execution_time=total_ms / len(graphs),
        )
