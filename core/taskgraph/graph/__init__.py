"""Task graphs: node model, validation, dispatch and execution."""

from taskgraph.graph.builder import GraphBuilder
from taskgraph.graph.cancellation import CancellationToken
from taskgraph.graph.dependencies import blocking_dependencies, dependencies_satisfied
from taskgraph.graph.dispatcher import NodeDispatcher, build_condition_context, evaluate_condition
from taskgraph.graph.node import (
    ActionNode,
    ConditionalNode,
    DecisionNode,
    NodeKind,
    NodeStatus,
    ParallelNode,
    SequentialNode,
    TaskNode,
    parse_node,
)
from taskgraph.graph.runner import GraphRunner
from taskgraph.graph.safe_eval import SafeEvalError, safe_eval
from taskgraph.graph.task_graph import GraphStatus, TaskExecution, TaskGraph

__all__ = [
    # Model
    "ActionNode",
    "ConditionalNode",
    "DecisionNode",
    "NodeKind",
    "NodeStatus",
    "ParallelNode",
    "SequentialNode",
    "TaskNode",
    "parse_node",
    "GraphStatus",
    "TaskExecution",
    "TaskGraph",
    # Building
    "GraphBuilder",
    # Execution
    "CancellationToken",
    "GraphRunner",
    "NodeDispatcher",
    "blocking_dependencies",
    "dependencies_satisfied",
    "build_condition_context",
    "evaluate_condition",
    "SafeEvalError",
    "safe_eval",
]
