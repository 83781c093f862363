"""
Task Graph Executor - The API the activity feed talks to.

Wires the builder, dispatcher, runner and registry together:

    request -> GraphBuilder (via PlanningOracle) -> GraphRegistry
            -> GraphRunner -> NodeDispatcher -> ToolRunner / DecisionMaker

Construct one executor at process start and pass it to whatever owns the
activity feed. Nothing here is a module-level singleton.
"""

import logging
from typing import Any

from taskgraph.config import ExecutorConfig
from taskgraph.graph.builder import GraphBuilder
from taskgraph.graph.cancellation import CancellationToken
from taskgraph.graph.dispatcher import ConditionEvaluator, NodeDispatcher
from taskgraph.graph.runner import GraphRunner
from taskgraph.graph.task_graph import GraphStatus, TaskGraph
from taskgraph.planning.oracle import DecisionMaker, OracleDecisionMaker, PlanningOracle
from taskgraph.runner.tool_registry import ToolRegistry
from taskgraph.runtime.event_bus import EventBus, EventType
from taskgraph.runtime.registry import ExecutionStats, GraphRegistry
from taskgraph.schemas.planning import PlanningConstraints, PlanningContext

logger = logging.getLogger(__name__)


class TaskGraphExecutor:
    """
    Plans, stores and runs task graphs.

    Example:
        tools = ToolRegistry()
        tools.register_function(search_documents)
        tools.register_function(create_document)

        executor = TaskGraphExecutor(
            oracle=LLMPlanningOracle(LiteLLMProvider()),
            tools=tools,
        )
        graph = await executor.run_request("Summarize my notes and save a note")
        print(graph.status, len(graph.execution_history))
    """

    def __init__(
        self,
        oracle: PlanningOracle,
        tools: ToolRegistry,
        decision_maker: DecisionMaker | None = None,
        condition_evaluator: ConditionEvaluator | None = None,
        event_bus: EventBus | None = None,
        registry: GraphRegistry | None = None,
        config: ExecutorConfig | None = None,
    ):
        """
        Args:
            oracle: Planning oracle used to build graphs
            tools: Tool registry; both the live catalog and the tool runner
            decision_maker: Decides decision nodes (defaults to asking the oracle)
            condition_evaluator: Evaluates conditional nodes (defaults to safe_eval)
            event_bus: Event bus for lifecycle events (one is created if omitted)
            registry: Graph store (one is created if omitted)
            config: Executor settings (defaults come from the configuration file)
        """
        self._config = config or ExecutorConfig()
        self._tools = tools
        self._event_bus = event_bus or EventBus(max_history=self._config.max_event_history)
        self._registry = registry or GraphRegistry()

        self._builder = GraphBuilder(oracle, fallback_tool=self._config.fallback_tool)
        self._dispatcher = NodeDispatcher(
            tool_runner=tools,
            decision_maker=decision_maker or OracleDecisionMaker(oracle),
            condition_evaluator=condition_evaluator,
            event_bus=self._event_bus,
        )
        self._runner = GraphRunner(self._dispatcher)

        # Graph id -> token of the execution in flight
        self._running: dict[str, CancellationToken] = {}

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def registry(self) -> GraphRegistry:
        return self._registry

    # === PLANNING ===

    async def create_graph(
        self,
        request: str,
        history: list[Any] | None = None,
        context: Any = None,
        constraints: PlanningConstraints | dict[str, Any] | None = None,
    ) -> TaskGraph:
        """
        Plan a graph for ``request`` and store it.

        Args:
            request: The user request
            history: Prior conversation turns
            context: Optional memory/context payload for the oracle
            constraints: Optional planning constraints

        Raises:
            GraphValidationError: the oracle produced a structurally broken plan
        """
        if isinstance(constraints, dict):
            constraints = PlanningConstraints.model_validate(constraints)

        # Read the live catalog so plans never name tools removed since
        tool_descriptions = self._tools.describe()
        planning_context = PlanningContext(
            user_request=request,
            conversation_history=list(history or []),
            available_tools=list(tool_descriptions),
            tool_descriptions=tool_descriptions,
            memory_context=context,
            constraints=constraints or PlanningConstraints(),
        )
        graph = await self._builder.build_graph(planning_context)
        self._registry.create(graph)

        await self._event_bus.emit_graph_event(
            EventType.GRAPH_CREATED,
            graph.id,
            name=graph.name,
            node_count=len(graph.nodes),
            fallback_plan=bool(graph.metadata.get("fallback_plan")),
        )
        return graph

    # === EXECUTION ===

    async def execute_graph(self, graph_id: str) -> TaskGraph:
        """
        Run a stored graph to a terminal status.

        A graph that already finished is returned as is; it is never re-run.

        Raises:
            GraphNotFoundError: unknown graph id
            RuntimeError: the graph is already executing
        """
        graph = self._registry.require(graph_id)
        if graph.status.is_terminal():
            logger.info(f"Graph {graph_id} already {graph.status}, not re-running")
            return graph
        if graph_id in self._running:
            raise RuntimeError(f"Task graph {graph_id} is already executing")

        token = CancellationToken(max_duration=self._max_duration(graph))
        self._running[graph_id] = token
        try:
            await self._event_bus.emit_graph_event(
                EventType.GRAPH_STARTED, graph.id, node_count=len(graph.nodes)
            )
            await self._runner.run(graph, token)
        finally:
            self._running.pop(graph_id, None)

        if graph.status == GraphStatus.COMPLETED:
            await self._event_bus.emit_graph_event(
                EventType.GRAPH_COMPLETED,
                graph.id,
                executions=len(graph.execution_history),
            )
        else:
            await self._event_bus.emit_graph_event(
                EventType.GRAPH_FAILED,
                graph.id,
                error=graph.metadata.get("error"),
                failed_nodes=[n.id for n in graph.nodes.values() if n.error],
            )
        return graph

    async def run_request(
        self,
        request: str,
        history: list[Any] | None = None,
        context: Any = None,
        constraints: PlanningConstraints | dict[str, Any] | None = None,
    ) -> TaskGraph:
        """Plan and execute in one call."""
        graph = await self.create_graph(request, history, context, constraints)
        return await self.execute_graph(graph.id)

    def cancel_graph(self, graph_id: str, reason: str = "cancelled by caller") -> bool:
        """
        Cancel an execution in flight.

        Nodes already running finish; nothing new is dispatched. Returns False
        if the graph is not executing.
        """
        token = self._running.get(graph_id)
        if token is None:
            return False
        token.cancel(reason)
        logger.info(f"⏹ Cancellation requested for graph {graph_id}: {reason}")
        return True

    def is_running(self, graph_id: str) -> bool:
        return graph_id in self._running

    def _max_duration(self, graph: TaskGraph) -> float | None:
        constraints = graph.metadata.get("planning_context", {}).get("constraints", {})
        return constraints.get("max_duration") or self._config.default_max_duration

    # === QUERIES ===

    def get_graph(self, graph_id: str) -> TaskGraph | None:
        return self._registry.get(graph_id)

    def list_graphs(self) -> list[TaskGraph]:
        return self._registry.list()

    async def delete_graph(self, graph_id: str) -> bool:
        deleted = self._registry.delete(graph_id)
        if deleted:
            await self._event_bus.emit_graph_event(EventType.GRAPH_DELETED, graph_id)
        return deleted

    def get_stats(self) -> ExecutionStats:
        return self._registry.stats()
