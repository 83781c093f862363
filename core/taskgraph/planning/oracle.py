"""
Planning Oracle and decision makers.

The executor only depends on two narrow interfaces:

- PlanningOracle.propose(prompt) -> response text (untrusted, may be malformed)
- DecisionMaker.decide(context) -> any outcome for a decision node

LLMPlanningOracle adapts any LLMProvider to the oracle interface.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from taskgraph.llm.provider import LLMProvider
from taskgraph.planning.json_repair import parse_json_response

if TYPE_CHECKING:
    from taskgraph.graph.node import DecisionNode
    from taskgraph.graph.task_graph import TaskExecution, TaskGraph

logger = logging.getLogger(__name__)

PLANNER_SYSTEM_PROMPT = (
    "You are an advanced AI task planner. You decompose user requests into "
    "task graphs and answer with JSON only."
)

DECISION_SYSTEM_PROMPT = (
    "You make a single decision inside a running task graph. "
    'Answer with JSON: {"decision": "<outcome>", "reasoning": "<why>"}.'
)


@runtime_checkable
class PlanningOracle(Protocol):
    """Turns a prompt into a structured (but untrusted) text response."""

    async def propose(self, prompt: str) -> str: ...


@dataclass
class DecisionContext:
    """What a decision maker sees when a decision node runs."""

    node: DecisionNode
    graph_id: str
    request: str
    results: dict[str, Any] = field(default_factory=dict)
    node_statuses: dict[str, str] = field(default_factory=dict)
    execution_history: list[TaskExecution] = field(default_factory=list)
    planning_context: dict[str, Any] | None = None

    @classmethod
    def from_graph(cls, graph: TaskGraph, node: DecisionNode) -> DecisionContext:
        return cls(
            node=node,
            graph_id=graph.id,
            request=graph.description,
            results=graph.results(),
            node_statuses={n.id: str(n.status) for n in graph.nodes.values()},
            execution_history=list(graph.execution_history),
            planning_context=graph.metadata.get("planning_context"),
        )

    def to_prompt(self) -> str:
        history = [
            {"node": e.node_id, "action": e.action, "success": e.success, "error": e.error}
            for e in self.execution_history
        ]
        lines = [
            f'User Request: "{self.request}"',
            f"Decision: {self.node.name}",
            f"Details: {self.node.description}",
        ]
        if self.node.options:
            lines.append(f"Allowed outcomes: {', '.join(self.node.options)}")
        lines.append(f"Completed results: {json.dumps(self.results, default=str)}")
        lines.append(f"Execution history: {json.dumps(history)}")
        return "\n".join(lines)


@runtime_checkable
class DecisionMaker(Protocol):
    """Produces the outcome of a decision node."""

    async def decide(self, context: DecisionContext) -> Any: ...


class LLMPlanningOracle:
    """Planning oracle backed by an LLMProvider."""

    def __init__(self, llm: LLMProvider, max_tokens: int = 2048):
        self.llm = llm
        self.max_tokens = max_tokens

    async def propose(self, prompt: str) -> str:
        response = await self.llm.acomplete(
            messages=[{"role": "user", "content": prompt}],
            system=PLANNER_SYSTEM_PROMPT,
            max_tokens=self.max_tokens,
            json_mode=True,
        )
        return response.content


class OracleDecisionMaker:
    """Asks the planning oracle to decide; plain-text answers are wrapped."""

    def __init__(self, oracle: PlanningOracle):
        self.oracle = oracle

    async def decide(self, context: DecisionContext) -> Any:
        prompt = f"{DECISION_SYSTEM_PROMPT}\n\n{context.to_prompt()}"
        response = await self.oracle.propose(prompt)
        parsed = parse_json_response(response)
        if parsed is None:
            logger.debug(f"Decision for {context.node.id} was not JSON, keeping raw text")
            return {"decision": response.strip()}
        return parsed


class StaticDecisionMaker:
    """Always returns the same outcome."""

    def __init__(self, outcome: Any = None):
        self.outcome = (
            outcome
            if outcome is not None
            else {"decision": "continue", "reasoning": "Default decision"}
        )

    async def decide(self, context: DecisionContext) -> Any:
        return self.outcome
