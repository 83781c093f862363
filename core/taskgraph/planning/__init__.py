"""Planning oracle interfaces and adapters."""

from taskgraph.planning.oracle import (
    DecisionContext,
    DecisionMaker,
    LLMPlanningOracle,
    OracleDecisionMaker,
    PlanningOracle,
    StaticDecisionMaker,
)

__all__ = [
    "DecisionContext",
    "DecisionMaker",
    "LLMPlanningOracle",
    "OracleDecisionMaker",
    "PlanningOracle",
    "StaticDecisionMaker",
]
