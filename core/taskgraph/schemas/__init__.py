"""Schemas shared between the executor and its collaborators."""

from taskgraph.schemas.planning import PlanningConstraints, PlanningContext

__all__ = ["PlanningConstraints", "PlanningContext"]
