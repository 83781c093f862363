"""
Planning Schema - The read-only bundle handed to the planning oracle.

The executor fills ``available_tools`` from the live tool catalog at the
moment a graph is built, never from a cached list.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, Field


class PlanningConstraints(BaseModel):
    """Advisory limits for one planning episode."""

    max_steps: int | None = Field(
        default=None,
        ge=1,
        validation_alias=AliasChoices("max_steps", "maxSteps"),
    )
    max_cost: float | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("max_cost", "maxCost"),
    )
    max_duration: float | None = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("max_duration", "maxDuration"),
        description="Seconds. Enforced cooperatively before each node dispatch",
    )
    preferred_model: str | None = Field(
        default=None,
        validation_alias=AliasChoices("preferred_model", "preferredModel"),
    )

    model_config = {"frozen": True, "populate_by_name": True}


class PlanningContext(BaseModel):
    """Everything the oracle needs to decompose a request."""

    user_request: str
    conversation_history: list[Any] = Field(default_factory=list)
    available_tools: list[str] = Field(default_factory=list)
    tool_descriptions: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Tool name -> {description, parameters}, from the same catalog read",
    )
    memory_context: Any | None = None
    constraints: PlanningConstraints = Field(default_factory=PlanningConstraints)

    model_config = {"frozen": True}

    def summary(self) -> dict[str, Any]:
        """Compact view stored on the graph and shown to decision makers."""
        return {
            "user_request": self.user_request,
            "conversation_turns": len(self.conversation_history),
            "available_tools": list(self.available_tools),
            "constraints": self.constraints.model_dump(exclude_none=True),
        }
