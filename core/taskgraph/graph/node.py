"""
Node Model - The typed vocabulary of task graph nodes.

Each node kind is its own model, joined into the closed ``TaskNode`` union
by the ``kind`` discriminator. Per-kind required fields are enforced when a
node is constructed, so the dispatcher never has to probe for them.

Node kinds:
- action: invoke a tool with arguments
- decision: ask the decision maker for a discrete outcome
- parallel: run all children concurrently and join
- sequential: run children one after another, in order
- conditional: evaluate a condition and run the true or false branch

Status state machine:

    pending -> running -> completed
                       -> failed
                       -> pending   (dependencies not yet satisfied)
    pending -> skipped
    pending -> failed               (abandoned: cancelled or never ready)
"""

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

from taskgraph.errors import InvalidTransitionError


class NodeKind(StrEnum):
    """Kinds of task nodes."""

    ACTION = "action"
    DECISION = "decision"
    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"
    CONDITIONAL = "conditional"


class NodeStatus(StrEnum):
    """Execution status of a task node."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    def is_terminal(self) -> bool:
        """Check if this status represents a settled node."""
        return self in (NodeStatus.COMPLETED, NodeStatus.FAILED, NodeStatus.SKIPPED)

    def is_successful(self) -> bool:
        """Completed and skipped nodes both count toward a completed graph."""
        return self in (NodeStatus.COMPLETED, NodeStatus.SKIPPED)


_ALLOWED_TRANSITIONS: dict[NodeStatus, frozenset[NodeStatus]] = {
    NodeStatus.PENDING: frozenset({NodeStatus.RUNNING, NodeStatus.SKIPPED, NodeStatus.FAILED}),
    NodeStatus.RUNNING: frozenset({NodeStatus.PENDING, NodeStatus.COMPLETED, NodeStatus.FAILED}),
    NodeStatus.COMPLETED: frozenset(),
    NodeStatus.FAILED: frozenset(),
    NodeStatus.SKIPPED: frozenset(),
}

COMPOSITE_KINDS = frozenset({NodeKind.PARALLEL, NodeKind.SEQUENTIAL, NodeKind.CONDITIONAL})


class BaseNode(BaseModel):
    """Fields and lifecycle shared by every node kind."""

    id: str = Field(min_length=1)
    kind: str
    name: str = ""
    description: str = ""

    status: NodeStatus = NodeStatus.PENDING
    dependencies: list[str] = Field(
        default_factory=list,
        description="IDs of nodes that must complete before this one",
    )

    # Outcome, set once when the node settles
    result: Any | None = None
    error: str | None = None

    # Bookkeeping, owned by the dispatcher
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: float | None = Field(default=None, description="Milliseconds")

    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "ignore", "populate_by_name": True}

    @field_validator("dependencies", mode="before")
    @classmethod
    def _coerce_dependencies(cls, value: Any) -> Any:
        if value is None:
            return []
        return value

    @field_validator("dependencies")
    @classmethod
    def _dedupe_dependencies(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @model_validator(mode="after")
    def _check_common(self) -> "BaseNode":
        if self.id in self.dependencies:
            raise ValueError(f"Node '{self.id}' depends on itself")
        if not self.name:
            self.name = self.id
        return self

    @property
    def is_composite(self) -> bool:
        return self.kind in COMPOSITE_KINDS

    def child_ids(self) -> list[str]:
        """Ordered child ids. Empty for leaf kinds."""
        return []

    # === STATUS TRANSITIONS ===

    def transition(self, new_status: NodeStatus) -> None:
        """Move to ``new_status``, rejecting transitions the state machine forbids."""
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Node '{self.id}' cannot move from {self.status} to {new_status}"
            )
        self.status = new_status

    def mark_running(self) -> None:
        self.transition(NodeStatus.RUNNING)
        self.start_time = datetime.now()

    def mark_pending(self) -> None:
        """Benign reset used when dependencies are not yet satisfied."""
        self.transition(NodeStatus.PENDING)
        self.start_time = None

    def mark_completed(self, result: Any) -> None:
        self.transition(NodeStatus.COMPLETED)
        self.result = result
        self.error = None
        self._stamp_end()

    def mark_failed(self, error: str) -> None:
        self.transition(NodeStatus.FAILED)
        self.result = None
        self.error = error
        self._stamp_end()

    def mark_skipped(self, reason: str) -> None:
        self.transition(NodeStatus.SKIPPED)
        self.metadata["skip_reason"] = reason

    def _stamp_end(self) -> None:
        self.end_time = datetime.now()
        if self.start_time is not None:
            self.duration = (self.end_time - self.start_time).total_seconds() * 1000


class ActionNode(BaseNode):
    """Invoke a tool with arguments."""

    kind: Literal["action"] = "action"
    tool: str = Field(min_length=1)
    tool_input: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("tool_input", "toolInput"),
    )

    @field_validator("tool_input", mode="before")
    @classmethod
    def _coerce_tool_input(cls, value: Any) -> Any:
        if value is None:
            return {}
        return value


class DecisionNode(BaseNode):
    """Ask the decision maker for an outcome."""

    kind: Literal["decision"] = "decision"
    options: list[str] = Field(
        default_factory=list, description="Allowed outcomes, advisory only"
    )


class _CompositeNode(BaseNode):
    children: list[str] = Field(min_length=1)

    @field_validator("children")
    @classmethod
    def _unique_children(cls, value: list[str]) -> list[str]:
        if len(set(value)) != len(value):
            raise ValueError("children must be unique")
        return value

    @model_validator(mode="after")
    def _check_children(self) -> "_CompositeNode":
        if self.id in self.children:
            raise ValueError(f"Node '{self.id}' lists itself as a child")
        return self

    def child_ids(self) -> list[str]:
        return list(self.children)


class ParallelNode(_CompositeNode):
    """Run every child concurrently; complete once all have settled."""

    kind: Literal["parallel"] = "parallel"


class SequentialNode(_CompositeNode):
    """Run children strictly in order."""

    kind: Literal["sequential"] = "sequential"
    stop_on_failure: bool = Field(
        default=False,
        validation_alias=AliasChoices("stop_on_failure", "stopOnFailure"),
        description="Skip remaining children after the first failed child",
    )


class ConditionalNode(_CompositeNode):
    """children[0] is the true branch, children[1] the optional false branch."""

    kind: Literal["conditional"] = "conditional"
    condition: str = Field(min_length=1)
    children: list[str] = Field(min_length=1, max_length=2)

    @property
    def true_branch(self) -> str:
        return self.children[0]

    @property
    def false_branch(self) -> str | None:
        return self.children[1] if len(self.children) > 1 else None


TaskNode = Annotated[
    ActionNode | DecisionNode | ParallelNode | SequentialNode | ConditionalNode,
    Field(discriminator="kind"),
]

_NODE_ADAPTER: TypeAdapter[TaskNode] = TypeAdapter(TaskNode)


def parse_node(data: dict[str, Any]) -> TaskNode:
    """Validate a raw dict into the matching node model.

    Raises:
        pydantic.ValidationError: unknown kind or missing per-kind fields
    """
    return _NODE_ADAPTER.validate_python(data)
