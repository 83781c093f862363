"""
Error types for the task graph executor.

Construction errors (bad graph structure) are raised to the caller of
create_graph. Execution errors raised while a node runs are captured on the
node and never escape the dispatcher.
"""


class TaskGraphError(Exception):
    """Base class for all task graph errors."""

    pass


class GraphValidationError(TaskGraphError):
    """Raised when a graph fails structural validation."""

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class MissingRootError(GraphValidationError):
    """Raised when no node without dependencies exists."""

    def __init__(self, message: str = "No root node found in generated plan"):
        super().__init__(message)


class PlanParseError(TaskGraphError):
    """Raised when oracle output cannot be turned into nodes."""

    pass


class ConfigurationError(TaskGraphError):
    """Raised when a node is missing something it needs at dispatch time."""

    pass


class ToolNotFoundError(TaskGraphError):
    """Raised when a tool is invoked that is not registered."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")


class GraphNotFoundError(TaskGraphError, KeyError):
    """Raised when a graph id is not present in the registry."""

    def __init__(self, graph_id: str):
        self.graph_id = graph_id
        super().__init__(f"Task graph {graph_id} not found")

    def __str__(self) -> str:
        return f"Task graph {self.graph_id} not found"


class InvalidTransitionError(TaskGraphError):
    """Raised on an illegal node status transition."""

    pass


class ExecutionCancelledError(TaskGraphError):
    """Raised when a cancellation token is checked after cancellation."""

    def __init__(self, reason: str = "cancelled"):
        self.reason = reason
        super().__init__(f"Execution cancelled: {reason}")
