"""
Cooperative cancellation for graph execution.

A token is created per execution and checked before each node dispatch. It
trips either when cancel() is called or when its deadline passes. Running
tool calls are not interrupted; the next dispatch observes the token.
"""

import time

from taskgraph.errors import ExecutionCancelledError


class CancellationToken:
    """Cancellation signal with an optional monotonic deadline."""

    def __init__(self, max_duration: float | None = None):
        """
        Args:
            max_duration: Seconds from now after which the token reports
                cancellation. None means no deadline.
        """
        self._deadline = time.monotonic() + max_duration if max_duration else None
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if self._reason is None:
            self._reason = reason

    @property
    def deadline(self) -> float | None:
        return self._deadline

    @property
    def is_cancelled(self) -> bool:
        if self._reason is not None:
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._reason = "max duration exceeded"
            return True
        return False

    @property
    def reason(self) -> str | None:
        # Evaluating is_cancelled first records a deadline expiry
        return self._reason if self.is_cancelled else None

    def check(self) -> None:
        """Raise ExecutionCancelledError if cancelled."""
        if self.is_cancelled:
            raise ExecutionCancelledError(self._reason or "cancelled")
