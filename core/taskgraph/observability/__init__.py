"""
Observability: trace context propagation and structured logging.

- Automatic graph/node context via ContextVar
- Structured JSON logging for production
- Human-readable logging for development
"""

from taskgraph.observability.logging import (
    bind_trace_context,
    clear_trace_context,
    configure_logging,
    get_trace_context,
    reset_trace_context,
    set_trace_context,
)

__all__ = [
    "configure_logging",
    "get_trace_context",
    "set_trace_context",
    "clear_trace_context",
    "bind_trace_context",
    "reset_trace_context",
]
