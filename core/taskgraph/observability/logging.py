"""
Structured logging with automatic trace context propagation.

Standard logger.info() calls pick up the graph and node being executed
without passing ids around:

    GraphRunner.run()          -> bind_trace_context(graph_id=...)
        (ContextVar propagates into every asyncio task it spawns)
    NodeDispatcher.run_node()  -> bind_trace_context(node_id=...)
        -> logger.info("...")  -> record carries graph_id and node_id

Parallel children each run in their own task, so a node_id set in one
branch never leaks into a sibling.
"""

import json
import logging
import os
import re
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

# ANSI escape code pattern (matches \033[...m or \x1b[...m)
ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m|\033\[[0-9;]*m")


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI escape codes from text for clean JSON logging."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Each entry carries timestamp, level, logger and message, the current
    trace context (graph_id, node_id, ...) and selected ``extra`` fields.
    """

    EXTRA_FIELDS = ("event", "tool", "duration_ms", "status")

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}

        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
        }
        log_entry.update(context)

        for key in self.EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Colorized single-line logs prefixed with the graph/node being executed."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}
        prefix_parts = []
        if context.get("graph_id"):
            prefix_parts.append(f"graph:{context['graph_id'][-12:]}")
        if context.get("node_id"):
            prefix_parts.append(f"node:{context['node_id']}")
        context_prefix = f"[{' | '.join(prefix_parts)}] " if prefix_parts else ""

        color = self.COLORS.get(record.levelname, "")
        level = f"{record.levelname:<8}"

        event = ""
        record_event = getattr(record, "event", None)
        if record_event is not None:
            event = f" [{record_event}]"

        message = f"{color}[{level}]{self.RESET} {context_prefix}{record.getMessage()}{event}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
) -> None:
    """
    Configure logging for the application. Call once at startup.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: "json", "human", or "auto" (JSON if LOG_FORMAT=json or
            ENV=production, else human)
    """
    if format == "auto":
        log_format_env = os.getenv("LOG_FORMAT", "").lower()
        env = os.getenv("ENV", "development").lower()
        format = "json" if log_format_env == "json" or env == "production" else "human"

    formatter = StructuredFormatter() if format == "json" else HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    if format == "json":
        # Route chatty third-party loggers through the JSON formatter on root
        for logger_name in ("LiteLLM", "httpcore", "httpx", "openai"):
            third_party = logging.getLogger(logger_name)
            third_party.handlers.clear()
            third_party.propagate = True


def set_trace_context(**kwargs: Any) -> None:
    """Merge fields into the trace context of the current execution context."""
    current = trace_context.get() or {}
    trace_context.set({**current, **kwargs})


def get_trace_context() -> dict:
    """Copy of the current trace context (empty dict if unset)."""
    context = trace_context.get() or {}
    return context.copy()


def clear_trace_context() -> None:
    """Clear trace context, e.g. between test runs."""
    trace_context.set(None)


def bind_trace_context(**kwargs: Any) -> Token:
    """Like set_trace_context(), but returns a token for reset_trace_context().

    Use around work that is awaited inline so the caller's context is
    restored afterwards.
    """
    current = trace_context.get() or {}
    return trace_context.set({**current, **kwargs})


def reset_trace_context(token: Token) -> None:
    """Restore the trace context captured by bind_trace_context()."""
    trace_context.reset(token)
