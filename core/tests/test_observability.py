"""Tests for structured logging and trace context propagation."""

import asyncio
import json
import logging

import pytest

from taskgraph.observability import (
    bind_trace_context,
    clear_trace_context,
    configure_logging,
    get_trace_context,
    reset_trace_context,
    set_trace_context,
)
from taskgraph.observability.logging import HumanReadableFormatter, StructuredFormatter


@pytest.fixture(autouse=True)
def clean_trace_context():
    clear_trace_context()
    yield
    clear_trace_context()


def _record(message="node finished", **extra):
    record = logging.LogRecord(
        name="taskgraph.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_structured_formatter_includes_trace_context_and_extras():
    set_trace_context(graph_id="graph_abc123", node_id="search")

    entry = json.loads(StructuredFormatter().format(_record(tool="search_documents", status="ok")))

    assert entry["message"] == "node finished"
    assert entry["level"] == "info"
    assert entry["graph_id"] == "graph_abc123"
    assert entry["node_id"] == "search"
    assert entry["tool"] == "search_documents"
    assert entry["status"] == "ok"
    assert "duration_ms" not in entry


def test_structured_formatter_strips_ansi():
    entry = json.loads(StructuredFormatter().format(_record("\033[32mgreen\033[0m")))
    assert entry["message"] == "green"


def test_human_formatter_prefixes_graph_and_node():
    set_trace_context(graph_id="graph_abc123", node_id="search")

    line = HumanReadableFormatter().format(_record(event="node_completed"))

    assert "[graph:graph_abc123 | node:search]" in line
    assert line.endswith("node finished [node_completed]")


def test_bind_and_reset_restore_previous_context():
    set_trace_context(graph_id="graph_1")

    token = bind_trace_context(node_id="a")
    assert get_trace_context() == {"graph_id": "graph_1", "node_id": "a"}

    reset_trace_context(token)
    assert get_trace_context() == {"graph_id": "graph_1"}


@pytest.mark.asyncio
async def test_context_is_isolated_between_tasks():
    async def branch(node_id):
        token = bind_trace_context(node_id=node_id)
        try:
            await asyncio.sleep(0.01)
            return get_trace_context()["node_id"]
        finally:
            reset_trace_context(token)

    assert await asyncio.gather(branch("a"), branch("b")) == ["a", "b"]


@pytest.mark.parametrize(
    "fmt,env,expected",
    [
        ("json", {}, StructuredFormatter),
        ("human", {}, HumanReadableFormatter),
        ("auto", {"LOG_FORMAT": "json"}, StructuredFormatter),
        ("auto", {"ENV": "production"}, StructuredFormatter),
        ("auto", {}, HumanReadableFormatter),
    ],
)
def test_configure_logging_selects_formatter(monkeypatch, fmt, env, expected):
    monkeypatch.delenv("LOG_FORMAT", raising=False)
    monkeypatch.delenv("ENV", raising=False)
    for key, value in env.items():
        monkeypatch.setenv(key, value)

    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging(level="debug", format=fmt)

        [handler] = root.handlers
        assert isinstance(handler.formatter, expected)
        assert root.level == logging.DEBUG
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
