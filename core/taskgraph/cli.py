"""
Command-line interface for the task graph executor.

Usage:
    taskgraph plan "Summarize my notes and save a note" --tools tools.py
    taskgraph run "Summarize my notes and save a note" --tools tools.py
    taskgraph run "..." --tools tools.py --mock-plan plan.json --log-format json

``--tools`` points at a Python file whose @tool decorated functions are
registered. ``--mock-plan`` answers planning with the file's contents instead
of calling an LLM.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from taskgraph.config import ExecutorConfig
from taskgraph.observability import configure_logging


def _handle_request(request: str) -> dict:
    """Acknowledge a request no planned tool could handle."""
    return {"handled": True, "request": request}


def _build_executor(args: argparse.Namespace):
    from taskgraph.planning.oracle import LLMPlanningOracle, StaticDecisionMaker
    from taskgraph.runner.tool_registry import ToolRegistry
    from taskgraph.runtime.executor import TaskGraphExecutor

    config = ExecutorConfig()
    if args.model:
        config.model = args.model

    tools = ToolRegistry()
    if args.tools:
        tools_path = Path(args.tools)
        if not tools_path.exists():
            raise FileNotFoundError(f"Tools module not found: {tools_path}")
        tools.discover_from_module(tools_path)
    if not tools.has_tool(config.fallback_tool):
        tools.register_function(_handle_request, name=config.fallback_tool)

    if args.mock_plan:
        from taskgraph.llm.mock import MockLLMProvider

        llm = MockLLMProvider(Path(args.mock_plan).read_text(encoding="utf-8"))
        decision_maker = StaticDecisionMaker()
    else:
        from taskgraph.llm.litellm import LiteLLMProvider

        llm = LiteLLMProvider(model=config.model, api_key=config.api_key)
        decision_maker = None

    oracle = LLMPlanningOracle(llm, max_tokens=config.max_tokens)
    return TaskGraphExecutor(
        oracle=oracle,
        tools=tools,
        decision_maker=decision_maker,
        config=config,
    )


def _constraints(args: argparse.Namespace) -> dict:
    constraints = {}
    if args.max_steps is not None:
        constraints["max_steps"] = args.max_steps
    if args.max_duration is not None:
        constraints["max_duration"] = args.max_duration
    return constraints


def cmd_plan(args: argparse.Namespace) -> int:
    """Build a graph and print it without executing."""
    executor = _build_executor(args)
    graph = asyncio.run(executor.create_graph(args.request, constraints=_constraints(args)))
    print(graph.model_dump_json(indent=2))
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Build and execute a graph; exit status 1 if the graph failed."""
    executor = _build_executor(args)
    graph = asyncio.run(executor.run_request(args.request, constraints=_constraints(args)))
    output = {
        "graph": graph.model_dump(mode="json"),
        "stats": executor.get_stats().to_dict(),
    }
    print(json.dumps(output, indent=2, default=str))
    return 0 if graph.status == "completed" else 1


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("request", help="The user request to plan")
    parser.add_argument("--tools", help="Python file with @tool functions to register")
    parser.add_argument("--model", help="LiteLLM model string (default from configuration)")
    parser.add_argument("--mock-plan", help="File whose contents are used as the planner's answer")
    parser.add_argument("--max-steps", type=int, default=None, help="Maximum nodes in the plan")
    parser.add_argument(
        "--max-duration", type=float, default=None, help="Execution time limit in seconds"
    )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="taskgraph",
        description="Plan and execute task graphs for user requests",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    parser.add_argument("--log-format", default="auto", choices=["auto", "json", "human"])

    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser("plan", help="Build a task graph and print it")
    _add_common_arguments(plan_parser)
    plan_parser.set_defaults(func=cmd_plan)

    run_parser = subparsers.add_parser("run", help="Build and execute a task graph")
    _add_common_arguments(run_parser)
    run_parser.set_defaults(func=cmd_run)

    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, format=args.log_format)

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
