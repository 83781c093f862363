"""Shared taskgraph configuration utilities.

Reads ~/.taskgraph/configuration.json (or the file named by TASKGRAPH_CONFIG)
so the CLI and embedding applications share one set of defaults.

Example configuration.json:
    {
        "llm": {"provider": "anthropic", "model": "claude-haiku-4-5-20251001",
                "max_tokens": 2048, "api_key_env_var": "ANTHROPIC_API_KEY"},
        "executor": {"fallback_tool": "handle_request", "default_max_duration": 300}
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_MODEL = "anthropic/claude-haiku-4-5-20251001"
DEFAULT_MAX_TOKENS = 2048
DEFAULT_FALLBACK_TOOL = "handle_request"

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------


def get_config_path() -> Path:
    override = os.environ.get("TASKGRAPH_CONFIG")
    if override:
        return Path(override)
    return Path.home() / ".taskgraph" / "configuration.json"


def get_taskgraph_config() -> dict[str, Any]:
    """Load configuration; missing or unreadable files yield an empty dict."""
    config_file = get_config_path()
    if not config_file.exists():
        return {}
    try:
        with open(config_file, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_preferred_model() -> str:
    """Return the preferred LLM model string (e.g. 'anthropic/claude-haiku-4-5-20251001')."""
    llm = get_taskgraph_config().get("llm", {})
    if llm.get("provider") and llm.get("model"):
        return f"{llm['provider']}/{llm['model']}"
    return DEFAULT_MODEL


def get_max_tokens() -> int:
    return get_taskgraph_config().get("llm", {}).get("max_tokens", DEFAULT_MAX_TOKENS)


def get_api_key() -> str | None:
    """Return the API key from the environment variable named in configuration."""
    llm = get_taskgraph_config().get("llm", {})
    api_key_env_var = llm.get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


def _executor_setting(key: str, default: Any) -> Any:
    return get_taskgraph_config().get("executor", {}).get(key, default)


# ---------------------------------------------------------------------------
# ExecutorConfig
# ---------------------------------------------------------------------------


@dataclass
class ExecutorConfig:
    """Executor settings, defaulting to values from the configuration file."""

    model: str = field(default_factory=get_preferred_model)
    max_tokens: int = field(default_factory=get_max_tokens)
    api_key: str | None = field(default_factory=get_api_key)

    # Tool used by the fallback plan when oracle output is unusable
    fallback_tool: str = field(
        default_factory=lambda: _executor_setting("fallback_tool", DEFAULT_FALLBACK_TOOL)
    )
    # Seconds; applied when a request carries no max_duration constraint
    default_max_duration: float | None = field(
        default_factory=lambda: _executor_setting("default_max_duration", None)
    )
    max_event_history: int = field(
        default_factory=lambda: _executor_setting("max_event_history", 1000)
    )
