"""Tests for configuration file loading and ExecutorConfig defaults."""

import json

import pytest

from taskgraph.config import (
    DEFAULT_FALLBACK_TOOL,
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    ExecutorConfig,
    get_api_key,
    get_config_path,
    get_max_tokens,
    get_preferred_model,
    get_taskgraph_config,
)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "configuration.json"
    monkeypatch.setenv("TASKGRAPH_CONFIG", str(path))
    return path


def test_config_path_override(config_file):
    assert get_config_path() == config_file


def test_default_config_path(monkeypatch, tmp_path):
    monkeypatch.delenv("TASKGRAPH_CONFIG", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))

    assert get_config_path() == tmp_path / ".taskgraph" / "configuration.json"


def test_missing_file_gives_defaults(config_file):
    assert get_taskgraph_config() == {}
    assert get_preferred_model() == DEFAULT_MODEL
    assert get_max_tokens() == DEFAULT_MAX_TOKENS
    assert get_api_key() is None

    config = ExecutorConfig()
    assert config.fallback_tool == DEFAULT_FALLBACK_TOOL
    assert config.default_max_duration is None
    assert config.max_event_history == 1000


def test_unreadable_file_gives_defaults(config_file):
    config_file.write_text("{not json")
    assert get_taskgraph_config() == {}

    config_file.write_text("[1, 2]")
    assert get_taskgraph_config() == {}


def test_values_from_file(config_file, monkeypatch):
    monkeypatch.setenv("MY_PLANNER_KEY", "sk-test")
    config_file.write_text(
        json.dumps(
            {
                "llm": {
                    "provider": "openai",
                    "model": "gpt-4o-mini",
                    "max_tokens": 4096,
                    "api_key_env_var": "MY_PLANNER_KEY",
                },
                "executor": {
                    "fallback_tool": "ask_user",
                    "default_max_duration": 30,
                    "max_event_history": 50,
                },
            }
        )
    )

    config = ExecutorConfig()

    assert config.model == "openai/gpt-4o-mini"
    assert config.max_tokens == 4096
    assert config.api_key == "sk-test"
    assert config.fallback_tool == "ask_user"
    assert config.default_max_duration == 30
    assert config.max_event_history == 50


def test_explicit_values_win(config_file):
    config_file.write_text(json.dumps({"executor": {"fallback_tool": "ask_user"}}))

    assert ExecutorConfig(fallback_tool="handle_request").fallback_tool == "handle_request"
