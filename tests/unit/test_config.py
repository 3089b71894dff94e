"""Unit tests for configuration."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from agent_workflow_orchestrator.core.config import (
    AgentAssignment,
    AgentPoolConfig,
    EngineConfig,
    OrchestratorConfig,
    RetryConfig,
    StateConfig,
)
from agent_workflow_orchestrator.server.config import ServerSettings


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # Keep a developer's .env out of these tests.
    monkeypatch.chdir(tmp_path)


def test_pool_config_defaults() -> None:
    """Test pool config default values."""
    config = AgentPoolConfig()

    assert config.max_concurrent_agents == 3
    assert config.max_queue_size is None
    assert config.hang_threshold_seconds == 3600.0
    assert config.auto_cleanup_hung_agents is True
    assert config.persona_dir is None


def test_engine_and_state_defaults() -> None:
    assert EngineConfig().yolo_mode is False
    assert EngineConfig().max_goto_jumps == 100
    assert StateConfig().storage_path == Path(".state")


def test_sections_read_their_env_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORCHESTRATOR_POOL_MAX_CONCURRENT_AGENTS", "5")
    monkeypatch.setenv("ORCHESTRATOR_ENGINE_YOLO_MODE", "true")
    monkeypatch.setenv("ORCHESTRATOR_STATE_STORAGE_PATH", "/var/lib/checkpoints")
    monkeypatch.setenv("ORCHESTRATOR_RETRY_MAX_RETRIES", "1")
    monkeypatch.setenv("ORCHESTRATOR_PROJECT_ID", "acme")
    monkeypatch.setenv(
        "ORCHESTRATOR_AGENT_ASSIGNMENTS",
        '{"analyst": {"provider": "openai", "model": "gpt-4o-mini"}}',
    )

    config = OrchestratorConfig()

    assert config.pool.max_concurrent_agents == 5
    assert config.engine.yolo_mode is True
    assert config.state.storage_path == Path("/var/lib/checkpoints")
    assert config.retry.max_retries == 1
    assert config.project_id == "acme"
    assert config.agent_assignments["analyst"].model == "gpt-4o-mini"


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(ValidationError):
        AgentPoolConfig(max_concurrent_agents=0)
    with pytest.raises(ValidationError):
        AgentAssignment(provider="openai", model="gpt-4", temperature=3.5)
    with pytest.raises(ValidationError):
        RetryConfig(jitter_percent=1.5)


def test_retry_config_builds_policy() -> None:
    policy = RetryConfig(max_retries=4, initial_delay_seconds=0.5, max_delay_seconds=4.0).to_policy()

    assert policy.max_retries == 4
    assert policy.schedule() == [0.5, 1.0, 2.0, 4.0]


def test_state_retry_policy_has_no_jitter() -> None:
    policy = StateConfig(write_retries=2, retry_delay_seconds=0.1).retry_policy()

    assert policy.max_retries == 2
    assert policy.jitter_percent == 0.0


def test_server_settings_parse_cors_origins(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORCHESTRATOR_CORS_ORIGINS", " https://a.example , ,https://b.example")

    assert ServerSettings().parsed_cors_origins() == ["https://a.example", "https://b.example"]
