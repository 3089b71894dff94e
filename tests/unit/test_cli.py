"""Unit tests for the command-line entrypoint."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from agent_workflow_orchestrator import cli

WORKFLOW = """
<step n="1" goal="greet"><ask var="name" default="world">Who?</ask></step>
<step n="2" goal="reply"><output>Hello {{name}} from {{env}}</output></step>
"""


@pytest.fixture(autouse=True)
def _cli_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ORCHESTRATOR_STATE_STORAGE_PATH", str(tmp_path / ".state"))
    monkeypatch.setenv("ORCHESTRATOR_ENGINE_PROJECT_ROOT", str(tmp_path))
    monkeypatch.setenv("ORCHESTRATOR_POOL_AUTO_CLEANUP_HUNG_AGENTS", "false")
    return tmp_path


@pytest.fixture
def instructions(tmp_path: Path) -> Path:
    path = tmp_path / "greet.md"
    path.write_text(WORKFLOW, encoding="utf-8")
    return path


def test_run_yolo_completes(instructions: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["run", str(instructions), "--yolo", "--var", "env=test"])

    assert code == cli.EXIT_OK
    assert "Workflow greet: completed" in capsys.readouterr().out


def test_run_without_input_pauses_then_state_shows_checkpoint(
    instructions: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli.main(["run", str(instructions), "--var", "env=test"]) == cli.EXIT_PAUSED
    capsys.readouterr()

    assert cli.main(["state", "greet"]) == cli.EXIT_OK
    state = json.loads(capsys.readouterr().out)
    assert state["workflow_id"] == "greet"
    assert state["status"] == "paused"

    assert cli.main(["list"]) == cli.EXIT_OK
    assert capsys.readouterr().out.split() == ["greet"]


def test_resume_with_yolo_finishes_paused_run(instructions: Path) -> None:
    assert cli.main(["run", str(instructions), "--var", "env=test"]) == cli.EXIT_PAUSED

    code = cli.main(["resume", "greet", str(instructions), "--yolo", "--var", "env=test"])

    assert code == cli.EXIT_OK


def test_state_for_unknown_workflow_fails(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["state", "nope"]) == cli.EXIT_FAILED
    assert "No checkpoint" in capsys.readouterr().err


def test_bad_var_syntax_is_a_usage_error(instructions: Path) -> None:
    assert cli.main(["run", str(instructions), "--var", "novalue"]) == cli.EXIT_CONFIG


def test_workflow_error_exits_nonzero(
    instructions: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = cli.main(["run", str(instructions), "--yolo"])

    assert code == cli.EXIT_FAILED
    assert "env" in capsys.readouterr().err


def test_invalid_config_exits_with_config_code(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("ORCHESTRATOR_POOL_MAX_CONCURRENT_AGENTS", "0")

    assert cli.main(["list"]) == cli.EXIT_CONFIG
    assert "Configuration error" in capsys.readouterr().err
