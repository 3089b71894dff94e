"""Narrow interfaces the engine uses to reach the outside world."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from agent_workflow_orchestrator.core.errors import WorkflowExecutionError
from agent_workflow_orchestrator.state.models import WorkflowStatus
from agent_workflow_orchestrator.state.store import InMemoryStateStore
from agent_workflow_orchestrator.workflow.models import ActionKind

if TYPE_CHECKING:
    from agent_workflow_orchestrator.agents.pool import AgentPool
    from agent_workflow_orchestrator.core.config import EngineConfig

logger = logging.getLogger(__name__)


class InputProvider(Protocol):
    """Supplies human input; the prompt UI lives elsewhere."""

    def request_input(self, kind: ActionKind, prompt: str, step_number: int) -> str | None:
        """Return the answer, or ``None`` if it is not available yet (pauses the run)."""
        ...

    def approve(self, step_number: int, path: Path | None, content: str) -> bool | None:
        """Approve a template output. ``False``/``None`` pauses the run."""
        ...


class ArtifactWriter(Protocol):
    def write(self, relative_path: str, content: str) -> Path: ...


class TaskRunner(Protocol):
    def run(self, path: Path, inputs: Mapping[str, Any]) -> Mapping[str, Any]: ...


class StaticInputProvider:
    """Answers from a fixed mapping; handy for scripted and unattended runs."""

    def __init__(
        self, answers: Mapping[str, str] | None = None, *, approve_all: bool = True
    ) -> None:
        self.answers = dict(answers or {})
        self.approve_all = approve_all

    def request_input(self, kind: ActionKind, prompt: str, step_number: int) -> str | None:
        for key in (f"step-{step_number}", prompt):
            if key in self.answers:
                return self.answers[key]
        return None

    def approve(self, step_number: int, path: Path | None, content: str) -> bool | None:
        return self.approve_all


class FileArtifactWriter:
    """Writes artifacts under ``root`` and refuses paths that escape it."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def write(self, relative_path: str, content: str) -> Path:
        root = self.root.resolve()
        target = (root / relative_path).resolve()
        if not target.is_relative_to(root):
            raise WorkflowExecutionError(
                f"Refusing to write outside the project root: {relative_path}",
                {"path": relative_path},
            )
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        logger.info(f"Wrote artifact: {target}")
        return target


class InstructionTaskRunner:
    """Runs a task file as an instruction document and returns its variables.

    The task gets its own throwaway checkpoint store but shares the agent
    pool, so its agents still count against the global ceiling.
    """

    def __init__(self, agent_pool: AgentPool, config: EngineConfig) -> None:
        self.agent_pool = agent_pool
        self.config = config

    def run(self, path: Path, inputs: Mapping[str, Any]) -> Mapping[str, Any]:
        from agent_workflow_orchestrator.workflow.definition import WorkflowDefinition
        from agent_workflow_orchestrator.workflow.engine import WorkflowEngine

        definition = WorkflowDefinition.from_file(path, variables=dict(inputs))
        engine = WorkflowEngine(
            definition,
            agent_pool=self.agent_pool,
            state_store=InMemoryStateStore(),
            config=self.config,
        )
        state = engine.execute(resume=False)
        if state.status is not WorkflowStatus.COMPLETED:
            raise WorkflowExecutionError(
                f"Task {path} did not complete (status: {state.status.value})",
                {"path": str(path)},
            )
        return engine.variables.runtime()
