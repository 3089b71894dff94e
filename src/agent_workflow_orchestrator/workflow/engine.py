"""Step loop for instruction-driven workflows.

A run moves ``initializing -> running -> (paused | completed | error)``.
After every completed or skipped step a checkpoint is persisted *before* the
cursor advances, so a crash never re-runs a finished step and never skips an
unfinished one.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, assert_never

from pydantic import ValidationError

from agent_workflow_orchestrator.agents.models import AgentContext
from agent_workflow_orchestrator.agents.pool import AgentPool
from agent_workflow_orchestrator.agents.project_config import ProjectConfig
from agent_workflow_orchestrator.core.config import EngineConfig
from agent_workflow_orchestrator.core.errors import (
    CorruptStateError,
    GotoLimitExceededError,
    NestedWorkflowError,
    OrchestratorError,
    ParseError,
    StateIOError,
    UnsupportedActionError,
    VariableResolutionError,
    WorkflowExecutionError,
)
from agent_workflow_orchestrator.core.events import (
    EventSink,
    EventType,
    NullEventSink,
    OrchestratorEvent,
)
from agent_workflow_orchestrator.state.models import WorkflowExecutionState, WorkflowStatus
from agent_workflow_orchestrator.state.store import StateStore
from agent_workflow_orchestrator.workflow.collaborators import (
    ArtifactWriter,
    FileArtifactWriter,
    InputProvider,
    InstructionTaskRunner,
    TaskRunner,
)
from agent_workflow_orchestrator.workflow.conditions import ConditionEvaluator
from agent_workflow_orchestrator.workflow.definition import WorkflowDefinition
from agent_workflow_orchestrator.workflow.models import Action, ActionKind, Check, Step
from agent_workflow_orchestrator.workflow.parser import InstructionParser
from agent_workflow_orchestrator.workflow.variables import (
    VariableContext,
    VariableLayer,
    VariableResolver,
    path_variables,
    system_variables,
)

logger = logging.getLogger(__name__)

WorkflowLoader = Callable[[Path], WorkflowDefinition]


class _Outcome(Enum):
    CONTINUE = "continue"
    JUMP = "jump"
    PAUSE = "pause"


@dataclass(frozen=True, slots=True)
class _StepResult:
    outcome: _Outcome
    target: int | None = None
    skipped: bool = False


_CONTINUE = _StepResult(_Outcome.CONTINUE)
_PAUSE = _StepResult(_Outcome.PAUSE)
_SKIPPED = _StepResult(_Outcome.CONTINUE, skipped=True)


class WorkflowEngine:
    """Executes one workflow definition.

    The engine is single-threaded. Many engines may run side by side as long
    as they share one :class:`AgentPool`, which enforces the global agent
    ceiling for all of them.

    ``status`` is ``None`` while initializing and a :class:`WorkflowStatus`
    once a run has started.
    """

    def __init__(
        self,
        definition: WorkflowDefinition,
        *,
        agent_pool: AgentPool,
        state_store: StateStore,
        config: EngineConfig | None = None,
        project_config: ProjectConfig | None = None,
        input_provider: InputProvider | None = None,
        artifact_writer: ArtifactWriter | None = None,
        task_runner: TaskRunner | None = None,
        workflow_loader: WorkflowLoader | None = None,
        events: EventSink | None = None,
        inputs: Mapping[str, Any] | None = None,
    ) -> None:
        self.definition = definition
        self.workflow_id = definition.workflow_id
        self.config = config or EngineConfig()
        self.agent_pool = agent_pool
        self.state_store = state_store
        self.project_config = project_config
        self.input_provider = input_provider
        self.artifact_writer = artifact_writer or FileArtifactWriter(self.config.project_root)
        self.task_runner = task_runner or InstructionTaskRunner(agent_pool, self.config)
        self.workflow_loader = workflow_loader or WorkflowDefinition.from_file
        self.events: EventSink = events or NullEventSink()
        self.project_id = definition.project_id or (
            project_config.project_id if project_config is not None else None
        )

        self.resolver = VariableResolver()
        self.conditions = ConditionEvaluator(self.config.project_root, self.resolver)
        self._inputs = dict(inputs or {})
        self.variables = self._build_context()

        self.status: WorkflowStatus | None = None
        self.outputs: list[str] = []
        self.executed_steps: list[int] = []
        self.skipped_steps: list[int] = []

        self._steps: list[Step] | None = None
        self._state: WorkflowExecutionState | None = None
        self._cancel = threading.Event()

    @property
    def state(self) -> WorkflowExecutionState | None:
        return self._state

    @property
    def steps(self) -> list[Step]:
        return list(self._parse())

    def _build_context(self, runtime: Mapping[str, Any] | None = None) -> VariableContext:
        installed = self.config.installed_path or self.definition.installed_path
        config_vars = (
            dict(self.project_config.config_variables()) if self.project_config is not None else {}
        )
        return VariableContext(
            system=system_variables(),
            path=path_variables(self.config.project_root, installed),
            config=config_vars,
            workflow=self.definition.variables,
            runtime={**self._inputs, **(runtime or {})},
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def execute(self, resume: bool = True) -> WorkflowExecutionState:
        """Run the workflow, continuing from a stored checkpoint when there is one.

        Returns the final checkpoint. A run that needs input or approval ends
        with ``status=paused``; calling ``execute`` again resumes it.
        """
        self._parse()
        if resume:
            stored = self._load_checkpoint()
            if stored is not None:
                logger.info(
                    "Found existing checkpoint",
                    extra={
                        "workflow_id": self.workflow_id,
                        "step_number": stored.current_step_number,
                        "status": stored.status.value,
                    },
                )
                return self.resume_from_state(stored)
        return self._run(self._fresh_state(), 0)

    def resume_from_state(
        self, state: WorkflowExecutionState | Mapping[str, Any]
    ) -> WorkflowExecutionState:
        """Continue after the checkpointed step.

        A checkpoint that belongs to another workflow or does not fit the
        parsed steps is discarded and the run restarts from step 1.
        """
        steps = self._parse()

        if not isinstance(state, WorkflowExecutionState):
            try:
                state = WorkflowExecutionState.model_validate(state)
            except ValidationError as e:
                logger.warning(f"Invalid checkpoint for {self.workflow_id}; restarting: {e}")
                return self._run(self._fresh_state(), 0)

        problem = self._checkpoint_problem(state, steps)
        if problem is not None:
            logger.warning(
                f"Cannot resume workflow {self.workflow_id}: {problem}; restarting from step 1"
            )
            return self._run(self._fresh_state(), 0)

        if state.status is WorkflowStatus.COMPLETED:
            logger.info(f"Workflow {self.workflow_id} already completed; nothing to resume")
            self._state = state
            self.status = WorkflowStatus.COMPLETED
            return state

        state = state.model_copy(deep=True)
        state.status = WorkflowStatus.RUNNING
        state.error = None
        self.variables = self._build_context(state.variables)

        start = (
            state.next_step_number
            if state.next_step_number is not None
            else state.current_step_number + 1
        )
        logger.info(
            "Resuming workflow",
            extra={"workflow_id": self.workflow_id, "step_number": start},
        )
        return self._run(state, start - 1)

    def cancel(self) -> None:
        """Stop before the next step; the current action is never interrupted."""
        logger.info(f"Cancellation requested for workflow {self.workflow_id}")
        self._cancel.set()

    # ------------------------------------------------------------------
    # Step loop
    # ------------------------------------------------------------------

    def _parse(self) -> list[Step]:
        if self._steps is None:
            try:
                self._steps = InstructionParser().parse(self.definition.instructions)
            except ParseError as e:
                try:
                    stored = self.state_store.load_state(self.workflow_id)
                except StateIOError:
                    stored = None
                self._fail(stored or self._fresh_state(), e, None)
                raise
        return self._steps

    def _load_checkpoint(self) -> WorkflowExecutionState | None:
        try:
            return self.state_store.load_state(self.workflow_id)
        except CorruptStateError as e:
            logger.warning(f"Discarding unreadable checkpoint for {self.workflow_id}: {e}")
            return None

    def _checkpoint_problem(self, state: WorkflowExecutionState, steps: list[Step]) -> str | None:
        if state.workflow_id != self.workflow_id:
            return f"checkpoint belongs to workflow {state.workflow_id!r}"
        if state.current_step_number > len(steps):
            return f"step {state.current_step_number} does not exist"
        if state.next_step_number is not None and state.next_step_number > len(steps):
            return f"jump target step {state.next_step_number} does not exist"
        return None

    def _fresh_state(self) -> WorkflowExecutionState:
        self.variables = self._build_context()
        return WorkflowExecutionState(workflow_id=self.workflow_id, project_id=self.project_id)

    def _run(self, state: WorkflowExecutionState, index: int) -> WorkflowExecutionState:
        steps = self._parse()
        self._cancel.clear()
        self._state = state
        self.status = WorkflowStatus.RUNNING
        last_good = state.model_copy(deep=True)
        logger.info(
            "Workflow running",
            extra={"workflow_id": self.workflow_id, "total_steps": len(steps)},
        )

        while index < len(steps):
            if self._cancel.is_set():
                return self._pause(last_good, "cancelled")

            step = steps[index]
            try:
                result = self._execute_step(step)
                if result.outcome is _Outcome.PAUSE:
                    return self._pause(last_good, f"waiting in step {step.number}")

                state.current_step_number = step.number
                state.next_step_number = result.target
                state.status = WorkflowStatus.RUNNING
                state.variables = self.variables.runtime()
                self.state_store.save_state(state)
            except OrchestratorError as e:
                self._fail(last_good, e, step)
                raise
            except Exception as e:
                error = WorkflowExecutionError(f"Step {step.number} failed: {e}")
                self._fail(last_good, error, step)
                raise error from e

            last_good = state.model_copy(deep=True)
            self._emit(
                EventType.WORKFLOW_STEP_COMPLETED,
                {
                    "workflow_id": self.workflow_id,
                    "step_number": step.number,
                    "skipped": result.skipped,
                    "next_step_number": result.target,
                },
            )
            index = result.target - 1 if result.target is not None else index + 1

        state.status = WorkflowStatus.COMPLETED
        state.next_step_number = None
        state.variables = self.variables.runtime()
        try:
            self.state_store.save_state(state)
        except StateIOError as e:
            self._fail(last_good, e, None)
            raise
        self.status = WorkflowStatus.COMPLETED
        logger.info(
            "Workflow completed",
            extra={
                "workflow_id": self.workflow_id,
                "executed_steps": self.executed_steps,
                "skipped_steps": self.skipped_steps,
            },
        )
        self._emit(
            EventType.WORKFLOW_COMPLETED,
            {"workflow_id": self.workflow_id, "executed_steps": list(self.executed_steps)},
        )
        return state

    def _pause(self, last_good: WorkflowExecutionState, reason: str) -> WorkflowExecutionState:
        paused = last_good.model_copy(deep=True)
        paused.status = WorkflowStatus.PAUSED
        self.state_store.save_state(paused)
        self._state = paused
        self.status = WorkflowStatus.PAUSED
        logger.info(
            f"Workflow paused: {reason}",
            extra={"workflow_id": self.workflow_id, "step_number": paused.current_step_number},
        )
        return paused

    def _fail(
        self, last_good: WorkflowExecutionState, error: OrchestratorError, step: Step | None
    ) -> None:
        if step is not None:
            error.with_context(
                step_number=step.number,
                content=step.content,
                known_variables=self.variables.known_keys(),
            )
        error.with_context(workflow_id=self.workflow_id)

        failed = last_good.model_copy(deep=True)
        failed.status = WorkflowStatus.ERROR
        failed.error = str(error)
        try:
            self.state_store.save_state(failed)
        except StateIOError as save_error:
            logger.error(f"Could not persist error checkpoint for {self.workflow_id}: {save_error}")
        self._state = failed
        self.status = WorkflowStatus.ERROR

        logger.error(
            f"Workflow failed: {error}",
            extra={"workflow_id": self.workflow_id, "error_type": type(error).__name__},
        )
        self._emit(
            EventType.WORKFLOW_FAILED,
            {
                "workflow_id": self.workflow_id,
                "step_number": error.step_number,
                "error": error.to_json(),
            },
        )

    def _execute_step(self, step: Step) -> _StepResult:
        if step.optional and self.config.yolo_mode and not step.critical:
            logger.info(
                f"Skipping optional step {step.number} (yolo mode)",
                extra={"workflow_id": self.workflow_id, "step_number": step.number, "skipped": True},
            )
            self.skipped_steps.append(step.number)
            return _SKIPPED

        if step.condition and not self.conditions.evaluate(step.condition, self.variables):
            logger.info(
                f"Skipping step {step.number}: condition not met",
                extra={"workflow_id": self.workflow_id, "step_number": step.number, "skipped": True},
            )
            self.skipped_steps.append(step.number)
            return _SKIPPED

        logger.info(
            f"Executing step {step.number}: {step.goal}",
            extra={"workflow_id": self.workflow_id, "step_number": step.number},
        )
        result = self._run_items(step, step.items())
        if result.outcome is not _Outcome.PAUSE:
            self.executed_steps.append(step.number)
        return result

    def _run_items(
        self, step: Step, items: list[Action | Check] | tuple[Action | Check, ...]
    ) -> _StepResult:
        for item in items:
            if isinstance(item, Check):
                if not self.conditions.evaluate(item.condition, self.variables):
                    logger.debug(f"Check not met in step {step.number}: {item.condition}")
                    continue
                result = self._run_items(step, item.actions)
            else:
                result = self._run_action(step, item)
            if result.outcome is not _Outcome.CONTINUE:
                return result
        return _CONTINUE

    def _run_action(self, step: Step, action: Action) -> _StepResult:
        if action.condition and not self.conditions.evaluate(action.condition, self.variables):
            logger.debug(f"Skipping {action.kind.value} in step {step.number}: condition not met")
            return _CONTINUE

        try:
            content = self.resolver.resolve(action.content, self.variables)
            attributes = {
                key: self.resolver.resolve(value, self.variables)
                for key, value in action.attributes.items()
                if key != "if"
            }
        except VariableResolutionError as e:
            if step.critical:
                e.with_context(action=action.kind.value, content=action.content)
                raise
            logger.warning(
                f"Skipping {action.kind.value} in non-critical step {step.number}: {e}",
                extra={"workflow_id": self.workflow_id, "step_number": step.number},
            )
            return _CONTINUE

        try:
            return self._dispatch(step, action, content, attributes)
        except OrchestratorError as e:
            e.with_context(action=action.kind.value, content=action.content)
            raise

    def _dispatch(
        self, step: Step, action: Action, content: str, attributes: dict[str, str]
    ) -> _StepResult:
        match action.kind:
            case ActionKind.ACTION:
                if action.unknown_tag is not None:
                    return self._unsupported(step, action)
                return self._action(step, content, attributes)
            case ActionKind.OUTPUT:
                self.outputs.append(content)
                logger.info(
                    f"Step {step.number} output",
                    extra={"workflow_id": self.workflow_id, "output": content},
                )
                return _CONTINUE
            case ActionKind.TEMPLATE_OUTPUT:
                return self._template_output(step, content, attributes)
            case ActionKind.ASK | ActionKind.ELICIT_REQUIRED:
                return self._ask(step, action.kind, content, attributes)
            case ActionKind.GOTO:
                return self._goto(step, attributes)
            case ActionKind.INVOKE_WORKFLOW:
                return self._invoke_workflow(step, attributes)
            case ActionKind.INVOKE_TASK:
                return self._invoke_task(step, attributes)
            case _:
                assert_never(action.kind)

    # ------------------------------------------------------------------
    # Action handlers
    # ------------------------------------------------------------------

    def _action(self, step: Step, content: str, attributes: dict[str, str]) -> _StepResult:
        agent_name = attributes.get("agent")
        if not agent_name:
            logger.info(
                f"Step {step.number} action: {content}",
                extra={"workflow_id": self.workflow_id, "step_number": step.number},
            )
            return _CONTINUE

        context = AgentContext(
            workflow_id=self.workflow_id, project_id=self.project_id, step_number=step.number
        )
        with self.agent_pool.agent_session(agent_name, context) as agent:
            response = self.agent_pool.invoke_agent(agent.id, content)

        var = attributes.get("var") or f"{agent_name}_response"
        self.variables.set_runtime(var, response.text)
        return _CONTINUE

    def _unsupported(self, step: Step, action: Action) -> _StepResult:
        message = f"Unsupported tag <{action.unknown_tag}> in step {step.number}"
        if step.critical:
            raise UnsupportedActionError(message, {"tag": action.unknown_tag})
        logger.warning(
            f"{message}; ignored in non-critical step",
            extra={"workflow_id": self.workflow_id, "step_number": step.number},
        )
        return _CONTINUE

    def _template_output(
        self, step: Step, content: str, attributes: dict[str, str]
    ) -> _StepResult:
        target = attributes.get("file")
        path = self.artifact_writer.write(target, content) if target else None
        self.outputs.append(content)

        if self.config.yolo_mode:
            logger.info(f"Template output in step {step.number} auto-approved (yolo mode)")
            return _CONTINUE
        if self.input_provider is None:
            logger.info(f"Template output in step {step.number} awaiting approval")
            return _PAUSE
        if not self.input_provider.approve(step.number, path, content):
            logger.info(f"Template output in step {step.number} not approved yet")
            return _PAUSE
        return _CONTINUE

    def _ask(
        self, step: Step, kind: ActionKind, prompt: str, attributes: dict[str, str]
    ) -> _StepResult:
        default_var = "ask_response" if kind is ActionKind.ASK else "elicit_response"
        var = attributes.get("var") or default_var

        if self.config.yolo_mode:
            default = attributes.get("default")
            logger.info(
                f"Skipping {kind.value} in step {step.number} (yolo mode)",
                extra={"workflow_id": self.workflow_id, "default": default},
            )
            if default is not None:
                self.variables.set_runtime(var, default)
            return _CONTINUE

        if self.input_provider is None:
            logger.info(f"Step {step.number} needs input but no input provider is attached")
            return _PAUSE
        answer = self.input_provider.request_input(kind, prompt, step.number)
        if answer is None:
            return _PAUSE
        self.variables.set_runtime(var, answer)
        return _CONTINUE

    def _goto(self, step: Step, attributes: dict[str, str]) -> _StepResult:
        raw = attributes.get("step", "").strip()
        total = len(self._parse())
        if not raw.isdigit() or not 1 <= int(raw) <= total:
            raise WorkflowExecutionError(
                f"goto target step {raw!r} does not exist (workflow has {total} steps)",
                {"target": raw},
            )
        target = int(raw)

        assert self._state is not None
        self._state.jump_count += 1
        if self._state.jump_count > self.config.max_goto_jumps:
            raise GotoLimitExceededError(
                f"goto limit of {self.config.max_goto_jumps} jumps exceeded",
                {"target": target, "jump_count": self._state.jump_count},
            )

        logger.info(
            f"Step {step.number}: goto step {target}",
            extra={"workflow_id": self.workflow_id, "jump_count": self._state.jump_count},
        )
        return _StepResult(_Outcome.JUMP, target)

    def _resolve_path(self, raw: str) -> Path:
        path = Path(raw)
        return path if path.is_absolute() else self.config.project_root / path

    def _inputs_for_child(self) -> dict[str, Any]:
        return {**self.variables.layer(VariableLayer.WORKFLOW), **self.variables.runtime()}

    def _invoke_workflow(self, step: Step, attributes: dict[str, str]) -> _StepResult:
        path = self._resolve_path(attributes["path"])
        try:
            child_definition = self.workflow_loader(path)
        except OSError as e:
            raise NestedWorkflowError(
                f"Cannot load nested workflow {path}: {e}", {"path": str(path)}
            ) from e

        child_id = attributes.get("id") or f"{self.workflow_id}.{child_definition.workflow_id}"
        child_definition = child_definition.model_copy(
            update={
                "workflow_id": child_id,
                "project_id": child_definition.project_id or self.project_id,
            }
        )
        child = WorkflowEngine(
            child_definition,
            agent_pool=self.agent_pool,
            state_store=self.state_store,
            config=self.config,
            project_config=self.project_config,
            input_provider=self.input_provider,
            artifact_writer=self.artifact_writer,
            workflow_loader=self.workflow_loader,
            events=self.events,
            inputs=self._inputs_for_child(),
        )

        resume = self._child_is_resumable(child_id)
        logger.info(
            f"Step {step.number}: invoking nested workflow {child_id}",
            extra={
                "workflow_id": self.workflow_id,
                "nested_workflow_id": child_id,
                "resume": resume,
            },
        )
        try:
            child_state = child.execute(resume=resume)
        except OrchestratorError as e:
            raise NestedWorkflowError(
                f"Nested workflow {child_id} failed: {e}",
                {"nested_workflow_id": child_id, "path": str(path), "cause": e.to_json()},
            ) from e

        if child_state.status is WorkflowStatus.PAUSED:
            return _PAUSE
        self.outputs.extend(child.outputs)
        return _CONTINUE

    def _child_is_resumable(self, child_id: str) -> bool:
        # A completed child checkpoint is left over from an earlier invocation.
        try:
            stored = self.state_store.load_state(child_id)
        except CorruptStateError:
            return False
        return stored is not None and stored.status is not WorkflowStatus.COMPLETED

    def _invoke_task(self, step: Step, attributes: dict[str, str]) -> _StepResult:
        path = self._resolve_path(attributes["path"])
        logger.info(f"Step {step.number}: running task {path}")
        try:
            output = self.task_runner.run(path, self._inputs_for_child())
        except OSError as e:
            raise NestedWorkflowError(f"Cannot load task {path}: {e}", {"path": str(path)}) from e
        except OrchestratorError as e:
            raise NestedWorkflowError(
                f"Task {path} failed: {e}", {"path": str(path), "cause": e.to_json()}
            ) from e

        self.variables.update_runtime(output)
        return _CONTINUE

    def _emit(self, event_type: EventType, payload: dict[str, object]) -> None:
        self.events.emit(OrchestratorEvent(type=event_type, payload=payload))
