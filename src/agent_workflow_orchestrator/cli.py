"""CLI entrypoint: run, resume and inspect workflows from the shell."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from agent_workflow_orchestrator import __version__
from agent_workflow_orchestrator.core.config import OrchestratorConfig
from agent_workflow_orchestrator.core.errors import OrchestratorError
from agent_workflow_orchestrator.core.orchestrator import Orchestrator
from agent_workflow_orchestrator.state.models import WorkflowExecutionState, WorkflowStatus
from agent_workflow_orchestrator.state.store import FileStateStore
from agent_workflow_orchestrator.workflow.collaborators import InputProvider
from agent_workflow_orchestrator.workflow.definition import WorkflowDefinition
from agent_workflow_orchestrator.workflow.models import ActionKind

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_PAUSED = 3


class ConsoleInputProvider:
    """Prompts on stdin; an empty answer leaves the run paused."""

    def request_input(self, kind: ActionKind, prompt: str, step_number: int) -> str | None:
        print(f"\n[step {step_number}] {kind.value}: {prompt}")
        answer = input("> ").strip()
        return answer or None

    def approve(self, step_number: int, path: Path | None, content: str) -> bool | None:
        where = f" ({path})" if path is not None else ""
        print(f"\n[step {step_number}] template output{where}:\n{content}\n")
        return input("Approve? [y/N] ").strip().lower() in ("y", "yes")


def _parse_vars(values: list[str] | None) -> dict[str, str]:
    out: dict[str, str] = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected KEY=VALUE, got {item!r}")
        out[key.strip()] = value
    return out


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workflow-orchestrator",
        description="Run instruction-driven workflows backed by a bounded pool of LLM agents",
    )
    parser.add_argument(
        "--version", action="version", version=f"agent-workflow-orchestrator {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_run_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--yolo", action="store_true", help="Skip optional and interactive steps")
        sub.add_argument(
            "--var",
            action="append",
            metavar="KEY=VALUE",
            help="Workflow variable (repeatable)",
        )
        sub.add_argument(
            "--interactive",
            action="store_true",
            help="Answer <ask>/<elicit-required> and approvals on the console",
        )

    run = subparsers.add_parser("run", help="Run a workflow (resumes an existing checkpoint)")
    run.add_argument("instructions", type=Path, help="Path to the instruction document")
    run.add_argument("--workflow-id", default=None, help="Defaults to the instruction file name")
    run.add_argument("--fresh", action="store_true", help="Ignore any stored checkpoint")
    add_run_options(run)

    resume = subparsers.add_parser("resume", help="Resume a workflow from its checkpoint")
    resume.add_argument("workflow_id", help="Workflow id used when the run was started")
    resume.add_argument("instructions", type=Path, help="Path to the instruction document")
    add_run_options(resume)

    state = subparsers.add_parser("state", help="Print the stored checkpoint as JSON")
    state.add_argument("workflow_id", help="Workflow id")

    subparsers.add_parser("list", help="List workflow ids with stored checkpoints")

    return parser


def _print_state(state: WorkflowExecutionState) -> None:
    print(json.dumps(state.model_dump(mode="json"), indent=2))


def _run(
    config: OrchestratorConfig,
    args: argparse.Namespace,
    *,
    workflow_id: str | None,
    resume: bool,
) -> int:
    if args.yolo:
        config.engine = config.engine.model_copy(update={"yolo_mode": True})

    definition = WorkflowDefinition.from_file(
        args.instructions,
        workflow_id=workflow_id,
        variables=_parse_vars(args.var),
        project_id=config.project_id,
    )
    input_provider: InputProvider | None = ConsoleInputProvider() if args.interactive else None

    with Orchestrator(config) as orchestrator:
        state = orchestrator.run_workflow(
            definition, resume=resume, input_provider=input_provider
        )
        costs = orchestrator.pool.get_cost_metrics()

    logger.info(
        "Workflow finished",
        extra={
            "workflow_id": state.workflow_id,
            "status": state.status.value,
            "total_cost": round(costs.total, 6),
        },
    )
    print(
        f"Workflow {state.workflow_id}: {state.status.value} "
        f"(last step {state.current_step_number}, cost ${costs.total:.4f})"
    )
    return EXIT_PAUSED if state.status is WorkflowStatus.PAUSED else EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = OrchestratorConfig()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return EXIT_CONFIG

    try:
        if args.command == "run":
            return _run(config, args, workflow_id=args.workflow_id, resume=not args.fresh)

        if args.command == "resume":
            return _run(config, args, workflow_id=args.workflow_id, resume=True)

        config.setup_logging()
        store = FileStateStore(config.state)

        if args.command == "state":
            state = store.load_state(args.workflow_id)
            if state is None:
                print(f"No checkpoint for workflow {args.workflow_id}", file=sys.stderr)
                return EXIT_FAILED
            _print_state(state)
            return EXIT_OK

        if args.command == "list":
            for workflow_id in store.list_workflow_ids():
                print(workflow_id)
            return EXIT_OK

        logger.error("Unknown command", extra={"command": args.command})
        return EXIT_CONFIG

    except ValueError as e:
        print(str(e), file=sys.stderr)
        return EXIT_CONFIG

    except OrchestratorError as e:
        logger.error(str(e), extra={"error": e.to_json()})
        print(f"Workflow failed: {e}", file=sys.stderr)
        return EXIT_FAILED

    except Exception:
        logger.exception("Command failed")
        return EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
