#!/usr/bin/env python3
"""Programmatic workflow run example.

This demonstrates using the orchestrator components directly:

* load settings from `.env`
* assign an LLM provider/model to a named agent
* run an instruction document and print its outputs and cost

Requires `ORCHESTRATOR_LLM_OPENAI_API_KEY` in the environment or `.env`.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from agent_workflow_orchestrator import Orchestrator, OrchestratorConfig
from agent_workflow_orchestrator.core.config import AgentAssignment
from agent_workflow_orchestrator.core.errors import OrchestratorError
from agent_workflow_orchestrator.workflow.collaborators import StaticInputProvider
from agent_workflow_orchestrator.workflow.definition import WorkflowDefinition


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run an instruction workflow (programmatic example).")
    parser.add_argument(
        "--instructions",
        type=Path,
        default=Path(__file__).with_name("release_notes.md"),
        help="Instruction document to run",
    )
    parser.add_argument("--version", default="1.0.0", help="Release version to write notes for")
    parser.add_argument("--model", default="gpt-4o-mini", help="OpenAI model for the analyst agent")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    config = OrchestratorConfig()
    config.agent_assignments.setdefault(
        "analyst", AgentAssignment(provider="openai", model=args.model)
    )

    definition = WorkflowDefinition.from_file(
        args.instructions, variables={"version": args.version}
    )

    with Orchestrator(config) as orchestrator:
        engine = orchestrator.create_engine(
            definition, input_provider=StaticInputProvider({"Publish these notes?": "yes"})
        )
        try:
            state = engine.execute()
        except OrchestratorError as exc:
            print(f"Workflow failed: {exc}")
            return 1
        costs = orchestrator.pool.get_cost_metrics()

    for output in engine.outputs:
        print(output)
    print(f"Status: {state.status.value} after step {state.current_step_number}")
    print(f"Cost: ${costs.total:.4f}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
