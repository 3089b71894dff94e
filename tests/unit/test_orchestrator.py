"""Unit tests for the top-level orchestrator wiring."""

from __future__ import annotations

from pathlib import Path

import pytest

from agent_workflow_orchestrator.core.config import (
    AgentPoolConfig,
    EngineConfig,
    OrchestratorConfig,
    StateConfig,
)
from agent_workflow_orchestrator.core.errors import VariableResolutionError
from agent_workflow_orchestrator.core.events import EventBus, EventType, OrchestratorEvent
from agent_workflow_orchestrator.core.orchestrator import Orchestrator
from agent_workflow_orchestrator.state.models import WorkflowStatus
from agent_workflow_orchestrator.state.store import FileStateStore
from agent_workflow_orchestrator.workflow.definition import WorkflowDefinition

AGENT_WORKFLOW = """
<step n="1" goal="analyse"><action agent="analyst" var="notes">Review {{topic}}</action></step>
<step n="2" goal="report"><output>{{notes}}</output></step>
"""


@pytest.fixture
def orchestrator_config(tmp_path: Path) -> OrchestratorConfig:
    return OrchestratorConfig(
        project_id="proj-1",
        pool=AgentPoolConfig(max_concurrent_agents=1, auto_cleanup_hung_agents=False),
        state=StateConfig(storage_path=tmp_path / ".state", retry_delay_seconds=0.0),
        engine=EngineConfig(project_root=tmp_path),
    )


@pytest.fixture
def orchestrator(
    orchestrator_config: OrchestratorConfig, project_config, llm_factory, pricing
):
    with Orchestrator(
        orchestrator_config,
        project_config=project_config,
        llm_factory=llm_factory,
        pricing=pricing,
    ) as orch:
        yield orch


def _definition(workflow_id: str, topic: str) -> WorkflowDefinition:
    return WorkflowDefinition(
        workflow_id=workflow_id, instructions=AGENT_WORKFLOW, variables={"topic": topic}
    )


def test_run_workflow_persists_checkpoint(
    orchestrator: Orchestrator, orchestrator_config: OrchestratorConfig, reply_cost: float
) -> None:
    state = orchestrator.run_workflow(_definition("wf-a", "caching"))

    assert state.status is WorkflowStatus.COMPLETED
    assert state.variables["notes"] == "reply to: Review caching"
    assert isinstance(orchestrator.state_store, FileStateStore)
    stored = FileStateStore(orchestrator_config.state).load_state("wf-a")
    assert stored is not None
    assert stored.status is WorkflowStatus.COMPLETED
    assert orchestrator.pool.get_cost_metrics().by_project["proj-1"] == pytest.approx(reply_cost)


def test_parallel_workflows_share_one_bounded_pool(
    orchestrator: Orchestrator, reply_cost: float
) -> None:
    peak: list[int] = []
    orchestrator.events.subscribe(
        lambda _e: peak.append(orchestrator.pool.get_stats().active_agents),
        [EventType.AGENT_STARTED],
    )

    results = orchestrator.run_workflows([_definition(f"wf-{i}", f"t{i}") for i in range(4)])

    assert sorted(results) == ["wf-0", "wf-1", "wf-2", "wf-3"]
    for result in results.values():
        assert not isinstance(result, BaseException)
        assert result.status is WorkflowStatus.COMPLETED
    assert max(peak) == 1
    metrics = orchestrator.pool.get_cost_metrics()
    assert set(metrics.by_workflow) == {"wf-0", "wf-1", "wf-2", "wf-3"}
    assert metrics.total == pytest.approx(4 * reply_cost)


def test_failed_workflow_does_not_cancel_siblings(orchestrator: Orchestrator) -> None:
    broken = WorkflowDefinition(
        workflow_id="broken", instructions='<step n="1" goal="x"><output>{{nope}}</output></step>'
    )

    results = orchestrator.run_workflows([broken, _definition("ok", "fine")])

    assert isinstance(results["broken"], VariableResolutionError)
    assert results["ok"].status is WorkflowStatus.COMPLETED


def test_events_reach_supplied_bus(
    orchestrator_config: OrchestratorConfig, project_config, llm_factory
) -> None:
    bus = EventBus()
    seen: list[OrchestratorEvent] = []
    bus.subscribe(seen.append)

    with Orchestrator(
        orchestrator_config, project_config=project_config, llm_factory=llm_factory, events=bus
    ) as orch:
        orch.run_workflow(_definition("wf-events", "x"))

    types = [e.type for e in seen]
    assert types[-1] is EventType.WORKFLOW_COMPLETED
    assert EventType.AGENT_INVOKED in types


def test_run_workflows_with_no_definitions(orchestrator: Orchestrator) -> None:
    assert orchestrator.run_workflows([]) == {}
