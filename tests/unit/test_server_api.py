from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from agent_workflow_orchestrator.agents.models import AgentContext
from agent_workflow_orchestrator.agents.pool import AgentPool
from agent_workflow_orchestrator.core.config import StateConfig
from agent_workflow_orchestrator.server.app import create_app
from agent_workflow_orchestrator.server.config import ServerSettings
from agent_workflow_orchestrator.state.models import WorkflowExecutionState
from agent_workflow_orchestrator.state.store import FileStateStore


def _client(pool: AgentPool, store: FileStateStore) -> TestClient:
    return TestClient(create_app(pool, store, ServerSettings(cors_origins="http://localhost")))


def test_health_and_stats(make_pool, state_config: StateConfig) -> None:
    pool = make_pool(max_concurrent_agents=1)
    pool.create_agent("analyst")
    pool.request_agent("architect", AgentContext(workflow_id="wf-q"))
    client = _client(pool, FileStateStore(state_config))

    health = client.get("/api/health").json()
    assert health == {
        "status": "ok",
        "active_agents": 1,
        "max_concurrent_agents": 1,
        "queued_tasks": 1,
    }

    stats = client.get("/api/stats").json()
    assert stats["total_agents_created"] == 1

    queue = client.get("/api/queue").json()
    assert [(t["name"], t["workflow_id"], t["position"]) for t in queue] == [
        ("architect", "wf-q", 1)
    ]


def test_agents_endpoints(pool: AgentPool, state_config: StateConfig) -> None:
    analyst = pool.create_agent("analyst", AgentContext(workflow_id="wf-1"))
    pool.create_agent("architect")
    pool.invoke_agent(analyst.id, "hello")
    client = _client(pool, FileStateStore(state_config))

    agents = client.get("/api/agents").json()
    assert sorted(a["name"] for a in agents) == ["analyst", "architect"]

    filtered = client.get("/api/agents", params={"name": "analyst"}).json()
    assert [a["id"] for a in filtered] == [analyst.id]

    one = client.get(f"/api/agents/{analyst.id}").json()
    assert one["status"] == "idle"
    assert one["invocations"] == 1
    assert one["workflow_id"] == "wf-1"

    assert client.get("/api/agents/missing").status_code == 404

    costs = client.get("/api/costs").json()
    assert costs["by_workflow"]["wf-1"] > 0
    assert costs["total"] == costs["by_agent"][analyst.id]


def test_workflow_state_endpoints(pool: AgentPool, state_config: StateConfig) -> None:
    store = FileStateStore(state_config)
    store.save_state(WorkflowExecutionState(workflow_id="wf-1", current_step_number=2))
    client = _client(pool, store)

    assert client.get("/api/workflows").json() == {"workflow_ids": ["wf-1"]}

    state = client.get("/api/workflows/wf-1/state").json()
    assert state["current_step_number"] == 2
    assert state["status"] == "running"

    assert client.get("/api/workflows/unknown/state").status_code == 404


def test_corrupt_checkpoint_returns_422(pool: AgentPool, state_config: StateConfig) -> None:
    store = FileStateStore(state_config)
    store.path_for("wf-bad").write_text("{", encoding="utf-8")
    store.path_for("wf-invalid").write_text(
        '{"workflow_id": "wf-invalid", "current_step_number": -3}', encoding="utf-8"
    )
    client = _client(pool, store)

    for workflow_id in ("wf-bad", "wf-invalid"):
        response = client.get(f"/api/workflows/{workflow_id}/state")
        assert response.status_code == 422
        assert "corrupt" in response.json()["detail"]


def test_unreadable_checkpoint_returns_500(
    pool: AgentPool, state_config: StateConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = FileStateStore(state_config)
    store.save_state(WorkflowExecutionState(workflow_id="wf-1"))
    client = _client(pool, store)

    # Reading a directory fails with an OSError.
    monkeypatch.setattr(store, "path_for", lambda workflow_id: state_config.storage_path)
    response = client.get("/api/workflows/wf-1/state")

    assert response.status_code == 500
    assert "Failed to read checkpoint" in response.json()["detail"]


def test_openapi_is_served_under_api(pool: AgentPool, state_config: StateConfig) -> None:
    client = _client(pool, FileStateStore(state_config))

    schema = client.get("/api/openapi.json").json()

    assert schema["info"]["title"] == "Agent Workflow Orchestrator"
    assert "/api/agents/{agent_id}" in schema["paths"]
