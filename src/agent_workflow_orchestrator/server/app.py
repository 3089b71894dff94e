"""FastAPI app factory.

Endpoints are thin read-only wrappers over the agent pool query methods and the
checkpoint store.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from agent_workflow_orchestrator import __version__
from agent_workflow_orchestrator.agents.models import CostMetrics, PoolStats
from agent_workflow_orchestrator.agents.pool import AgentPool
from agent_workflow_orchestrator.core.errors import CorruptStateError, StateIOError
from agent_workflow_orchestrator.server.config import ServerSettings
from agent_workflow_orchestrator.server.models import (
    ApiAgent,
    ApiQueuedTask,
    HealthResponse,
    WorkflowList,
)
from agent_workflow_orchestrator.state.models import WorkflowExecutionState
from agent_workflow_orchestrator.state.store import StateStore

logger = logging.getLogger(__name__)


def create_app(
    pool: AgentPool, state_store: StateStore, settings: ServerSettings | None = None
) -> FastAPI:
    settings = settings or ServerSettings()

    app = FastAPI(
        title="Agent Workflow Orchestrator",
        version=__version__,
        description="Read-only status API for the agent pool and workflow checkpoints.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        stats = pool.get_stats()
        return HealthResponse(
            active_agents=stats.active_agents,
            max_concurrent_agents=stats.max_concurrent_agents,
            queued_tasks=stats.queued_tasks,
        )

    @app.get("/api/agents", response_model=list[ApiAgent])
    def list_agents(name: str | None = None) -> list[ApiAgent]:
        return [ApiAgent.from_snapshot(a) for a in pool.get_active_agents(name)]

    @app.get("/api/agents/{agent_id}", response_model=ApiAgent)
    def get_agent(agent_id: str) -> ApiAgent:
        agent = pool.get_agent_by_id(agent_id)
        if agent is None:
            raise HTTPException(status_code=404, detail="Agent not found")
        return ApiAgent.from_snapshot(agent)

    @app.get("/api/queue", response_model=list[ApiQueuedTask])
    def list_queue() -> list[ApiQueuedTask]:
        return [ApiQueuedTask.from_info(t) for t in pool.get_queued_tasks()]

    @app.get("/api/costs", response_model=CostMetrics)
    def costs() -> CostMetrics:
        return pool.get_cost_metrics()

    @app.get("/api/stats", response_model=PoolStats)
    def stats() -> PoolStats:
        return pool.get_stats()

    @app.get("/api/workflows", response_model=WorkflowList)
    def list_workflows() -> WorkflowList:
        return WorkflowList(workflow_ids=state_store.list_workflow_ids())

    @app.get("/api/workflows/{workflow_id}/state", response_model=WorkflowExecutionState)
    def workflow_state(workflow_id: str) -> WorkflowExecutionState:
        try:
            state = state_store.load_state(workflow_id)
        except CorruptStateError as e:
            # The next run of this workflow discards it and starts from step 1.
            raise HTTPException(status_code=422, detail=e.message) from e
        except StateIOError as e:
            logger.warning(f"Failed to read checkpoint for {workflow_id}: {e}")
            raise HTTPException(status_code=500, detail=e.message) from e
        if state is None:
            raise HTTPException(status_code=404, detail="Workflow not found")
        return state

    return app
