"""Pydantic models for the REST server."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from agent_workflow_orchestrator.agents.models import AgentSnapshot, QueuedTaskInfo


class ApiAgent(BaseModel):
    id: str
    name: str
    provider: str
    model: str
    persona_ref: str | None = None
    workflow_id: str | None = None
    project_id: str | None = None
    status: str
    start_time: datetime
    estimated_cost: float
    invocations: int

    @classmethod
    def from_snapshot(cls, agent: AgentSnapshot) -> ApiAgent:
        return cls(
            id=agent.id,
            name=agent.name,
            provider=agent.provider,
            model=agent.model,
            persona_ref=agent.persona_ref,
            workflow_id=agent.workflow_id,
            project_id=agent.project_id,
            status=agent.status.value,
            start_time=agent.start_time,
            estimated_cost=agent.estimated_cost,
            invocations=agent.invocations,
        )


class ApiQueuedTask(BaseModel):
    name: str
    workflow_id: str | None = None
    queued_at: datetime
    position: int

    @classmethod
    def from_info(cls, task: QueuedTaskInfo) -> ApiQueuedTask:
        return cls(
            name=task.name,
            workflow_id=task.workflow_id,
            queued_at=task.queued_at,
            position=task.position,
        )


class HealthResponse(BaseModel):
    status: str = "ok"
    active_agents: int
    max_concurrent_agents: int
    queued_tasks: int


class WorkflowList(BaseModel):
    workflow_ids: list[str] = Field(default_factory=list)
