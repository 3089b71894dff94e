from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from agent_workflow_orchestrator.core.config import AgentAssignment
from agent_workflow_orchestrator.llm.client import LLMClient


class AgentStatus(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    IDLE = "idle"
    ERROR = "error"
    DESTROYED = "destroyed"


@dataclass(frozen=True, slots=True)
class AgentContext:
    """Who an agent works for; drives cost attribution."""

    workflow_id: str | None = None
    project_id: str | None = None
    step_number: int | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Agent:
    """Live agent record. Only the pool holds references to these."""

    id: str
    name: str
    persona_ref: str | None
    persona: str
    client: LLMClient
    context: AgentContext
    start_time: datetime
    started_monotonic: float
    estimated_cost: float = 0.0
    status: AgentStatus = AgentStatus.CREATED
    running_since: float | None = None
    invocations: int = 0
    execution_log: list[dict[str, Any]] = field(default_factory=list)

    def snapshot(self) -> AgentSnapshot:
        return AgentSnapshot(
            id=self.id,
            name=self.name,
            provider=self.client.provider,
            model=self.client.model,
            persona_ref=self.persona_ref,
            workflow_id=self.context.workflow_id,
            project_id=self.context.project_id,
            status=self.status,
            start_time=self.start_time,
            estimated_cost=self.estimated_cost,
            invocations=self.invocations,
        )


@dataclass(frozen=True, slots=True)
class AgentSnapshot:
    """Read-only copy of an agent handed to callers."""

    id: str
    name: str
    provider: str
    model: str
    persona_ref: str | None
    workflow_id: str | None
    project_id: str | None
    status: AgentStatus
    start_time: datetime
    estimated_cost: float
    invocations: int


@dataclass(slots=True)
class AgentTask:
    """A queued request for an agent slot."""

    name: str
    llm_config: AgentAssignment | None
    context: AgentContext
    future: Future[AgentSnapshot]
    queued_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def resolve(self, agent: AgentSnapshot) -> None:
        self.future.set_result(agent)

    def reject(self, error: BaseException) -> None:
        self.future.set_exception(error)


@dataclass(frozen=True, slots=True)
class QueuedTaskInfo:
    name: str
    workflow_id: str | None
    queued_at: datetime
    position: int


@dataclass(frozen=True, slots=True)
class AgentResponse:
    agent_id: str
    text: str
    cost: float
    tokens_in: int
    tokens_out: int
    latency_seconds: float
    attempts: int


class CostMetrics(BaseModel):
    by_agent: dict[str, float] = Field(default_factory=dict)
    by_agent_name: dict[str, float] = Field(default_factory=dict)
    by_workflow: dict[str, float] = Field(default_factory=dict)
    by_project: dict[str, float] = Field(default_factory=dict)
    total: float = 0.0


class PoolStats(BaseModel):
    active_agents: int
    max_concurrent_agents: int
    queued_tasks: int
    total_agents_created: int
    total_cost: float
