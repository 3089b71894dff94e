"""Agent pool and supporting models."""

from agent_workflow_orchestrator.agents.ledger import CostLedger
from agent_workflow_orchestrator.agents.models import (
    AgentContext,
    AgentResponse,
    AgentSnapshot,
    AgentStatus,
    CostMetrics,
    PoolStats,
    QueuedTaskInfo,
)
from agent_workflow_orchestrator.agents.persona import Persona, PersonaLoader
from agent_workflow_orchestrator.agents.pool import AgentPool
from agent_workflow_orchestrator.agents.project_config import ProjectConfig, StaticProjectConfig

__all__ = [
    "AgentContext",
    "AgentPool",
    "AgentResponse",
    "AgentSnapshot",
    "AgentStatus",
    "CostLedger",
    "CostMetrics",
    "Persona",
    "PersonaLoader",
    "PoolStats",
    "ProjectConfig",
    "QueuedTaskInfo",
    "StaticProjectConfig",
]
