"""Core package initialization."""

from agent_workflow_orchestrator.core.config import OrchestratorConfig
from agent_workflow_orchestrator.core.orchestrator import Orchestrator

__all__ = [
    "Orchestrator",
    "OrchestratorConfig",
]
