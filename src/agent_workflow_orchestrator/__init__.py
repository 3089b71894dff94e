"""Agent Workflow Orchestrator.

Parses tagged instruction documents, runs them step by step with crash-safe
checkpoints, and hands the actual work to a bounded, cost-tracked pool of
LLM-backed agents.
"""

__version__ = "0.1.0"

from agent_workflow_orchestrator.core.config import OrchestratorConfig
from agent_workflow_orchestrator.core.orchestrator import Orchestrator

__all__ = ["__version__", "Orchestrator", "OrchestratorConfig"]
