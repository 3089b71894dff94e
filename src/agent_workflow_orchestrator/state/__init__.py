"""State management module."""

from agent_workflow_orchestrator.state.models import WorkflowExecutionState, WorkflowStatus
from agent_workflow_orchestrator.state.store import FileStateStore, InMemoryStateStore, StateStore

__all__ = [
    "FileStateStore",
    "InMemoryStateStore",
    "StateStore",
    "WorkflowExecutionState",
    "WorkflowStatus",
]
