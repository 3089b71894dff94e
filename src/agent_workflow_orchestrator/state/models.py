"""Persisted workflow checkpoint."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class WorkflowStatus(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


class WorkflowExecutionState(BaseModel):
    """Snapshot sufficient to resume a run without repeating finished steps.

    ``current_step_number`` is the last step that completed (or was skipped);
    0 means nothing has run yet. ``next_step_number`` is set when that step
    ended in a ``goto`` so a resume lands on the jump target.
    """

    workflow_id: str
    project_id: str | None = None
    current_step_number: int = Field(default=0, ge=0)
    status: WorkflowStatus = WorkflowStatus.RUNNING
    variables: dict[str, Any] = Field(default_factory=dict)
    start_time: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_update: datetime = Field(default_factory=lambda: datetime.now(UTC))
    next_step_number: int | None = Field(default=None, ge=1)
    jump_count: int = Field(default=0, ge=0)
    error: str | None = None
