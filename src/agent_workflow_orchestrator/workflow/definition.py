"""What to run: instruction text plus its declared variables."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class WorkflowDefinition(BaseModel):
    workflow_id: str = Field(min_length=1)
    name: str = ""
    instructions: str
    variables: dict[str, Any] = Field(default_factory=dict)
    project_id: str | None = None
    installed_path: Path | None = Field(
        default=None, description="Folder the instructions were loaded from"
    )

    @classmethod
    def from_file(
        cls,
        path: Path,
        *,
        workflow_id: str | None = None,
        variables: dict[str, Any] | None = None,
        project_id: str | None = None,
    ) -> WorkflowDefinition:
        logger.info(f"Loading workflow instructions from: {path}")
        text = path.read_text(encoding="utf-8")
        return cls(
            workflow_id=workflow_id or path.stem,
            name=path.stem,
            instructions=text,
            variables=dict(variables or {}),
            project_id=project_id,
            installed_path=path.parent,
        )
