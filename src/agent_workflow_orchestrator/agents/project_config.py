"""Project-level configuration consumed by the pool and the engine."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from pydantic import BaseModel, Field

from agent_workflow_orchestrator.core.config import AgentAssignment


class ProjectConfig(Protocol):
    """Opaque project settings. Loading them from files is someone else's job."""

    @property
    def project_id(self) -> str: ...

    def get_agent_assignment(self, name: str) -> AgentAssignment | None: ...

    def config_variables(self) -> Mapping[str, Any]: ...


class StaticProjectConfig(BaseModel):
    project_id: str = "default"
    agent_assignments: dict[str, AgentAssignment] = Field(default_factory=dict)
    variables: dict[str, Any] = Field(default_factory=dict)

    def get_agent_assignment(self, name: str) -> AgentAssignment | None:
        return self.agent_assignments.get(name)

    def config_variables(self) -> Mapping[str, Any]:
        return dict(self.variables)
