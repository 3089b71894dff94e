"""Read-only FastAPI status API over a running agent pool and its checkpoints.

Dashboards poll these endpoints; nothing here mutates pool or workflow state.
"""

from __future__ import annotations

__all__ = ["create_app"]

from agent_workflow_orchestrator.server.app import create_app
