"""Running cost totals for agents, workflows and projects."""

from __future__ import annotations

import threading
from collections import defaultdict

from agent_workflow_orchestrator.agents.models import CostMetrics


class CostLedger:
    """Monotonic cost totals; only :meth:`reset` lowers them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_agent: dict[str, float] = defaultdict(float)
        self._by_agent_name: dict[str, float] = defaultdict(float)
        self._by_workflow: dict[str, float] = defaultdict(float)
        self._by_project: dict[str, float] = defaultdict(float)
        self._total = 0.0

    def record(
        self,
        *,
        agent_id: str,
        agent_name: str,
        workflow_id: str | None,
        project_id: str | None,
        cost: float,
    ) -> None:
        if cost < 0:
            raise ValueError("cost must be non-negative")
        with self._lock:
            self._by_agent[agent_id] += cost
            self._by_agent_name[agent_name] += cost
            if workflow_id:
                self._by_workflow[workflow_id] += cost
            if project_id:
                self._by_project[project_id] += cost
            self._total += cost

    @property
    def total(self) -> float:
        with self._lock:
            return self._total

    def snapshot(self) -> CostMetrics:
        with self._lock:
            return CostMetrics(
                by_agent=dict(self._by_agent),
                by_agent_name=dict(self._by_agent_name),
                by_workflow=dict(self._by_workflow),
                by_project=dict(self._by_project),
                total=self._total,
            )

    def reset(self) -> None:
        with self._lock:
            self._by_agent.clear()
            self._by_agent_name.clear()
            self._by_workflow.clear()
            self._by_project.clear()
            self._total = 0.0
