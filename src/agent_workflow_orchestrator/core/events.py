"""Fire-and-forget lifecycle events for dashboards and observers."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    AGENT_STARTED = "agent.started"
    AGENT_INVOKED = "agent.invoked"
    AGENT_COMPLETED = "agent.completed"
    AGENT_ERROR = "agent.error"
    WORKFLOW_STEP_COMPLETED = "workflow.step.completed"
    WORKFLOW_COMPLETED = "workflow.completed"
    WORKFLOW_FAILED = "workflow.failed"


@dataclass(frozen=True, slots=True)
class OrchestratorEvent:
    type: EventType
    payload: dict[str, object]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class EventSink(Protocol):
    """Anything that can receive events. Must not raise or block."""

    def emit(self, event: OrchestratorEvent) -> None: ...


EventListener = Callable[[OrchestratorEvent], None]


class EventBus:
    """In-process dispatcher; listener failures are logged and swallowed."""

    def __init__(self) -> None:
        self._listeners: dict[EventType, list[EventListener]] = defaultdict(list)
        self._global_listeners: list[EventListener] = []

    def subscribe(
        self, listener: EventListener, event_types: list[EventType] | None = None
    ) -> None:
        if event_types is None:
            self._global_listeners.append(listener)
            return
        for event_type in event_types:
            self._listeners[event_type].append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        if listener in self._global_listeners:
            self._global_listeners.remove(listener)
        for listeners in self._listeners.values():
            if listener in listeners:
                listeners.remove(listener)

    def emit(self, event: OrchestratorEvent) -> None:
        for listener in [*self._global_listeners, *self._listeners.get(event.type, [])]:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Event listener {listener!r} failed on {event.type.value}: {e}")


class NullEventSink:
    def emit(self, event: OrchestratorEvent) -> None:
        return None
