from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ActionKind(str, Enum):
    ACTION = "action"
    ASK = "ask"
    OUTPUT = "output"
    TEMPLATE_OUTPUT = "template-output"
    ELICIT_REQUIRED = "elicit-required"
    GOTO = "goto"
    INVOKE_WORKFLOW = "invoke-workflow"
    INVOKE_TASK = "invoke-task"


@dataclass(frozen=True, slots=True)
class Action:
    """One executable element of a step.

    ``unknown_tag`` is set when the element was not a recognised tag; the raw
    element text is then kept in ``content``.
    """

    kind: ActionKind
    content: str
    condition: str | None = None
    attributes: dict[str, str] = field(default_factory=dict)
    position: int = 0
    unknown_tag: str | None = None


@dataclass(frozen=True, slots=True)
class Check:
    condition: str
    actions: tuple[Action | Check, ...] = ()
    position: int = 0


@dataclass(frozen=True, slots=True)
class Step:
    number: int
    goal: str
    content: str
    optional: bool = False
    critical: bool = True
    condition: str | None = None
    actions: tuple[Action, ...] = ()
    checks: tuple[Check, ...] = ()
    line: int = 1

    def items(self) -> list[Action | Check]:
        """Actions and checks in document order."""
        return sorted([*self.actions, *self.checks], key=lambda item: item.position)
