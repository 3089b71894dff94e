"""Error taxonomy for the orchestrator.

Every error carries a ``context`` dict so that fatal failures can be escalated
with the step number, the offending content and the variables that were known
at the time.
"""

from __future__ import annotations

from typing import Any


class OrchestratorError(Exception):
    """Base class for all orchestrator errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = dict(context or {})

    def with_context(self, **context: Any) -> OrchestratorError:
        """Attach context without overwriting keys that are already set."""
        for key, value in context.items():
            self.context.setdefault(key, value)
        return self

    @property
    def step_number(self) -> int | None:
        value = self.context.get("step_number")
        return value if isinstance(value, int) else None

    def to_json(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "context": {k: v for k, v in self.context.items() if k != "known_variables"},
        }

    def __str__(self) -> str:
        step = self.step_number
        if step is None:
            return self.message
        return f"[step {step}] {self.message}"


class ParseError(OrchestratorError):
    """Malformed or non-sequential step tags in an instruction document."""

    def __init__(self, line: int, message: str) -> None:
        super().__init__(f"line {line}: {message}", {"line": line})
        self.line = line


class VariableResolutionError(OrchestratorError):
    def __init__(self, variable: str, known_keys: list[str]) -> None:
        listing = ", ".join(sorted(known_keys)) or "(none)"
        super().__init__(
            f"Undefined variable {{{{{variable}}}}}; known variables: {listing}",
            {"variable": variable, "known_variables": sorted(known_keys)},
        )
        self.variable = variable
        self.known_keys = sorted(known_keys)


class ConditionEvaluationError(OrchestratorError):
    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(
            f"Cannot evaluate condition {expression!r}: {reason}",
            {"expression": expression},
        )
        self.expression = expression


class StateIOError(OrchestratorError):
    """Checkpoint could not be read or written."""


class CorruptStateError(StateIOError):
    """Checkpoint was read but is not valid JSON or does not fit the schema."""


class RejectedError(OrchestratorError):
    """Agent request refused because the wait queue is full."""


class NotFoundError(OrchestratorError):
    """Referenced agent does not exist or has been destroyed."""


class AgentPoolError(OrchestratorError):
    """Agent could not be created (configuration, persona or client failure)."""

    def __init__(self, message: str, code: str, agent_name: str | None = None) -> None:
        super().__init__(message, {"code": code, "agent_name": agent_name})
        self.code = code


class AgentInvocationError(OrchestratorError):
    """Agent invocation failed after the retry budget was spent."""


class WorkflowExecutionError(OrchestratorError):
    """A step could not be executed."""


class GotoLimitExceededError(WorkflowExecutionError):
    pass


class NestedWorkflowError(WorkflowExecutionError):
    pass


class UnsupportedActionError(WorkflowExecutionError):
    pass
