from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from agent_workflow_orchestrator.core.errors import AgentPoolError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Persona:
    name: str
    ref: str | None
    text: str


class PersonaLoader:
    """Loads ``<persona_dir>/<name>.md``.

    Without a persona directory every agent gets an empty persona, which keeps
    provider selection independent of behavioural profiles.
    """

    def __init__(self, persona_dir: Path | None) -> None:
        self.persona_dir = persona_dir

    def load(self, name: str) -> Persona:
        if self.persona_dir is None:
            return Persona(name=name, ref=None, text="")

        path = self.persona_dir / f"{name}.md"
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise AgentPoolError(
                f"Failed to load persona for agent {name!r} from {path}: {e}",
                "PERSONA_LOAD_FAILED",
                name,
            ) from e

        logger.debug("Persona loaded", extra={"agent_name": name, "path": str(path)})
        return Persona(name=name, ref=str(path), text=text)
