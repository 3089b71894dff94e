"""Layered ``{{variable}}`` substitution."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import IntEnum
from pathlib import Path
from typing import Any

from agent_workflow_orchestrator.core.errors import VariableResolutionError

_TOKEN = re.compile(r"\{\{(.*?)\}\}")
_NAME = re.compile(r"^[A-Za-z_][\w.-]*$")


class VariableLayer(IntEnum):
    """Layers in merge order; a later layer wins for the same key."""

    SYSTEM = 0
    PATH = 1
    CONFIG = 2
    WORKFLOW = 3
    RUNTIME = 4


def system_variables(now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now(UTC)
    return {"date": now.date().isoformat(), "timestamp": now.isoformat()}


def path_variables(project_root: Path, installed_path: Path | None) -> dict[str, Any]:
    root = str(project_root.resolve())
    return {
        "project-root": root,
        "installed-path": str(installed_path.resolve()) if installed_path else root,
    }


def lookup_variable(variables: Mapping[str, Any], name: str) -> tuple[bool, Any]:
    """Find ``name`` as a flat key first, then by walking dotted segments."""
    if name in variables:
        return True, variables[name]

    current: Any = variables
    for part in name.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, list | tuple) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return False, None
    return True, current


def render_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict | list):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


class VariableContext:
    """Variables for one run, kept per layer and merged on demand."""

    def __init__(
        self,
        *,
        system: Mapping[str, Any] | None = None,
        path: Mapping[str, Any] | None = None,
        config: Mapping[str, Any] | None = None,
        workflow: Mapping[str, Any] | None = None,
        runtime: Mapping[str, Any] | None = None,
    ) -> None:
        self._layers: dict[VariableLayer, dict[str, Any]] = {
            VariableLayer.SYSTEM: dict(system or {}),
            VariableLayer.PATH: dict(path or {}),
            VariableLayer.CONFIG: dict(config or {}),
            VariableLayer.WORKFLOW: dict(workflow or {}),
            VariableLayer.RUNTIME: dict(runtime or {}),
        }

    def layer(self, layer: VariableLayer) -> dict[str, Any]:
        return dict(self._layers[layer])

    def set_runtime(self, key: str, value: Any) -> None:
        self._layers[VariableLayer.RUNTIME][key] = value

    def update_runtime(self, values: Mapping[str, Any]) -> None:
        self._layers[VariableLayer.RUNTIME].update(values)

    def runtime(self) -> dict[str, Any]:
        return dict(self._layers[VariableLayer.RUNTIME])

    def merged(self) -> dict[str, Any]:
        merged: dict[str, Any] = {}
        for layer in VariableLayer:
            merged.update(self._layers[layer])
        return merged

    def known_keys(self) -> list[str]:
        return sorted(self.merged())


class VariableResolver:
    """Replaces ``{{name}}``, ``{{a.b}}`` and ``{{name|default}}`` tokens.

    Substitution is a single pass: values are inserted verbatim and are not
    themselves expanded again.
    """

    def resolve(self, text: str, context: VariableContext) -> str:
        if not self.has_tokens(text):
            return text
        merged = context.merged()

        def _replace(match: re.Match[str]) -> str:
            inner = match.group(1)
            name, has_default, default = inner.partition("|")
            name = name.strip()
            if _NAME.match(name):
                found, value = lookup_variable(merged, name)
                if found and value is not None:
                    return render_value(value)
            if has_default:
                return default.strip()
            raise VariableResolutionError(name or inner, list(merged))

        return _TOKEN.sub(_replace, text)

    @staticmethod
    def has_tokens(text: str) -> bool:
        return _TOKEN.search(text) is not None
