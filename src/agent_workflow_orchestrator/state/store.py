"""Checkpoint persistence.

The engine only talks to the :class:`StateStore` protocol, so the backing
mechanism can be swapped without touching execution logic.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from collections import defaultdict
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from agent_workflow_orchestrator.core.config import StateConfig
from agent_workflow_orchestrator.core.errors import CorruptStateError, StateIOError
from agent_workflow_orchestrator.state.models import WorkflowExecutionState

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class StateStore(Protocol):
    def save_state(self, state: WorkflowExecutionState) -> None: ...

    def load_state(self, workflow_id: str) -> WorkflowExecutionState | None: ...

    def delete_state(self, workflow_id: str) -> None: ...

    def list_workflow_ids(self) -> list[str]: ...


class FileStateStore:
    """One JSON document per workflow under ``storage_path``.

    Writes go to a temp file in the same directory, are fsynced and then
    renamed over the target, so readers only ever see a complete checkpoint.
    Writes for the same workflow id are serialized.
    """

    def __init__(self, config: StateConfig | None = None) -> None:
        self.config = config or StateConfig()
        self.storage_path = self.config.storage_path
        self._retry = self.config.retry_policy()
        self._locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

        self.storage_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"State store initialized at: {self.storage_path}")

    def path_for(self, workflow_id: str) -> Path:
        safe = _UNSAFE_CHARS.sub("_", workflow_id)
        return self.storage_path / f"{safe}.json"

    def _lock_for(self, workflow_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks[workflow_id]

    def save_state(self, state: WorkflowExecutionState) -> None:
        state.last_update = datetime.now(UTC)
        payload = json.dumps(state.model_dump(mode="json"), indent=2)
        path = self.path_for(state.workflow_id)

        with self._lock_for(state.workflow_id):
            try:
                self._retry.call(
                    lambda: self._write_atomic(path, payload),
                    retry_on=(OSError,),
                    description=f"save checkpoint {state.workflow_id}",
                )
            except OSError as e:
                raise StateIOError(
                    f"Failed to persist checkpoint for workflow {state.workflow_id!r}: {e}",
                    {"workflow_id": state.workflow_id, "path": str(path)},
                ) from e

        logger.debug(
            "Checkpoint saved",
            extra={
                "workflow_id": state.workflow_id,
                "step_number": state.current_step_number,
                "status": state.status.value,
            },
        )

    def _write_atomic(self, path: Path, payload: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def load_state(self, workflow_id: str) -> WorkflowExecutionState | None:
        path = self.path_for(workflow_id)
        if not path.exists():
            return None

        try:
            raw, _ = self._retry.call(
                lambda: path.read_text(encoding="utf-8"),
                retry_on=(OSError,),
                description=f"load checkpoint {workflow_id}",
            )
        except OSError as e:
            raise StateIOError(
                f"Failed to read checkpoint for workflow {workflow_id!r}: {e}",
                {"workflow_id": workflow_id, "path": str(path)},
            ) from e

        try:
            return WorkflowExecutionState.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            raise CorruptStateError(
                f"Checkpoint for workflow {workflow_id!r} is corrupt: {e}",
                {"workflow_id": workflow_id, "path": str(path)},
            ) from e

    def delete_state(self, workflow_id: str) -> None:
        with self._lock_for(workflow_id):
            self.path_for(workflow_id).unlink(missing_ok=True)

    def list_workflow_ids(self) -> list[str]:
        ids: list[str] = []
        for path in sorted(self.storage_path.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping unreadable checkpoint {path}: {e}")
                continue
            workflow_id = data.get("workflow_id") if isinstance(data, dict) else None
            if isinstance(workflow_id, str):
                ids.append(workflow_id)
        return ids


class InMemoryStateStore:
    """Process-local store; used for task runs and in tests."""

    def __init__(self) -> None:
        self._states: dict[str, WorkflowExecutionState] = {}
        self._lock = threading.Lock()

    def save_state(self, state: WorkflowExecutionState) -> None:
        state.last_update = datetime.now(UTC)
        with self._lock:
            self._states[state.workflow_id] = state.model_copy(deep=True)

    def load_state(self, workflow_id: str) -> WorkflowExecutionState | None:
        with self._lock:
            state = self._states.get(workflow_id)
            return state.model_copy(deep=True) if state is not None else None

    def delete_state(self, workflow_id: str) -> None:
        with self._lock:
            self._states.pop(workflow_id, None)

    def list_workflow_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._states)
