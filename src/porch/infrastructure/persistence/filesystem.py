"""
Filesystem implementation of the project State Store.

Each project owns one human-readable YAML record:

{root}/
    codev/projects/
        {id}-{title}/
            status.yaml

Writes are atomic (temp file in the same directory + fsync + rename) and
guarded by an optimistic ``updated_at`` comparison.
"""

import logging
import os
import tempfile
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from porch.domain.exceptions import (
    ConcurrentModification,
    ProjectNotFound,
    StateParseError,
    StateValidationError,
)
from porch.domain.interfaces import StateStoreInterface
from porch.domain.models import (
    GateState,
    GateStatus,
    PlanPhase,
    PlanPhaseStatus,
    ProjectRef,
    ProjectState,
)
from porch.domain.state import (
    INIT_HINT,
    PROJECTS_DIR,
    STATUS_FILE,
    next_timestamp,
    project_ref,
)
from porch.schemas import describe_error, validate_state

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("id", "protocol", "phase")
_TIMESTAMP_FIELDS = ("started_at", "updated_at", "requested_at", "approved_at")


# =============================================================================
# SERIALIZATION
# =============================================================================


def state_to_dict(state: ProjectState) -> dict[str, Any]:
    """Serialize state to a YAML-compatible dict (field order is preserved)."""
    gates: dict[str, Any] = {}
    for name, gate in state.gates.items():
        entry: dict[str, Any] = {"status": gate.status.value}
        if gate.requested_at:
            entry["requested_at"] = gate.requested_at
        if gate.approved_at:
            entry["approved_at"] = gate.approved_at
        gates[name] = entry

    return {
        "id": state.id,
        "title": state.title,
        "protocol": state.protocol,
        "phase": state.phase,
        "plan_phases": [
            {"id": p.id, "title": p.title, "status": p.status.value}
            for p in state.plan_phases
        ],
        "current_plan_phase": state.current_plan_phase,
        "gates": gates,
        "started_at": state.started_at,
        "updated_at": state.updated_at,
    }


def dict_to_state(data: dict[str, Any]) -> ProjectState:
    """Deserialize state from an already-validated dict."""
    return ProjectState(
        id=data["id"],
        title=data.get("title") or "",
        protocol=data["protocol"],
        phase=data["phase"],
        plan_phases=[
            PlanPhase(
                id=p["id"], title=p["title"], status=PlanPhaseStatus(p["status"])
            )
            for p in data.get("plan_phases") or []
        ],
        current_plan_phase=data.get("current_plan_phase"),
        gates={
            name: GateStatus(
                status=GateState(g["status"]),
                requested_at=g.get("requested_at"),
                approved_at=g.get("approved_at"),
            )
            for name, g in (data.get("gates") or {}).items()
        },
        started_at=data.get("started_at") or "",
        updated_at=data.get("updated_at") or "",
    )


def _normalize_timestamps(data: dict[str, Any]) -> None:
    """YAML loads unquoted ISO timestamps as datetimes; keep them as strings."""

    def fix(mapping: dict[str, Any]) -> None:
        for key in _TIMESTAMP_FIELDS:
            value = mapping.get(key)
            if isinstance(value, (datetime, date)):
                mapping[key] = value.isoformat()

    fix(data)
    gates = data.get("gates")
    if isinstance(gates, dict):
        for gate in gates.values():
            if isinstance(gate, dict):
                fix(gate)


# =============================================================================
# STORE
# =============================================================================


class FilesystemStateStore(StateStoreInterface):
    """Persistent YAML state store."""

    def read(self, path: str) -> ProjectState:
        status_path = Path(path)
        if not status_path.is_file():
            raise ProjectNotFound(str(status_path), hint=INIT_HINT)

        try:
            with open(status_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise StateParseError(f"YAML parse error in {status_path}:\n{e}") from e

        if not isinstance(data, dict):
            raise StateValidationError(
                f"Invalid state file {status_path}: missing required fields: "
                f"{', '.join(REQUIRED_FIELDS)}"
            )
        missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "")]
        if missing:
            raise StateValidationError(
                f"Invalid state file {status_path}: missing required fields: "
                f"{', '.join(missing)}"
            )

        _normalize_timestamps(data)
        try:
            validate_state(data)
        except jsonschema.ValidationError as e:
            raise StateValidationError(
                f"Invalid state file {status_path}: {describe_error(e)}"
            ) from e

        logger.debug("Read state %s (phase=%s)", status_path, data["phase"])
        return dict_to_state(data)

    def write(
        self,
        path: str,
        state: ProjectState,
        expected_updated_at: str | None = None,
    ) -> ProjectState:
        status_path = Path(path)
        if expected_updated_at is not None:
            current = self.read(str(status_path)) if status_path.is_file() else None
            found = current.updated_at if current else None
            if found != expected_updated_at:
                raise ConcurrentModification(
                    str(status_path), expected_updated_at, found
                )

        written = replace(state, updated_at=next_timestamp(state.updated_at))
        self._write_atomic(status_path, state_to_dict(written))
        logger.debug("Wrote state %s (phase=%s)", status_path, written.phase)
        return written

    def exists(self, path: str) -> bool:
        return Path(path).is_file()

    def list_projects(self, root: str) -> list[ProjectRef]:
        projects_dir = Path(root) / PROJECTS_DIR
        if not projects_dir.is_dir():
            logger.debug("No projects directory at %s", projects_dir)
            return []
        return [
            project_ref(child / STATUS_FILE)
            for child in projects_dir.iterdir()
            if child.is_dir() and (child / STATUS_FILE).is_file()
        ]

    def _write_atomic(self, status_path: Path, data: dict[str, Any]) -> None:
        """Write to a temp file in the same directory, then rename over the target."""
        status_path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            dir=status_path.parent, prefix=f".{status_path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(
                    data,
                    f,
                    sort_keys=False,
                    default_flow_style=False,
                    allow_unicode=True,
                )
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_name, status_path)  # Atomic on POSIX
        except BaseException:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise
