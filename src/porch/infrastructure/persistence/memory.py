"""
In-memory implementation of the State Store.

Useful for testing and for embedding the orchestrator without touching disk.
"""

import copy
from dataclasses import replace
from pathlib import Path

from porch.domain.exceptions import ConcurrentModification, ProjectNotFound
from porch.domain.interfaces import StateStoreInterface
from porch.domain.models import ProjectRef, ProjectState
from porch.domain.state import PROJECTS_DIR, next_timestamp, project_ref


class InMemoryStateStore(StateStoreInterface):
    """Simple in-memory store keyed by path."""

    def __init__(self) -> None:
        self._states: dict[str, ProjectState] = {}

    def read(self, path: str) -> ProjectState:
        if path not in self._states:
            raise ProjectNotFound(path)
        return copy.deepcopy(self._states[path])

    def write(
        self,
        path: str,
        state: ProjectState,
        expected_updated_at: str | None = None,
    ) -> ProjectState:
        if expected_updated_at is not None:
            current = self._states.get(path)
            found = current.updated_at if current else None
            if found != expected_updated_at:
                raise ConcurrentModification(path, expected_updated_at, found)

        written = replace(state, updated_at=next_timestamp(state.updated_at))
        self._states[path] = copy.deepcopy(written)
        return written

    def exists(self, path: str) -> bool:
        return path in self._states

    def list_projects(self, root: str) -> list[ProjectRef]:
        projects_dir = Path(root) / PROJECTS_DIR
        return [
            project_ref(path)
            for path in self._states
            if Path(path).parent.parent == projects_dir
        ]
