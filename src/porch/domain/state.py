"""
Project state construction, location and timestamp rules.

Project records live at ``<root>/codev/projects/<id>-<title>/status.yaml``.
A bare project id is resolved through a ProjectIndex built once per
invocation, so "not found" and "ambiguous" are decided in one place.
"""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from pathlib import Path

from porch.domain.exceptions import AmbiguousProject, ProjectNotFound
from porch.domain.models import GateStatus, ProjectRef, ProjectState, Protocol

PROJECTS_DIR = "codev/projects"
STATUS_FILE = "status.yaml"

INIT_HINT = "porch init <protocol> <id> <title> to create a new project"


# =============================================================================
# LOCATION
# =============================================================================


def get_project_dir(root: str | Path, project_id: str, title: str) -> Path:
    return Path(root) / PROJECTS_DIR / f"{project_id}-{title}"


def get_status_path(root: str | Path, project_id: str, title: str) -> Path:
    return get_project_dir(root, project_id, title) / STATUS_FILE


class ProjectIndex:
    """Lookup of project state files by project id."""

    def __init__(self, projects: Iterable[ProjectRef]):
        self._projects = sorted(projects, key=lambda p: p.dir_name)

    def projects(self) -> list[ProjectRef]:
        return list(self._projects)

    def matches(self, project_id: str) -> list[ProjectRef]:
        """Projects whose directory is ``<id>`` or starts with ``<id>-``."""
        return [
            p
            for p in self._projects
            if p.dir_name == project_id or p.dir_name.startswith(f"{project_id}-")
        ]

    def resolve(self, project_id: str) -> str:
        """
        Find the state file of a project.

        Raises:
            ProjectNotFound: If no project matches
            AmbiguousProject: If more than one project matches
        """
        found = self.matches(project_id)
        if not found:
            raise ProjectNotFound(project_id, hint=INIT_HINT)
        if len(found) > 1:
            raise AmbiguousProject(project_id, [p.dir_name for p in found])
        return found[0].status_path


def project_ref(status_path: str | Path) -> ProjectRef:
    """Describe the project owning a status file."""
    dir_name = Path(status_path).parent.name
    return ProjectRef(
        project_id=dir_name.split("-", 1)[0],
        dir_name=dir_name,
        status_path=str(status_path),
    )


def check_env(project_id: str, project_title: str) -> dict[str, str]:
    """Environment variables passed to every check command."""
    return {"PROJECT_ID": project_id, "PROJECT_TITLE": project_title}


# =============================================================================
# TIMESTAMPS
# =============================================================================


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


def next_timestamp(previous: str | None) -> str:
    """
    Current UTC time, nudged forward if needed so it is strictly later than
    ``previous``.
    """
    now = datetime.now(UTC)
    if previous:
        try:
            prior = datetime.fromisoformat(previous)
        except ValueError:
            prior = None
        if prior is not None:
            if prior.tzinfo is None:
                prior = prior.replace(tzinfo=UTC)
            if now <= prior:
                now = prior + timedelta(microseconds=1)
    return now.isoformat()


# =============================================================================
# CONSTRUCTION
# =============================================================================


def create_initial_state(protocol: Protocol, project_id: str, title: str) -> ProjectState:
    """
    Create the state of a new project.

    Starts at the protocol's first phase with every declared gate pending.
    """
    now = utc_now()
    return ProjectState(
        id=project_id,
        title=title,
        protocol=protocol.name,
        phase=protocol.first_phase.id,
        plan_phases=[],
        current_plan_phase=None,
        gates={gate: GateStatus() for gate in protocol.gate_names()},
        started_at=now,
        updated_at=now,
    )
