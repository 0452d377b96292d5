"""
Plan document discovery.

Plans live next to the project state (``codev/projects/<id>-<title>/plan.md``)
or, in the legacy layout, under ``codev/plans/<id>-*.md``.
"""

import logging
from pathlib import Path

from porch.domain.exceptions import PlanNotFound
from porch.domain.interfaces import PlanSourceInterface
from porch.domain.models import PlanPhase
from porch.domain.plan import extract_plan_phases, get_phase_content
from porch.domain.state import get_project_dir

logger = logging.getLogger(__name__)

PLANS_DIR = "codev/plans"
PLAN_FILE = "plan.md"


def plan_candidates(root: str | Path, project_id: str, title: str) -> list[Path]:
    """Plan file locations for a project, in precedence order."""
    candidates = [get_project_dir(root, project_id, title) / PLAN_FILE]
    plans_dir = Path(root) / PLANS_DIR
    if plans_dir.is_dir():
        candidates.extend(sorted(plans_dir.glob(f"{project_id}-*.md")))
    return candidates


def find_plan_file(root: str | Path, project_id: str, title: str) -> Path | None:
    for candidate in plan_candidates(root, project_id, title):
        if candidate.is_file():
            return candidate
    return None


def read_plan(plan_path: Path) -> str:
    """Plan text as UTF-8; undecodable bytes become U+FFFD."""
    return plan_path.read_text(encoding="utf-8", errors="replace")


def extract_phases_from_file(path: str | Path) -> list[PlanPhase]:
    """
    Extract plan phases from a plan file.

    Raises:
        PlanNotFound: If the file does not exist
    """
    plan_path = Path(path)
    if not plan_path.is_file():
        raise PlanNotFound(str(plan_path))
    phases = extract_plan_phases(read_plan(plan_path))
    logger.debug("Extracted %d plan phase(s) from %s", len(phases), plan_path)
    return phases


class FilesystemPlanSource(PlanSourceInterface):
    """Plan documents under a project root."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def load_phases(self, project_id: str, title: str) -> list[PlanPhase]:
        plan_path = find_plan_file(self.root, project_id, title)
        if plan_path is None:
            # Report the preferred location
            raise PlanNotFound(str(plan_candidates(self.root, project_id, title)[0]))
        return extract_phases_from_file(plan_path)

    def phase_content(self, project_id: str, title: str, phase_id: str) -> str | None:
        plan_path = find_plan_file(self.root, project_id, title)
        if plan_path is None:
            return None
        return get_phase_content(read_plan(plan_path), phase_id)
