"""
Plan phase extraction and navigation.

A plan document carries its implementation phases under a ``## Phases`` (or
``## Implementation Phases``) section as ``### Phase N: Title`` headings.
Extraction is tolerant: it falls back to generic sub-headings and finally to
a single synthetic phase, so a phased protocol phase always has something to
drive against. All functions here are pure.
"""

import re
from collections.abc import Sequence
from dataclasses import replace

from porch.domain.models import PlanPhase, PlanPhaseStatus

_PHASES_SECTION = re.compile(
    r"^##[ \t]*(?:Implementation[ \t]+)?Phases[ \t]*\n(.*?)(?=^##[ \t]|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
_PHASE_HEADING = re.compile(
    r"^###[ \t]*Phase[ \t]+(\d+):[ \t]*(.+)$", re.IGNORECASE | re.MULTILINE
)
_SUB_HEADING = re.compile(r"^###(?!#)[ \t]*(.+)$", re.MULTILINE)
_PHASE_ID = re.compile(r"phase_(\d+)")

# Sub-sections of a phases section that are not engineering phases
NON_PHASE_KEYWORDS = ("dependencies", "acceptance", "test", "overview")

DEFAULT_PHASE_TITLE = "Implementation"


def extract_plan_phases(plan_text: str) -> list[PlanPhase]:
    """
    Extract implementation phases from plan markdown.

    Returns:
        Phases in document order, all pending. Never empty.
    """
    section = _PHASES_SECTION.search(plan_text)
    if section is None:
        return [_default_phase()]

    body = section.group(1)
    phases = [
        PlanPhase(id=f"phase_{number}", title=title.strip())
        for number, title in _PHASE_HEADING.findall(body)
    ]

    if not phases:
        for heading in _SUB_HEADING.findall(body):
            title = heading.strip()
            lowered = title.lower()
            if not title or any(word in lowered for word in NON_PHASE_KEYWORDS):
                continue
            phases.append(PlanPhase(id=f"phase_{len(phases) + 1}", title=title))

    return phases or [_default_phase()]


def get_phase_content(plan_text: str, phase_id: str) -> str | None:
    """
    Get the prose under a ``### Phase N:`` heading.

    Runs until the next ``### Phase`` heading or the next ``##`` section.
    """
    match = _PHASE_ID.fullmatch(phase_id)
    if match is None:
        return None

    pattern = re.compile(
        rf"^###[ \t]*Phase[ \t]+{match.group(1)}:[^\n]*\n(.*?)"
        r"(?=^###[ \t]*Phase|^##[ \t]|\Z)",
        re.IGNORECASE | re.MULTILINE | re.DOTALL,
    )
    content = pattern.search(plan_text)
    return content.group(1).strip() if content else None


# =============================================================================
# NAVIGATION
# =============================================================================


def get_current_plan_phase(phases: Sequence[PlanPhase]) -> PlanPhase | None:
    """First phase that is not complete, or None when all are complete."""
    for phase in phases:
        if phase.status is not PlanPhaseStatus.COMPLETE:
            return phase
    return None


def get_next_plan_phase(
    phases: Sequence[PlanPhase], current_phase_id: str
) -> PlanPhase | None:
    """Phase immediately following the given one."""
    for index, phase in enumerate(phases[:-1]):
        if phase.id == current_phase_id:
            return phases[index + 1]
    return None


def all_plan_phases_complete(phases: Sequence[PlanPhase]) -> bool:
    return all(p.status is PlanPhaseStatus.COMPLETE for p in phases)


def advance_plan_phase(
    phases: Sequence[PlanPhase], current_phase_id: str
) -> list[PlanPhase]:
    """
    Complete a phase and start its successor.

    Returns a new list; phases other than the named one and its immediate
    successor are left untouched.

    Raises:
        ValueError: If no phase has the given id
    """
    ids = [p.id for p in phases]
    if current_phase_id not in ids:
        raise ValueError(
            f"Unknown plan phase: {current_phase_id} (phases: {', '.join(ids)})"
        )
    index = ids.index(current_phase_id)

    advanced = list(phases)
    advanced[index] = replace(phases[index], status=PlanPhaseStatus.COMPLETE)
    if index + 1 < len(phases):
        advanced[index + 1] = replace(
            phases[index + 1], status=PlanPhaseStatus.IN_PROGRESS
        )
    return advanced


def start_plan_phases(phases: Sequence[PlanPhase]) -> list[PlanPhase]:
    """Copy of freshly extracted phases with the first one in progress."""
    started = list(phases)
    if started:
        started[0] = replace(started[0], status=PlanPhaseStatus.IN_PROGRESS)
    return started


def current_plan_phase_id(phases: Sequence[PlanPhase]) -> str | None:
    current = get_current_plan_phase(phases)
    return current.id if current else None


def _default_phase() -> PlanPhase:
    return PlanPhase(id="phase_1", title=DEFAULT_PHASE_TITLE)
