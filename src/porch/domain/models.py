"""
Domain models for the protocol orchestrator.

Pure data structures describing protocols, project state and check outcomes.
All models are immutable (frozen dataclasses) except ProjectState, the single
mutable record the orchestrator persists between invocations.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

# =============================================================================
# PROTOCOL DEFINITION
# =============================================================================


class PhaseType(Enum):
    """How a protocol phase is executed."""

    ONCE = "once"
    PER_PLAN_PHASE = "per_plan_phase"
    PHASED = "phased"  # Alias of PER_PLAN_PHASE used by newer protocols

    @property
    def is_phased(self) -> bool:
        return self in (PhaseType.PER_PLAN_PHASE, PhaseType.PHASED)


@dataclass(frozen=True)
class CheckSpec:
    """A concrete check command, optionally pinned to a working directory."""

    command: str
    cwd: str | None = None  # Relative to the project root


@dataclass(frozen=True)
class ProtocolPhase:
    """One state of the protocol state machine."""

    id: str
    name: str
    type: PhaseType | None = None
    gate: str | None = None  # Gate that blocks leaving this phase
    checks: tuple[str, ...] = ()  # Keys into Protocol.checks
    next: str | None = None  # None => terminal phase

    @property
    def is_phased(self) -> bool:
        return self.type is not None and self.type.is_phased


@dataclass(frozen=True)
class CheckOverride:
    """Per-check override loaded from configuration."""

    skip: bool = False
    command: str | None = None
    cwd: str | None = None


@dataclass(frozen=True)
class Protocol:
    """
    Immutable protocol definition.

    Phases are kept in declaration order; the first phase is the entry state.
    """

    name: str
    phases: tuple[ProtocolPhase, ...]
    checks: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    version: str | None = None
    description: str | None = None

    @property
    def first_phase(self) -> ProtocolPhase:
        return self.phases[0]

    @property
    def phase_ids(self) -> tuple[str, ...]:
        return tuple(p.id for p in self.phases)

    def get_phase(self, phase_id: str) -> ProtocolPhase | None:
        for phase in self.phases:
            if phase.id == phase_id:
                return phase
        return None

    def get_next_phase(self, phase_id: str) -> ProtocolPhase | None:
        current = self.get_phase(phase_id)
        if current is None or current.next is None:
            return None
        return self.get_phase(current.next)

    def get_phase_gate(self, phase_id: str) -> str | None:
        phase = self.get_phase(phase_id)
        return phase.gate if phase else None

    def is_phased(self, phase_id: str) -> bool:
        phase = self.get_phase(phase_id)
        return phase is not None and phase.is_phased

    def gate_names(self) -> tuple[str, ...]:
        """Gate names in phase order, without duplicates."""
        names: list[str] = []
        for phase in self.phases:
            if phase.gate and phase.gate not in names:
                names.append(phase.gate)
        return tuple(names)

    def get_phase_checks(
        self,
        phase_id: str,
        overrides: Mapping[str, CheckOverride] | None = None,
    ) -> dict[str, CheckSpec]:
        """
        Resolve the concrete commands for a phase's checks, in declaration order.

        Check names with no command in the protocol table are dropped.
        Overrides may skip a check or replace its command and working directory.
        """
        phase = self.get_phase(phase_id)
        if phase is None:
            return {}

        result: dict[str, CheckSpec] = {}
        for name in phase.checks:
            command = self.checks.get(name)
            if not command:
                continue
            override = overrides.get(name) if overrides else None
            if override is None:
                result[name] = CheckSpec(command=command)
            elif not override.skip:
                result[name] = CheckSpec(
                    command=override.command or command,
                    cwd=override.cwd,
                )
        return result


# =============================================================================
# PROJECT STATE
# =============================================================================


class GateState(Enum):
    """Approval status of a gate."""

    PENDING = "pending"
    APPROVED = "approved"


class PlanPhaseStatus(Enum):
    """Progress of a plan phase."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


@dataclass(frozen=True)
class GateStatus:
    """Status of one human-approval gate."""

    status: GateState = GateState.PENDING
    requested_at: str | None = None
    approved_at: str | None = None

    @property
    def is_approved(self) -> bool:
        return self.status is GateState.APPROVED

    @property
    def is_waiting(self) -> bool:
        """Requested but not yet approved."""
        return self.status is GateState.PENDING and self.requested_at is not None


@dataclass(frozen=True)
class PlanPhase:
    """Implementation sub-phase extracted from a plan document."""

    id: str
    title: str
    status: PlanPhaseStatus = PlanPhaseStatus.PENDING


@dataclass
class ProjectState:
    """Mutable, persisted progress of one project through a protocol."""

    id: str
    title: str
    protocol: str
    phase: str
    plan_phases: list[PlanPhase] = field(default_factory=list)
    current_plan_phase: str | None = None
    gates: dict[str, GateStatus] = field(default_factory=dict)
    started_at: str = ""
    updated_at: str = ""

    @property
    def slug(self) -> str:
        """Directory name of the project: ``<id>-<title>``."""
        return f"{self.id}-{self.title}"


@dataclass(frozen=True)
class ProjectRef:
    """A project directory that holds a state record."""

    project_id: str
    dir_name: str
    status_path: str


@dataclass(frozen=True)
class PendingGate:
    """A gate that has been requested and awaits a human."""

    project_id: str
    gate: str
    requested_at: str | None
    status_path: str


# =============================================================================
# CHECK RESULTS
# =============================================================================


@dataclass(frozen=True)
class CheckResult:
    """Outcome of running one check command."""

    name: str
    command: str
    passed: bool
    output: str = ""
    error: str = ""
    timed_out: bool = False
    duration_ms: int = 0
