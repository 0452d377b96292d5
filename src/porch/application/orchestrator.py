"""
Orchestrator Engine: the protocol state machine.

States are protocol phase ids and transitions follow each phase's ``next``.
A phased phase carries a sub-machine of plan phases that must fully resolve
before the phase itself completes.

Commands never partially mutate: every lookup, validation and check runs
before the single state write.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

from porch.application.report import CommandReport, ReportSection, Tone
from porch.domain.exceptions import (
    GateBlocked,
    GateNotFound,
    ProjectAlreadyExists,
    StateValidationError,
)
from porch.domain.interfaces import (
    CheckRunnerInterface,
    PlanSourceInterface,
    ProtocolSourceInterface,
    StateStoreInterface,
)
from porch.domain.models import (
    CheckOverride,
    CheckResult,
    CheckSpec,
    GateState,
    GateStatus,
    PendingGate,
    ProjectState,
    Protocol,
    ProtocolPhase,
)
from porch.domain.plan import (
    advance_plan_phase,
    current_plan_phase_id,
    get_current_plan_phase,
    start_plan_phases,
)
from porch.domain.state import (
    ProjectIndex,
    check_env,
    create_initial_state,
    get_status_path,
    utc_now,
)

logger = logging.getLogger(__name__)

# Plan prose shown by `status` is cut to this many characters
PLAN_EXCERPT_CHARS = 500

# Document reviewed at each gated authoring phase
ARTIFACT_DIRS = {
    "specify": "codev/specs",
    "plan": "codev/plans",
    "review": "codev/reviews",
}


@dataclass(frozen=True)
class ProjectContext:
    """A resolved project: where its state lives, the state and its protocol."""

    status_path: str
    state: ProjectState
    protocol: Protocol
    phase: ProtocolPhase

    @property
    def gate(self) -> str | None:
        return self.phase.gate

    def gate_status(self) -> GateStatus:
        if self.phase.gate is None:
            return GateStatus()
        return self.state.gates.get(self.phase.gate) or GateStatus()

    @property
    def waiting_for_approval(self) -> bool:
        return self.phase.gate is not None and self.gate_status().is_waiting


class Orchestrator:
    """
    Runs porch commands against one project root.

    Each command returns a CommandReport; orchestration failures raise
    PorchError subclasses. Failed checks are reported, not raised.
    """

    def __init__(
        self,
        root: str | Path,
        store: StateStoreInterface,
        check_runner: CheckRunnerInterface,
        protocols: ProtocolSourceInterface,
        plans: PlanSourceInterface,
        check_overrides: Mapping[str, CheckOverride] | None = None,
    ):
        """
        Args:
            root: Project root directory
            store: Project state persistence
            check_runner: Executes phase checks
            protocols: Protocol definitions by name
            plans: Plan documents by project
            check_overrides: Per-check overrides from configuration
        """
        self.root = Path(root)
        self._store = store
        self._check_runner = check_runner
        self._protocols = protocols
        self._plans = plans
        self._check_overrides = dict(check_overrides or {})

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def status(self, project_id: str) -> CommandReport:
        """Current position and the single next step."""
        ctx = self._resolve(project_id)
        state, phase = ctx.state, ctx.phase

        sections = [
            ReportSection(
                None,
                (
                    f"PROTOCOL: {state.protocol}",
                    f"PHASE: {phase.id} ({phase.name})",
                ),
            )
        ]

        current = get_current_plan_phase(state.plan_phases) if phase.is_phased else None
        if current is not None:
            sections.append(
                ReportSection(
                    "CURRENT PLAN PHASE",
                    (f"{current.id} - {current.title}", f"STATUS: {current.status.value}"),
                )
            )
            content = self._plans.phase_content(state.id, state.title, current.id)
            if content:
                excerpt = content[:PLAN_EXCERPT_CHARS]
                sections.append(ReportSection("FROM THE PLAN", tuple(excerpt.splitlines())))

        checks = self._phase_checks(ctx)
        if checks:
            sections.append(
                ReportSection(
                    "CRITERIA", tuple(f"○ {name} (not yet run)" for name in checks)
                )
            )

        if ctx.waiting_for_approval:
            sections.append(
                ReportSection(
                    "STATUS",
                    (
                        "WAITING FOR HUMAN APPROVAL",
                        "",
                        f"Gate: {ctx.gate}",
                        "Do not proceed until gate is approved.",
                    ),
                    Tone.WARNING,
                )
            )
            sections.append(
                ReportSection(
                    "NEXT ACTION", ("Wait for human to approve the gate.",), Tone.WARNING
                )
            )
            return CommandReport(
                title=f"PROJECT: {state.id} - {state.title}",
                sections=tuple(sections),
                next_command=f"porch approve {state.id} {ctx.gate}",
                next_label="To approve",
            )

        instructions, next_action, next_command = self._guidance(ctx, bool(checks))
        sections.append(ReportSection("INSTRUCTIONS", instructions))
        sections.append(ReportSection("NEXT ACTION", (next_action,)))
        return CommandReport(
            title=f"PROJECT: {state.id} - {state.title}",
            sections=tuple(sections),
            next_command=next_command,
        )

    def check(self, project_id: str) -> CommandReport:
        """Run the current phase's checks. Never writes."""
        ctx = self._resolve(project_id)
        state = ctx.state

        checks = self._phase_checks(ctx)
        if not checks:
            return CommandReport(
                title="No checks defined for this phase.",
                next_command=f"porch done {state.id}",
                tone=Tone.MUTED,
            )

        results = self._run_checks(ctx, checks)
        if all(r.passed for r in results):
            return CommandReport(
                title="RESULT: ALL CHECKS PASSED",
                check_results=results,
                next_command=f"porch done {state.id}",
                next_label="Run (to advance)",
                tone=Tone.SUCCESS,
            )
        return CommandReport(
            title="RESULT: CHECKS FAILED",
            sections=(ReportSection(None, ("Fix the failures and run the checks again.",)),),
            check_results=results,
            next_command=f"porch check {state.id}",
            exit_code=1,
            tone=Tone.DANGER,
        )

    def done(self, project_id: str) -> CommandReport:
        """
        Complete the current step and advance.

        Order: checks, gate, plan-phase sub-machine, phase transition.

        Raises:
            GateBlocked: If the phase's gate is not approved
            PlanNotFound: If entering a phased phase without a plan document
            ConcurrentModification: If the state changed since it was read
        """
        ctx = self._resolve(project_id)
        state, phase = ctx.state, ctx.phase
        expected_updated_at = state.updated_at

        results: tuple[CheckResult, ...] = ()
        checks = self._phase_checks(ctx)
        if checks:
            results = self._run_checks(ctx, checks)
            if not all(r.passed for r in results):
                logger.info("Project %s: checks failed, staying in %s", state.id, phase.id)
                return CommandReport(
                    title="CHECKS FAILED. Cannot advance.",
                    sections=(ReportSection(None, ("Fix the failures and try again.",)),),
                    check_results=results,
                    next_command=f"porch check {state.id}",
                    exit_code=1,
                    tone=Tone.DANGER,
                )

        if ctx.gate and not ctx.gate_status().is_approved:
            raise GateBlocked(ctx.gate, state.id)

        completed: list[ReportSection] = []
        if phase.is_phased:
            if not state.plan_phases:
                return self._load_plan_phases(ctx, results, expected_updated_at)

            current = get_current_plan_phase(state.plan_phases)
            if current is not None:
                state.plan_phases = advance_plan_phase(state.plan_phases, current.id)
                state.current_plan_phase = current_plan_phase_id(state.plan_phases)
                logger.info("Project %s: plan phase %s complete", state.id, current.id)
                completed.append(
                    ReportSection(
                        None,
                        (f"PHASE COMPLETE: {current.id} - {current.title}",),
                        Tone.SUCCESS,
                    )
                )

                upcoming = get_current_plan_phase(state.plan_phases)
                if upcoming is not None:
                    self._store.write(ctx.status_path, state, expected_updated_at)
                    return CommandReport(
                        title=f"PHASE COMPLETE: {current.id} - {current.title}",
                        sections=(
                            ReportSection(
                                None,
                                (f"NEXT PHASE: {upcoming.id} - {upcoming.title}",),
                            ),
                        ),
                        check_results=results,
                        next_command=f"porch status {state.id}",
                        tone=Tone.SUCCESS,
                    )

        return self._transition(ctx, results, completed, expected_updated_at)

    def gate(self, project_id: str) -> CommandReport:
        """Request human approval for the current phase's gate."""
        ctx = self._resolve(project_id)
        state = ctx.state

        if ctx.gate is None:
            return CommandReport(
                title="No gate required for this phase.",
                next_command=f"porch done {state.id}",
                tone=Tone.MUTED,
            )

        gate_status = ctx.gate_status()
        if gate_status.is_approved:
            return CommandReport(
                title=f"Gate {ctx.gate} is already approved.",
                next_command=f"porch done {state.id}",
                next_label="Run (to advance)",
                tone=Tone.WARNING,
            )

        if gate_status.requested_at is None:
            state.gates[ctx.gate] = replace(gate_status, requested_at=utc_now())
            self._store.write(ctx.status_path, state, state.updated_at)
            logger.info("Project %s: gate %s requested", state.id, ctx.gate)

        sections: list[ReportSection] = []
        artifact = artifact_path(state)
        if artifact:
            sections.append(ReportSection(None, (f"Artifact: {artifact}",)))
        sections.append(
            ReportSection(
                None,
                (
                    "Human approval required. STOP and wait.",
                    "Do not proceed until gate is approved.",
                ),
                Tone.WARNING,
            )
        )
        sections.append(ReportSection("STATUS", ("WAITING FOR HUMAN APPROVAL",), Tone.WARNING))
        return CommandReport(
            title=f"GATE: {ctx.gate}",
            sections=tuple(sections),
            next_command=f"porch approve {state.id} {ctx.gate}",
            next_label="To approve",
        )

    def approve(self, project_id: str, gate_name: str) -> CommandReport:
        """
        Record a human approval.

        Raises:
            GateNotFound: If the project has no such gate
        """
        ctx = self._resolve(project_id)
        state = ctx.state

        gate_status = state.gates.get(gate_name)
        if gate_status is None:
            raise GateNotFound(gate_name, list(state.gates))

        if gate_status.is_approved:
            return CommandReport(
                title=f"Gate {gate_name} is already approved.",
                sections=(ReportSection(None, (f"Approved at: {gate_status.approved_at}",)),),
                next_command=f"porch done {state.id}",
                next_label="Run (to advance)",
                tone=Tone.WARNING,
            )

        state.gates[gate_name] = replace(
            gate_status, status=GateState.APPROVED, approved_at=utc_now()
        )
        self._store.write(ctx.status_path, state, state.updated_at)
        logger.info("Project %s: gate %s approved", state.id, gate_name)
        return CommandReport(
            title=f"Gate {gate_name} approved.",
            next_command=f"porch done {state.id}",
            next_label="Run (to advance)",
            tone=Tone.SUCCESS,
        )

    def init(self, protocol_name: str, project_id: str, title: str) -> CommandReport:
        """
        Create a new project at the protocol's first phase.

        Raises:
            ProtocolNotFound: If the protocol does not exist
            ProjectAlreadyExists: If the project already has a state record
        """
        protocol = self._protocols.load(protocol_name)
        status_path = str(get_status_path(self.root, project_id, title))
        if self._store.exists(status_path):
            raise ProjectAlreadyExists(f"{project_id}-{title}", status_path)

        state = create_initial_state(protocol, project_id, title)
        self._store.write(status_path, state)
        logger.info(
            "Project %s-%s initialized with protocol %s", project_id, title, protocol.name
        )
        return CommandReport(
            title=f"Project initialized: {project_id}-{title}",
            sections=(
                ReportSection(
                    None,
                    (f"Protocol: {protocol.name}", f"Initial phase: {state.phase}"),
                ),
            ),
            next_command=f"porch status {project_id}",
            tone=Tone.SUCCESS,
        )

    def pending(self) -> CommandReport:
        """List every gate that has been requested and awaits approval."""
        waiting = self.pending_gates()
        if not waiting:
            return CommandReport(title="No gates awaiting approval.", tone=Tone.MUTED)

        lines = tuple(
            f"{g.project_id}  {g.gate}  (requested {g.requested_at})" for g in waiting
        )
        return CommandReport(
            title=f"GATES AWAITING APPROVAL: {len(waiting)}",
            sections=(ReportSection(None, lines, Tone.WARNING),),
            next_command="porch approve <id> <gate>",
            next_label="To approve",
        )

    def pending_gates(self) -> list[PendingGate]:
        index = ProjectIndex(self._store.list_projects(str(self.root)))
        waiting = []
        for ref in index.projects():
            state = self._store.read(ref.status_path)
            for name, gate_status in state.gates.items():
                if gate_status.is_waiting:
                    waiting.append(
                        PendingGate(
                            project_id=state.id,
                            gate=name,
                            requested_at=gate_status.requested_at,
                            status_path=ref.status_path,
                        )
                    )
        return waiting

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _resolve(self, project_id: str) -> ProjectContext:
        """
        Locate, read and validate a project's state against its protocol.

        Raises:
            ProjectNotFound / AmbiguousProject: If the id does not pick one project
            StateValidationError: If the state's phase is not in the protocol
        """
        index = ProjectIndex(self._store.list_projects(str(self.root)))
        status_path = index.resolve(project_id)
        state = self._store.read(status_path)
        protocol = self._protocols.load(state.protocol)

        phase = protocol.get_phase(state.phase)
        if phase is None:
            raise StateValidationError(
                f"Invalid state {status_path}: unknown phase '{state.phase}'\n"
                f"Valid phases: {', '.join(protocol.phase_ids)}"
            )
        return ProjectContext(status_path, state, protocol, phase)

    def _phase_checks(self, ctx: ProjectContext) -> dict[str, CheckSpec]:
        unknown = [name for name in self._check_overrides if name not in ctx.protocol.checks]
        for name in unknown:
            logger.warning("Check override '%s' matches no check in the protocol", name)
        return ctx.protocol.get_phase_checks(ctx.phase.id, self._check_overrides)

    def _run_checks(
        self, ctx: ProjectContext, checks: Mapping[str, CheckSpec]
    ) -> tuple[CheckResult, ...]:
        env = check_env(ctx.state.id, ctx.state.title)
        return tuple(self._check_runner.run_phase_checks(checks, str(self.root), env))

    def _load_plan_phases(
        self,
        ctx: ProjectContext,
        results: tuple[CheckResult, ...],
        expected_updated_at: str,
    ) -> CommandReport:
        """Start the sub-machine of a phased phase entered without plan phases."""
        state = ctx.state
        state.plan_phases = start_plan_phases(self._plans.load_phases(state.id, state.title))
        state.current_plan_phase = current_plan_phase_id(state.plan_phases)
        self._store.write(ctx.status_path, state, expected_updated_at)
        logger.info(
            "Project %s: loaded %d plan phase(s)", state.id, len(state.plan_phases)
        )
        return CommandReport(
            title=f"PLAN PHASES LOADED: {len(state.plan_phases)}",
            sections=(
                ReportSection(
                    None, tuple(f"{p.id} - {p.title}" for p in state.plan_phases)
                ),
            ),
            check_results=results,
            next_command=f"porch status {state.id}",
            tone=Tone.SUCCESS,
        )

    def _transition(
        self,
        ctx: ProjectContext,
        results: tuple[CheckResult, ...],
        completed: list[ReportSection],
        expected_updated_at: str,
    ) -> CommandReport:
        """Move to the next protocol phase, or finish the protocol."""
        state, protocol = ctx.state, ctx.protocol
        next_phase = protocol.get_next_phase(ctx.phase.id)

        if next_phase is None:
            if completed:
                # Persist the plan phase that was just completed
                self._store.write(ctx.status_path, state, expected_updated_at)
            logger.info("Project %s: protocol %s complete", state.id, state.protocol)
            return CommandReport(
                title="PROTOCOL COMPLETE",
                sections=(
                    *completed,
                    ReportSection(
                        None,
                        (
                            f"Project {state.id} has completed the "
                            f"{state.protocol} protocol.",
                        ),
                    ),
                ),
                check_results=results,
                tone=Tone.SUCCESS,
            )

        if next_phase.is_phased:
            phases = self._plans.load_phases(state.id, state.title)
            state.plan_phases = start_plan_phases(phases)
            state.current_plan_phase = current_plan_phase_id(state.plan_phases)

        previous = state.phase
        state.phase = next_phase.id
        self._store.write(ctx.status_path, state, expected_updated_at)
        logger.info("Project %s: %s -> %s", state.id, previous, next_phase.id)
        return CommandReport(
            title=f"ADVANCING TO: {next_phase.id} - {next_phase.name}",
            sections=tuple(completed),
            check_results=results,
            next_command=f"porch status {state.id}",
            tone=Tone.SUCCESS,
        )

    def _guidance(
        self, ctx: ProjectContext, has_checks: bool
    ) -> tuple[tuple[str, ...], str, str]:
        """Instructions, next action and next command for a phase in progress."""
        state, phase = ctx.state, ctx.phase

        if phase.is_phased:
            current = get_current_plan_phase(state.plan_phases)
            if not state.plan_phases:
                return (
                    (
                        f"You are in the {phase.name} phase.",
                        "",
                        "Plan phases have not been loaded yet.",
                    ),
                    "Load the plan phases from the plan document.",
                    f"porch done {state.id}",
                )
            if current is not None:
                next_command = (
                    f"porch check {state.id}" if has_checks else f"porch done {state.id}"
                )
                return (
                    (
                        f'You are implementing {current.id}: "{current.title}".',
                        "",
                        f"Complete the work, then run: {next_command}",
                    ),
                    f"Implement {current.title} as specified in the plan.",
                    next_command,
                )

        if ctx.gate and not ctx.gate_status().is_approved:
            next_command = f"porch gate {state.id}"
        elif has_checks:
            next_command = f"porch check {state.id}"
        else:
            next_command = f"porch done {state.id}"
        return (
            (
                f"You are in the {phase.name} phase.",
                "",
                f"When complete, run: {next_command}",
            ),
            "Complete the phase work, then run the next command.",
            next_command,
        )


def artifact_path(state: ProjectState) -> str | None:
    """Document a human reviews at the gate of an authoring phase."""
    directory = ARTIFACT_DIRS.get(state.phase)
    if directory is None:
        return None
    return f"{directory}/{state.slug}.md"
