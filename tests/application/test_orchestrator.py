"""Tests for the Orchestrator Engine commands."""

import pytest

from porch.application.orchestrator import Orchestrator, artifact_path
from porch.application.report import Tone
from porch.domain.exceptions import (
    AmbiguousProject,
    ConcurrentModification,
    GateBlocked,
    GateNotFound,
    PlanNotFound,
    ProjectAlreadyExists,
    ProjectNotFound,
    ProtocolNotFound,
    StateValidationError,
)
from porch.domain.models import (
    CheckOverride,
    GateState,
    PlanPhaseStatus,
    ProjectState,
)
from porch.domain.state import get_status_path
from porch.infrastructure.plan_files import FilesystemPlanSource
from porch.infrastructure.protocols import FilesystemProtocolSource

PID = "0074"
TITLE = "test-feature"


@pytest.fixture
def status_path(project_root) -> str:  # noqa: ANN001
    return str(get_status_path(project_root, PID, TITLE))


def _state(store, status_path) -> ProjectState:  # noqa: ANN001
    return store.read(status_path)


def _approve_spec(orchestrator: Orchestrator) -> None:
    orchestrator.approve(PID, "spec_approval")


@pytest.fixture
def started(orchestrator, write_plan) -> Orchestrator:  # noqa: ANN001
    """A project initialized on the simple protocol with a plan written."""
    orchestrator.init("simple", PID, TITLE)
    write_plan(PID, TITLE)
    return orchestrator


@pytest.fixture
def implementing(started) -> Orchestrator:  # noqa: ANN001
    """A project advanced into the phased implement phase."""
    _approve_spec(started)
    started.done(PID)
    return started


class TestInit:
    """Tests for creating a project."""

    def test_starts_at_first_phase(self, orchestrator, store, status_path) -> None:  # noqa: ANN001
        report = orchestrator.init("simple", PID, TITLE)

        state = _state(store, status_path)
        assert state.phase == "specify"
        assert {g: s.status for g, s in state.gates.items()} == {
            "spec_approval": GateState.PENDING,
            "review_approval": GateState.PENDING,
        }
        assert report.title == f"Project initialized: {PID}-{TITLE}"
        assert report.next_command == f"porch status {PID}"

    def test_bundled_spider(self, orchestrator, store, project_root) -> None:  # noqa: ANN001
        orchestrator.init("spider", PID, TITLE)

        state = store.read(str(get_status_path(project_root, PID, TITLE)))
        assert state.phase == "specify"
        assert set(state.gates) == {"spec_approval", "plan_approval", "review_approval"}
        assert all(g.status is GateState.PENDING for g in state.gates.values())

    def test_existing_project_rejected(self, orchestrator, store, status_path) -> None:  # noqa: ANN001
        orchestrator.init("simple", PID, TITLE)
        before = _state(store, status_path)

        with pytest.raises(ProjectAlreadyExists):
            orchestrator.init("simple", PID, TITLE)

        assert _state(store, status_path) == before

    def test_unknown_protocol_checked_first(self, orchestrator, store, project_root) -> None:  # noqa: ANN001
        with pytest.raises(ProtocolNotFound):
            orchestrator.init("nonexistent", PID, TITLE)

        assert store.list_projects(str(project_root)) == []


class TestResolve:
    """Tests for project lookup shared by every command."""

    def test_unknown_project(self, orchestrator) -> None:  # noqa: ANN001
        with pytest.raises(ProjectNotFound) as exc_info:
            orchestrator.status("9999")

        assert "porch init" in exc_info.value.hint

    def test_ambiguous_project(self, orchestrator) -> None:  # noqa: ANN001
        orchestrator.init("simple", PID, "first")
        orchestrator.init("simple", PID, "second")

        with pytest.raises(AmbiguousProject):
            orchestrator.status(PID)

    def test_phase_not_in_protocol(self, orchestrator, store, status_path) -> None:  # noqa: ANN001
        orchestrator.init("simple", PID, TITLE)
        state = _state(store, status_path)
        state.phase = "deploy"
        store.write(status_path, state)

        for command in (orchestrator.status, orchestrator.check, orchestrator.done):
            with pytest.raises(StateValidationError, match="Valid phases: specify"):
                command(PID)


class TestStatus:
    """Tests for the status report."""

    def test_initial_status(self, started) -> None:  # noqa: ANN001
        report = started.status(PID)

        assert report.title == f"PROJECT: {PID} - {TITLE}"
        assert "PHASE: specify (Specification)" in report.text()
        assert report.section("INSTRUCTIONS") is not None
        # Gate not yet requested: the next step is to request it
        assert report.next_command == f"porch gate {PID}"

    def test_waiting_for_approval(self, started) -> None:  # noqa: ANN001
        started.gate(PID)

        report = started.status(PID)

        status = report.section("STATUS")
        assert status is not None
        assert "WAITING FOR HUMAN APPROVAL" in status.lines
        assert status.tone is Tone.WARNING
        assert report.section("INSTRUCTIONS") is None
        assert report.next_command == f"porch approve {PID} spec_approval"

    def test_phased_shows_current_plan_phase(self, implementing) -> None:  # noqa: ANN001
        report = implementing.status(PID)

        current = report.section("CURRENT PLAN PHASE")
        assert current.lines == ("phase_1 - Core types", "STATUS: in_progress")
        assert report.section("FROM THE PLAN").lines == ("Define the data model.",)
        assert report.section("CRITERIA").lines == (
            "○ build (not yet run)",
            "○ test (not yet run)",
        )
        assert report.next_command == f"porch check {PID}"

    def test_plan_excerpt_truncated(self, implementing, write_plan) -> None:  # noqa: ANN001
        write_plan(PID, TITLE, "## Phases\n### Phase 1: Core types\n" + "x" * 2000 + "\n")

        report = implementing.status(PID)

        excerpt = "".join(report.section("FROM THE PLAN").lines)
        assert len(excerpt) == 500

    def test_status_never_writes(self, started, store, status_path) -> None:  # noqa: ANN001
        before = _state(store, status_path)

        started.status(PID)

        assert _state(store, status_path) == before


class TestCheck:
    """Tests for running checks without advancing."""

    def test_no_checks(self, started, check_runner) -> None:  # noqa: ANN001
        report = started.check(PID)

        assert report.title == "No checks defined for this phase."
        assert report.exit_code == 0
        assert check_runner.calls == []

    def test_passing_checks(self, implementing, check_runner, project_root) -> None:  # noqa: ANN001
        report = implementing.check(PID)

        assert report.ok
        assert [r.name for r in report.check_results] == ["build", "test"]
        checks, cwd, env = check_runner.calls[-1]
        assert list(checks) == ["build", "test"]
        assert cwd == str(project_root)
        assert env == {"PROJECT_ID": PID, "PROJECT_TITLE": TITLE}

    def test_failing_checks_exit_one(self, implementing, check_runner) -> None:  # noqa: ANN001
        check_runner.failing = {"build"}

        report = implementing.check(PID)

        assert report.exit_code == 1
        assert report.title == "RESULT: CHECKS FAILED"
        assert report.next_command == f"porch check {PID}"

    def test_check_never_writes(self, implementing, store, status_path) -> None:  # noqa: ANN001
        before = _state(store, status_path)

        implementing.check(PID)

        assert _state(store, status_path) == before

    def test_overrides_applied(self, project_root, store, check_runner, write_plan) -> None:  # noqa: ANN001
        orchestrator = Orchestrator(
            project_root,
            store=store,
            check_runner=check_runner,
            protocols=FilesystemProtocolSource(project_root),
            plans=FilesystemPlanSource(project_root),
            check_overrides={
                "build": CheckOverride(skip=True),
                "test": CheckOverride(command="pytest -q"),
            },
        )
        orchestrator.init("simple", PID, TITLE)
        write_plan(PID, TITLE)
        orchestrator.approve(PID, "spec_approval")
        orchestrator.done(PID)

        orchestrator.check(PID)

        checks, _, _ = check_runner.calls[-1]
        assert list(checks) == ["test"]
        assert checks["test"].command == "pytest -q"


class TestDone:
    """Tests for advancing the state machine."""

    def test_gate_blocks_advance(self, started, store, status_path) -> None:  # noqa: ANN001
        before = _state(store, status_path)

        with pytest.raises(GateBlocked) as exc_info:
            started.done(PID)

        assert exc_info.value.gate == "spec_approval"
        assert exc_info.value.hint == f"porch gate {PID}"
        assert _state(store, status_path) == before

    def test_requested_but_unapproved_gate_blocks(self, started) -> None:  # noqa: ANN001
        started.gate(PID)

        with pytest.raises(GateBlocked):
            started.done(PID)

    def test_approved_gate_advances_into_phased_phase(
        self, started, store, status_path  # noqa: ANN001
    ) -> None:
        _approve_spec(started)

        report = started.done(PID)

        state = _state(store, status_path)
        assert state.phase == "implement"
        assert [p.status for p in state.plan_phases] == [
            PlanPhaseStatus.IN_PROGRESS,
            PlanPhaseStatus.PENDING,
        ]
        assert state.current_plan_phase == "phase_1"
        assert report.title == "ADVANCING TO: implement - Implementation"

    def test_missing_plan_fails_before_write(
        self, orchestrator, store, status_path  # noqa: ANN001
    ) -> None:
        orchestrator.init("simple", PID, TITLE)
        _approve_spec(orchestrator)
        before = _state(store, status_path)

        with pytest.raises(PlanNotFound):
            orchestrator.done(PID)

        assert _state(store, status_path) == before

    def test_failed_check_never_changes_phase(
        self, implementing, check_runner, store, status_path  # noqa: ANN001
    ) -> None:
        check_runner.failing = {"test"}
        before = _state(store, status_path)

        report = implementing.done(PID)

        assert report.exit_code == 1
        assert report.title == "CHECKS FAILED. Cannot advance."
        assert [r.passed for r in report.check_results] == [True, False]
        assert _state(store, status_path) == before

    def test_advances_plan_phase(self, implementing, store, status_path) -> None:  # noqa: ANN001
        report = implementing.done(PID)

        state = _state(store, status_path)
        assert state.phase == "implement"
        assert [p.status for p in state.plan_phases] == [
            PlanPhaseStatus.COMPLETE,
            PlanPhaseStatus.IN_PROGRESS,
        ]
        assert state.current_plan_phase == "phase_2"
        assert report.title == "PHASE COMPLETE: phase_1 - Core types"
        assert "NEXT PHASE: phase_2 - State mgmt" in report.text()

    def test_last_plan_phase_falls_through_to_transition(
        self, implementing, store, status_path  # noqa: ANN001
    ) -> None:
        implementing.done(PID)

        report = implementing.done(PID)

        state = _state(store, status_path)
        assert state.phase == "review"
        assert all(p.status is PlanPhaseStatus.COMPLETE for p in state.plan_phases)
        assert state.current_plan_phase is None
        assert report.title == "ADVANCING TO: review - Review"
        assert "PHASE COMPLETE: phase_2 - State mgmt" in report.text()

    def test_protocol_complete(self, implementing, store, status_path) -> None:  # noqa: ANN001
        implementing.done(PID)
        implementing.done(PID)
        implementing.approve(PID, "review_approval")
        before = _state(store, status_path)

        report = implementing.done(PID)

        assert report.title == "PROTOCOL COMPLETE"
        assert report.ok
        assert _state(store, status_path) == before

    def test_phased_first_phase_loads_plan(
        self, project_root, store, check_runner, write_plan  # noqa: ANN001
    ) -> None:
        """A project created directly in a phased phase loads its plan on done."""
        (project_root / "codev/protocols/build.json").write_text(
            '{"name": "build", "phases": [{"id": "implement", "type": "phased"}]}'
        )
        orchestrator = Orchestrator(
            project_root,
            store=store,
            check_runner=check_runner,
            protocols=FilesystemProtocolSource(project_root),
            plans=FilesystemPlanSource(project_root),
        )
        orchestrator.init("build", PID, TITLE)
        write_plan(PID, TITLE)
        assert "Plan phases have not been loaded yet." in orchestrator.status(PID).text()

        report = orchestrator.done(PID)

        state = store.read(str(get_status_path(project_root, PID, TITLE)))
        assert report.title == "PLAN PHASES LOADED: 2"
        assert state.phase == "implement"
        assert state.current_plan_phase == "phase_1"
        assert state.plan_phases[0].status is PlanPhaseStatus.IN_PROGRESS

    def test_concurrent_write_rejected(
        self, implementing, store, status_path, check_runner  # noqa: ANN001
    ) -> None:
        """A write by another invocation during checks is not overwritten."""
        original = check_runner.run_phase_checks

        def racing(checks, cwd, env):  # noqa: ANN001, ANN202
            other = store.read(status_path)
            store.write(status_path, other)
            return original(checks, cwd, env)

        check_runner.run_phase_checks = racing

        with pytest.raises(ConcurrentModification):
            implementing.done(PID)


class TestGate:
    """Tests for requesting approval."""

    def test_no_gate(self, implementing, store, status_path) -> None:  # noqa: ANN001
        before = _state(store, status_path)

        report = implementing.gate(PID)

        assert report.title == "No gate required for this phase."
        assert report.next_command == f"porch done {PID}"
        assert _state(store, status_path) == before

    def test_request_stamps_once(self, started, store, status_path) -> None:  # noqa: ANN001
        report = started.gate(PID)
        first = _state(store, status_path).gates["spec_approval"].requested_at

        started.gate(PID)
        second = _state(store, status_path).gates["spec_approval"]

        assert first is not None
        assert second.requested_at == first
        assert second.status is GateState.PENDING
        assert report.title == "GATE: spec_approval"
        assert report.next_command == f"porch approve {PID} spec_approval"
        assert "Artifact: codev/specs/0074-test-feature.md" in report.text()

    def test_already_approved(self, started) -> None:  # noqa: ANN001
        _approve_spec(started)

        report = started.gate(PID)

        assert report.title == "Gate spec_approval is already approved."


class TestApprove:
    """Tests for human approval."""

    def test_approve(self, started, store, status_path) -> None:  # noqa: ANN001
        report = started.approve(PID, "spec_approval")

        gate = _state(store, status_path).gates["spec_approval"]
        assert gate.status is GateState.APPROVED
        assert gate.approved_at is not None
        assert report.title == "Gate spec_approval approved."

    def test_second_approve_is_noop(self, started, store, status_path) -> None:  # noqa: ANN001
        started.approve(PID, "spec_approval")
        before = _state(store, status_path)

        report = started.approve(PID, "spec_approval")

        assert _state(store, status_path) == before
        assert report.title == "Gate spec_approval is already approved."
        assert f"Approved at: {before.gates['spec_approval'].approved_at}" in report.text()

    def test_unknown_gate(self, started) -> None:  # noqa: ANN001
        with pytest.raises(GateNotFound) as exc_info:
            started.approve(PID, "deploy_approval")

        assert exc_info.value.known_gates == ("spec_approval", "review_approval")
        assert "Known gates: spec_approval, review_approval" in exc_info.value.message

    def test_approving_future_gate_allowed(self, started, store, status_path) -> None:  # noqa: ANN001
        started.approve(PID, "review_approval")

        assert _state(store, status_path).gates["review_approval"].is_approved


class TestPending:
    """Tests for listing gates awaiting approval."""

    def test_none_pending(self, started) -> None:  # noqa: ANN001
        report = started.pending()

        assert report.title == "No gates awaiting approval."
        assert started.pending_gates() == []

    def test_lists_requested_gates(self, started) -> None:  # noqa: ANN001
        started.init("simple", "0075", "other")
        started.gate(PID)

        waiting = started.pending_gates()

        assert [(g.project_id, g.gate) for g in waiting] == [(PID, "spec_approval")]
        assert waiting[0].requested_at is not None
        assert started.pending().title == "GATES AWAITING APPROVAL: 1"

    def test_approved_gate_not_listed(self, started) -> None:  # noqa: ANN001
        started.gate(PID)
        _approve_spec(started)

        assert started.pending_gates() == []


class TestArtifactPath:
    @pytest.mark.parametrize(
        ("phase", "expected"),
        [
            ("specify", "codev/specs/0074-test-feature.md"),
            ("plan", "codev/plans/0074-test-feature.md"),
            ("review", "codev/reviews/0074-test-feature.md"),
            ("implement", None),
        ],
    )
    def test_artifact_for_phase(self, phase: str, expected: str | None) -> None:
        state = ProjectState(id=PID, title=TITLE, protocol="spider", phase=phase)

        assert artifact_path(state) == expected
