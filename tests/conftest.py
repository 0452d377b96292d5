"""Shared pytest fixtures for porch tests."""

import json
from collections.abc import Mapping

import pytest

from porch.application.orchestrator import Orchestrator
from porch.domain.interfaces import CheckRunnerInterface
from porch.domain.models import CheckResult, CheckSpec, Protocol
from porch.domain.protocol import normalize_protocol
from porch.infrastructure.persistence.memory import InMemoryStateStore
from porch.infrastructure.plan_files import FilesystemPlanSource
from porch.infrastructure.protocols import FilesystemProtocolSource

# Three-phase protocol: gated spec, phased implementation with checks, gated
# terminal review.
SIMPLE_PROTOCOL = {
    "name": "simple",
    "version": "1.0.0",
    "phases": [
        {
            "id": "specify",
            "name": "Specification",
            "type": "once",
            "gate": {"name": "spec_approval", "next": "implement"},
        },
        {
            "id": "implement",
            "name": "Implementation",
            "type": "phased",
            "checks": {"build": "echo build", "test": {"command": "echo test"}},
            "transition": {"on_complete": "review"},
        },
        {
            "id": "review",
            "name": "Review",
            "type": "once",
            "gate": {"name": "review_approval", "next": None},
        },
    ],
}

TWO_PHASE_PLAN = """# Plan

## Phases

### Phase 1: Core types

Define the data model.

### Phase 2: State mgmt

Persist state to disk.

## Risks

None.
"""


class RecordingCheckRunner(CheckRunnerInterface):
    """Check runner that records calls and fails the named checks."""

    def __init__(self, failing: tuple[str, ...] = ()):
        self.failing = set(failing)
        self.calls: list[tuple[dict[str, CheckSpec], str, dict[str, str]]] = []

    def run_phase_checks(
        self,
        checks: Mapping[str, CheckSpec],
        cwd: str,
        env: Mapping[str, str],
    ) -> list[CheckResult]:
        self.calls.append((dict(checks), cwd, dict(env)))
        results = []
        for name, spec in checks.items():
            passed = name not in self.failing
            results.append(
                CheckResult(
                    name=name,
                    command=spec.command,
                    passed=passed,
                    error="" if passed else f"{name} failed",
                )
            )
            if not passed:
                break
        return results


@pytest.fixture
def simple_protocol() -> Protocol:
    """The SIMPLE_PROTOCOL document, normalized."""
    return normalize_protocol(SIMPLE_PROTOCOL)


@pytest.fixture
def project_root(tmp_path):  # noqa: ANN001
    """A project root with the simple protocol installed."""
    protocols_dir = tmp_path / "codev" / "protocols"
    protocols_dir.mkdir(parents=True)
    (protocols_dir / "simple.json").write_text(json.dumps(SIMPLE_PROTOCOL))
    return tmp_path


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def check_runner() -> RecordingCheckRunner:
    return RecordingCheckRunner()


@pytest.fixture
def orchestrator(project_root, store, check_runner) -> Orchestrator:  # noqa: ANN001
    """Orchestrator over an in-memory store and a recording check runner."""
    return Orchestrator(
        project_root,
        store=store,
        check_runner=check_runner,
        protocols=FilesystemProtocolSource(project_root),
        plans=FilesystemPlanSource(project_root),
    )


def _write_plan(root, project_id: str, title: str, text: str = TWO_PHASE_PLAN):  # noqa: ANN001
    """Write a plan document next to a project's state record."""
    plan_dir = root / "codev" / "projects" / f"{project_id}-{title}"
    plan_dir.mkdir(parents=True, exist_ok=True)
    plan_path = plan_dir / "plan.md"
    plan_path.write_text(text)
    return plan_path


@pytest.fixture
def write_plan(project_root):  # noqa: ANN001
    """Write a plan document for a project under project_root."""

    def write(project_id: str, title: str, text: str = TWO_PHASE_PLAN):  # noqa: ANN202
        return _write_plan(project_root, project_id, title, text)

    return write
