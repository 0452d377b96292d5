"""
porch: protocol orchestrator for structured, multi-phase development work.

A project moves through the phases of a protocol (specify, plan, implement,
review, ...). Phases may require checks to pass or a human to approve a gate
before the project advances; phased phases step through the implementation
phases of a plan document first.

Example:
    from porch import Orchestrator
    from porch.infrastructure import (
        FilesystemPlanSource,
        FilesystemProtocolSource,
        FilesystemStateStore,
        SubprocessCheckRunner,
    )

    orchestrator = Orchestrator(
        root,
        store=FilesystemStateStore(),
        check_runner=SubprocessCheckRunner(),
        protocols=FilesystemProtocolSource(root),
        plans=FilesystemPlanSource(root),
    )
    orchestrator.init("spider", "0074", "test-feature")
    print(orchestrator.status("0074").text())
"""

# Application layer (orchestration)
from porch.application.orchestrator import Orchestrator
from porch.application.report import CommandReport, ReportSection, Tone

# Domain exceptions
from porch.domain.exceptions import (
    GateBlocked,
    NotFoundError,
    ParseError,
    PorchError,
    ValidationError,
)

# Domain interfaces (for type hints and custom implementations)
from porch.domain.interfaces import (
    CheckRunnerInterface,
    PlanSourceInterface,
    ProtocolSourceInterface,
    StateStoreInterface,
)
from porch.domain.models import (
    CheckResult,
    GateStatus,
    PlanPhase,
    ProjectState,
    Protocol,
    ProtocolPhase,
)

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Domain models
    "CheckResult",
    "GateStatus",
    "PlanPhase",
    "ProjectState",
    "Protocol",
    "ProtocolPhase",
    # Domain interfaces
    "CheckRunnerInterface",
    "PlanSourceInterface",
    "ProtocolSourceInterface",
    "StateStoreInterface",
    # Exceptions
    "PorchError",
    "NotFoundError",
    "ParseError",
    "ValidationError",
    "GateBlocked",
    # Application
    "Orchestrator",
    "CommandReport",
    "ReportSection",
    "Tone",
]
