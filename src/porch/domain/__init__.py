"""
Domain layer for the protocol orchestrator.

Contains core business logic with no external dependencies.
"""

from porch.domain.exceptions import (
    AlreadyExists,
    AmbiguousProject,
    ConcurrentModification,
    ConfigurationError,
    GateBlocked,
    GateNotFound,
    NotFoundError,
    ParseError,
    PlanNotFound,
    PorchError,
    ProjectAlreadyExists,
    ProjectNotFound,
    ProtocolNotFound,
    ProtocolParseError,
    ProtocolValidationError,
    StateParseError,
    StateValidationError,
    ValidationError,
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
    PhaseType,
    PlanPhase,
    PlanPhaseStatus,
    ProjectRef,
    ProjectState,
    Protocol,
    ProtocolPhase,
)

__all__ = [
    # Models
    "CheckOverride",
    "CheckResult",
    "CheckSpec",
    "GateState",
    "GateStatus",
    "PendingGate",
    "PhaseType",
    "PlanPhase",
    "PlanPhaseStatus",
    "ProjectRef",
    "ProjectState",
    "Protocol",
    "ProtocolPhase",
    # Interfaces
    "CheckRunnerInterface",
    "PlanSourceInterface",
    "ProtocolSourceInterface",
    "StateStoreInterface",
    # Exceptions
    "PorchError",
    "NotFoundError",
    "ProjectNotFound",
    "ProtocolNotFound",
    "GateNotFound",
    "PlanNotFound",
    "AmbiguousProject",
    "ParseError",
    "ProtocolParseError",
    "StateParseError",
    "ConfigurationError",
    "ValidationError",
    "ProtocolValidationError",
    "StateValidationError",
    "GateBlocked",
    "AlreadyExists",
    "ProjectAlreadyExists",
    "ConcurrentModification",
]
