"""
Domain exceptions for the protocol orchestrator.

Every user-facing failure is one of these. Messages name the offending
identifier; ``hint`` carries the command the caller should run next, if any.
Check failures are not exceptions: they are reported as CheckResult data.
"""

from collections.abc import Sequence


class PorchError(Exception):
    """Base class for all orchestration errors."""

    def __init__(self, message: str, hint: str | None = None):
        """
        Args:
            message: Human-readable error message
            hint: Next command or action for the caller (optional)
        """
        super().__init__(message)
        self.message = message
        self.hint = hint


# =============================================================================
# NOT FOUND
# =============================================================================


class NotFoundError(PorchError):
    """A project, protocol, gate or plan document is absent."""


class ProjectNotFound(NotFoundError):
    def __init__(self, project: str, hint: str | None = None):
        super().__init__(f"Project not found: {project}", hint=hint)
        self.project = project


class ProtocolNotFound(NotFoundError):
    def __init__(self, name: str, searched: Sequence[str]):
        """
        Args:
            name: Protocol name that was requested
            searched: Every file path that was tried, in search order
        """
        super().__init__(
            f"Protocol '{name}' not found.\nSearched in: {', '.join(searched)}"
        )
        self.name = name
        self.searched = tuple(searched)


class GateNotFound(NotFoundError):
    def __init__(self, gate: str, known_gates: Sequence[str]):
        known = ", ".join(known_gates) or "none"
        super().__init__(f"Unknown gate: {gate}\nKnown gates: {known}")
        self.gate = gate
        self.known_gates = tuple(known_gates)


class PlanNotFound(NotFoundError):
    def __init__(self, path: str):
        super().__init__(
            f"Plan file not found: {path}",
            hint="Write the plan document before entering a phased phase.",
        )
        self.path = path


class AmbiguousProject(PorchError):
    """More than one project directory matches a project id."""

    def __init__(self, project_id: str, candidates: Sequence[str]):
        super().__init__(
            f"Project id {project_id} is ambiguous.\n"
            f"Matching directories: {', '.join(candidates)}",
            hint="Rename or archive the duplicate project directories.",
        )
        self.project_id = project_id
        self.candidates = tuple(candidates)


# =============================================================================
# PARSE / VALIDATION
# =============================================================================


class ParseError(PorchError):
    """A definition, state record or config file could not be parsed."""


class ProtocolParseError(ParseError):
    pass


class StateParseError(ParseError):
    pass


class ConfigurationError(ParseError):
    """Raised when configuration files or values are invalid."""


class ValidationError(PorchError):
    """A parsed record is structurally invalid."""


class ProtocolValidationError(ValidationError):
    pass


class StateValidationError(ValidationError):
    pass


# =============================================================================
# STATE MACHINE
# =============================================================================


class GateBlocked(PorchError):
    """Raised when advancing past a gate that has not been approved."""

    def __init__(self, gate: str, project_id: str):
        super().__init__(
            f"GATE REQUIRED: {gate}\nWait for human approval before advancing.",
            hint=f"porch gate {project_id}",
        )
        self.gate = gate
        self.project_id = project_id


class AlreadyExists(PorchError):
    """Something that must be created once already exists."""


class ProjectAlreadyExists(AlreadyExists):
    def __init__(self, slug: str, status_path: str):
        super().__init__(f"Project {slug} already exists: {status_path}")
        self.slug = slug
        self.status_path = status_path


class ConcurrentModification(PorchError):
    """
    Raised when the state file changed between read and write.

    The write is rejected so another invocation's update is never lost.
    """

    def __init__(self, path: str, expected: str, found: str | None):
        super().__init__(
            f"State file {path} was modified by another invocation "
            f"(expected updated_at {expected}, found {found}).",
            hint="Re-run the command to act on the latest state.",
        )
        self.path = path
        self.expected = expected
        self.found = found
