"""
Domain interfaces (Ports) for the protocol orchestrator.

The orchestrator depends on these contracts; the infrastructure layer
provides filesystem, in-memory and subprocess implementations.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from porch.domain.models import (
        CheckResult,
        CheckSpec,
        PlanPhase,
        ProjectRef,
        ProjectState,
        Protocol,
    )


class StateStoreInterface(ABC):
    """
    Port for project state persistence.

    Implementations must write atomically and stamp ``updated_at`` on every
    write with a value strictly later than the previous one.
    """

    @abstractmethod
    def read(self, path: str) -> "ProjectState":
        """
        Read a project state record.

        Raises:
            ProjectNotFound: If no record exists at path
            StateParseError: If the record cannot be parsed
            StateValidationError: If required fields are missing
        """
        pass

    @abstractmethod
    def write(
        self,
        path: str,
        state: "ProjectState",
        expected_updated_at: str | None = None,
    ) -> "ProjectState":
        """
        Persist a project state record.

        Args:
            path: Destination of the record
            state: State to write; its ``updated_at`` is re-stamped
            expected_updated_at: If given, the stored record must still carry
                this ``updated_at`` or the write is rejected

        Returns:
            The state as written (with the new ``updated_at``)

        Raises:
            ConcurrentModification: If expected_updated_at no longer matches
        """
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def list_projects(self, root: str) -> list["ProjectRef"]:
        """
        Enumerate every project with a state record under a root.

        Args:
            root: Project root directory

        Returns:
            One reference per project, in any order
        """
        pass


class CheckRunnerInterface(ABC):
    """Port for executing a phase's checks."""

    @abstractmethod
    def run_phase_checks(
        self,
        checks: "Mapping[str, CheckSpec]",
        cwd: str,
        env: "Mapping[str, str]",
    ) -> list["CheckResult"]:
        """
        Run checks in order, stopping at the first failure.

        Args:
            checks: Check name -> spec, in execution order
            cwd: Project root; relative check cwds resolve against it
            env: Extra environment variables layered over the inherited one

        Returns:
            One result per check attempted
        """
        pass


class ProtocolSourceInterface(ABC):
    """Port for looking up protocol definitions by name."""

    @abstractmethod
    def load(self, name: str) -> "Protocol":
        """
        Load a protocol, failing loudly.

        Raises:
            ProtocolNotFound: If no definition exists
            ProtocolParseError: If the definition cannot be parsed
            ProtocolValidationError: If the definition is structurally invalid
        """
        pass


class PlanSourceInterface(ABC):
    """Port for reading a project's plan document."""

    @abstractmethod
    def load_phases(self, project_id: str, title: str) -> list["PlanPhase"]:
        """
        Extract the plan phases of a project, all pending.

        Raises:
            PlanNotFound: If the project has no plan document
        """
        pass

    @abstractmethod
    def phase_content(self, project_id: str, title: str, phase_id: str) -> str | None:
        """Plan prose for one phase, or None if the plan or phase is absent."""
        pass
