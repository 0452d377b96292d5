"""
Infrastructure layer for the protocol orchestrator.

Contains adapters for external concerns (filesystem, subprocesses, config).
"""

from porch.infrastructure.checks import SubprocessCheckRunner
from porch.infrastructure.config import Settings, load_settings
from porch.infrastructure.persistence import (
    FilesystemStateStore,
    InMemoryStateStore,
)
from porch.infrastructure.plan_files import FilesystemPlanSource
from porch.infrastructure.protocols import FilesystemProtocolSource, load_protocol

__all__ = [
    # Persistence
    "FilesystemStateStore",
    "InMemoryStateStore",
    # Checks
    "SubprocessCheckRunner",
    # Protocols and plans
    "FilesystemPlanSource",
    "FilesystemProtocolSource",
    "load_protocol",
    # Config
    "Settings",
    "load_settings",
]
