"""
Application layer for the protocol orchestrator.

Contains the orchestrator commands and the reports they return.
"""

from porch.application.orchestrator import Orchestrator, ProjectContext
from porch.application.report import CommandReport, ReportSection, Tone

__all__ = [
    "Orchestrator",
    "ProjectContext",
    "CommandReport",
    "ReportSection",
    "Tone",
]
