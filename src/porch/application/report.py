"""
Command reports.

Every orchestrator command returns a CommandReport: prescriptive text telling
the caller (usually an AI agent) exactly what to do next. Rendering is left to
the presentation layer.
"""

from dataclasses import dataclass
from enum import Enum

from porch.domain.models import CheckResult


class Tone(Enum):
    """Presentation hint for a headline or section."""

    PLAIN = "plain"
    SUCCESS = "success"
    WARNING = "warning"
    DANGER = "danger"
    MUTED = "muted"


@dataclass(frozen=True)
class ReportSection:
    """A titled block of report text. Untitled sections render as plain lines."""

    title: str | None
    lines: tuple[str, ...]
    tone: Tone = Tone.PLAIN


@dataclass(frozen=True)
class CommandReport:
    """Outcome of one orchestrator command."""

    title: str
    sections: tuple[ReportSection, ...] = ()
    next_command: str | None = None
    next_label: str = "Run"
    check_results: tuple[CheckResult, ...] = ()
    exit_code: int = 0
    tone: Tone = Tone.PLAIN

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def section(self, title: str) -> ReportSection | None:
        for section in self.sections:
            if section.title == title:
                return section
        return None

    def text(self) -> str:
        """Plain-text rendering, one line per entry."""
        lines = [self.title]
        for section in self.sections:
            lines.append("")
            if section.title:
                lines.append(f"{section.title}:")
            lines.extend(f"  {line}" if line else "" for line in section.lines)
        if self.next_command:
            lines.append("")
            lines.append(f"{self.next_label}: {self.next_command}")
        return "\n".join(lines)
