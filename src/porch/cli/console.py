"""Rich console rendering for porch reports and errors."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from porch.application.report import CommandReport, Tone
from porch.infrastructure.checks import format_check_results

# Shared console instances
console = Console()
error_console = Console(stderr=True)

TONE_STYLES = {
    Tone.PLAIN: "",
    Tone.SUCCESS: "green",
    Tone.WARNING: "yellow",
    Tone.DANGER: "red",
    Tone.MUTED: "dim",
}


def print_report(report: CommandReport) -> None:
    """Print a command report to stdout."""
    console.print()
    console.print(Text(report.title, style=f"bold {TONE_STYLES[report.tone]}".strip()))

    if report.check_results:
        console.print()
        console.print(Text("CHECKS:", style="bold"))
        style = "green" if all(r.passed for r in report.check_results) else "red"
        console.print(Text(format_check_results(report.check_results), style=style))

    for section in report.sections:
        console.print()
        if section.title:
            console.print(Text(f"{section.title}:", style="bold"))
        for line in section.lines:
            console.print(Text(f"  {line}" if line else "", style=TONE_STYLES[section.tone]))

    if report.next_command:
        console.print()
        console.print(Text(f"  {report.next_label}: {report.next_command}", style="cyan"))
    console.print()


def print_error(message: str, hint: str | None = None) -> None:
    """Print formatted error message to stderr."""
    content = Text(f"ERROR: {message}", style="bold red")
    if hint:
        content.append(f"\n\nHint: {hint}", style="yellow")
    error_console.print(Panel(content, title="Error", border_style="red"))
