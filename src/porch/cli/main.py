"""
porch command line.

Usage:
    porch status <id>              Current phase and the next step
    porch check <id>               Run the current phase's checks
    porch done <id>                Complete the current step and advance
    porch gate <id>                Request human approval
    porch approve <id> <gate>      Approve a gate (humans only)
    porch init <protocol> <id> <title>
    porch pending                  Gates awaiting approval
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import click

from porch import __version__
from porch.application.orchestrator import Orchestrator
from porch.application.report import CommandReport
from porch.cli.console import print_error, print_report
from porch.cli.logging_setup import setup_logging
from porch.domain.exceptions import PorchError
from porch.infrastructure.checks import SubprocessCheckRunner
from porch.infrastructure.config import load_settings
from porch.infrastructure.persistence import FilesystemStateStore
from porch.infrastructure.plan_files import FilesystemPlanSource
from porch.infrastructure.protocols import FilesystemProtocolSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CliContext:
    """Options shared by every subcommand."""

    root: Path
    timeout_s: float | None = None


def create_orchestrator(root: str | Path, timeout_s: float | None = None) -> Orchestrator:
    """
    Wire an Orchestrator to the filesystem and subprocess adapters.

    Raises:
        ConfigurationError: If the timeout or af-config.json is invalid
    """
    settings = load_settings(root, timeout_s)
    return Orchestrator(
        root,
        store=FilesystemStateStore(),
        check_runner=SubprocessCheckRunner(
            timeout_ms=settings.check_timeout_ms,
            kill_grace_s=settings.kill_grace_s,
        ),
        protocols=FilesystemProtocolSource(root),
        plans=FilesystemPlanSource(root),
        check_overrides=settings.check_overrides,
    )


def _run(ctx: click.Context, command: Callable[[Orchestrator], CommandReport]) -> None:
    """Run one orchestrator command, render its report and set the exit code."""
    obj: CliContext = ctx.obj
    try:
        report = command(create_orchestrator(obj.root, obj.timeout_s))
    except PorchError as e:
        logger.debug("%s: %s", type(e).__name__, e.message)
        print_error(e.message, e.hint)
        ctx.exit(1)

    print_report(report)
    ctx.exit(report.exit_code)


@click.group()
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="PORCH_ROOT",
    default=None,
    help="Project root directory (default: current directory)",
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Check timeout in seconds (default: $PORCH_CHECK_TIMEOUT or 300)",
)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="Enable verbose (DEBUG) logging to console",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to log file",
)
@click.version_option(version=__version__, prog_name="porch")
@click.pass_context
def cli(
    ctx: click.Context,
    root: Path | None,
    timeout: float | None,
    verbose: bool,
    log_file: str | None,
) -> None:
    """Protocol orchestrator: drives a project through its protocol phases."""
    setup_logging(verbose=verbose, log_file=log_file)
    ctx.obj = CliContext(root=root or Path.cwd(), timeout_s=timeout)
    logger.debug("Project root: %s", ctx.obj.root)


@cli.command()
@click.argument("project_id")
@click.pass_context
def status(ctx: click.Context, project_id: str) -> None:
    """Show the current phase and the next step."""
    _run(ctx, lambda orchestrator: orchestrator.status(project_id))


@cli.command()
@click.argument("project_id")
@click.pass_context
def check(ctx: click.Context, project_id: str) -> None:
    """Run the current phase's checks."""
    _run(ctx, lambda orchestrator: orchestrator.check(project_id))


@cli.command()
@click.argument("project_id")
@click.pass_context
def done(ctx: click.Context, project_id: str) -> None:
    """Complete the current step and advance."""
    _run(ctx, lambda orchestrator: orchestrator.done(project_id))


@cli.command()
@click.argument("project_id")
@click.pass_context
def gate(ctx: click.Context, project_id: str) -> None:
    """Request human approval for the current gate."""
    _run(ctx, lambda orchestrator: orchestrator.gate(project_id))


@cli.command()
@click.argument("project_id")
@click.argument("gate_name")
@click.pass_context
def approve(ctx: click.Context, project_id: str, gate_name: str) -> None:
    """Approve a gate."""
    _run(ctx, lambda orchestrator: orchestrator.approve(project_id, gate_name))


@cli.command()
@click.argument("protocol")
@click.argument("project_id")
@click.argument("title")
@click.pass_context
def init(ctx: click.Context, protocol: str, project_id: str, title: str) -> None:
    """Create a new project at the protocol's first phase."""
    _run(ctx, lambda orchestrator: orchestrator.init(protocol, project_id, title))


@cli.command()
@click.pass_context
def pending(ctx: click.Context) -> None:
    """List gates awaiting human approval."""
    _run(ctx, lambda orchestrator: orchestrator.pending())


def main() -> None:
    cli(prog_name="porch")


if __name__ == "__main__":
    main()
