"""Command line interface for porch."""

from porch.cli.main import cli, create_orchestrator, main

__all__ = ["cli", "create_orchestrator", "main"]
