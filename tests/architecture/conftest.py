"""Architecture fixtures: porch's module graph and its four layers."""

from pathlib import Path

import pytest
from pytestarch import (
    EvaluableArchitecture,
    LayeredArchitecture,
    get_evaluable_architecture,
)

SRC_DIR = Path(__file__).resolve().parents[2] / "src"

# Modules are named relative to SRC_DIR's parent, hence the "src." prefix
PACKAGE = "src.porch"

# Layer name -> subpackage; listed innermost first
LAYERS = {
    "domain": "domain",  # models, errors, ports, pure protocol/plan/state logic
    "application": "application",  # orchestrator commands and reports
    "infrastructure": "infrastructure",  # YAML store, checks, protocol/plan files
    "cli": "cli",  # click commands, rich output, wiring of adapters
}


@pytest.fixture(scope="session")
def evaluable() -> EvaluableArchitecture:
    """Import graph of the installed-from-source porch package."""
    return get_evaluable_architecture(str(SRC_DIR), str(SRC_DIR / "porch"))


@pytest.fixture(scope="session")
def layers() -> LayeredArchitecture:
    """
    Layers used by the dependency rules.

    Dependencies point inwards: the CLI composes infrastructure adapters into
    the application's orchestrator, which only sees domain ports.
    """
    architecture = LayeredArchitecture()
    for name, subpackage in LAYERS.items():
        architecture = architecture.layer(name).containing_modules(
            [f"{PACKAGE}.{subpackage}"]
        )
    return architecture
