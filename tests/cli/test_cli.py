"""Tests for the porch command line."""

import logging

import pytest
import yaml

from porch.cli.logging_setup import LOGGER_NAME, setup_logging
from porch.cli.main import cli, create_orchestrator
from porch.domain.exceptions import ConfigurationError

PID = "0074"
TITLE = "test-feature"


@pytest.fixture
def invoke(runner, project_root, monkeypatch):  # noqa: ANN001
    """Run porch against project_root."""
    monkeypatch.delenv("PORCH_CHECK_TIMEOUT", raising=False)

    def run(*args: str):  # noqa: ANN202
        return runner.invoke(cli, ["--root", str(project_root), *args])

    return run


def _status_file(project_root):  # noqa: ANN001, ANN202
    return project_root / "codev" / "projects" / f"{PID}-{TITLE}" / "status.yaml"


class TestInitAndStatus:
    """Tests for creating and inspecting a project."""

    def test_init_writes_state(self, invoke, project_root) -> None:  # noqa: ANN001
        result = invoke("init", "simple", PID, TITLE)

        assert result.exit_code == 0, result.output
        assert "Project initialized: 0074-test-feature" in result.output
        data = yaml.safe_load(_status_file(project_root).read_text())
        assert data["phase"] == "specify"
        assert data["gates"]["spec_approval"] == {"status": "pending"}

    def test_init_twice_fails(self, invoke) -> None:  # noqa: ANN001
        invoke("init", "simple", PID, TITLE)

        result = invoke("init", "simple", PID, TITLE)

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_status(self, invoke) -> None:  # noqa: ANN001
        invoke("init", "simple", PID, TITLE)

        result = invoke("status", PID)

        assert result.exit_code == 0
        assert "PROJECT: 0074 - test-feature" in result.output
        assert "Run: porch gate 0074" in result.output

    def test_unknown_project(self, invoke) -> None:  # noqa: ANN001
        result = invoke("status", "9999")

        assert result.exit_code == 1
        assert "Project not found: 9999" in result.output
        assert "porch init" in result.output

    def test_root_from_environment(self, runner, project_root, monkeypatch) -> None:  # noqa: ANN001
        monkeypatch.setenv("PORCH_ROOT", str(project_root))

        result = runner.invoke(cli, ["init", "simple", PID, TITLE])

        assert result.exit_code == 0, result.output
        assert _status_file(project_root).is_file()


class TestWorkflow:
    """End-to-end walk through the simple protocol."""

    def test_gate_blocks_then_approval_advances(self, invoke, write_plan) -> None:  # noqa: ANN001
        invoke("init", "simple", PID, TITLE)
        write_plan(PID, TITLE)

        blocked = invoke("done", PID)
        assert blocked.exit_code == 1
        assert "GATE REQUIRED: spec_approval" in blocked.output
        assert "porch gate 0074" in blocked.output

        requested = invoke("gate", PID)
        assert requested.exit_code == 0
        assert "WAITING FOR HUMAN APPROVAL" in requested.output

        pending = invoke("pending")
        assert "0074  spec_approval" in pending.output

        approved = invoke("approve", PID, "spec_approval")
        assert approved.exit_code == 0
        assert "Gate spec_approval approved." in approved.output

        advanced = invoke("done", PID)
        assert advanced.exit_code == 0
        assert "ADVANCING TO: implement" in advanced.output

    def test_checks_run_on_done(self, invoke, write_plan) -> None:  # noqa: ANN001
        invoke("init", "simple", PID, TITLE)
        write_plan(PID, TITLE)
        invoke("approve", PID, "spec_approval")
        invoke("done", PID)

        result = invoke("done", PID)

        assert result.exit_code == 0, result.output
        assert "✓ build" in result.output
        assert "✓ test" in result.output
        assert "PHASE COMPLETE: phase_1 - Core types" in result.output

    def test_failing_check_exits_one(self, invoke, project_root, write_plan) -> None:  # noqa: ANN001
        (project_root / "af-config.json").write_text(
            '{"porch": {"checks": {"build": {"command": "echo nope >&2; exit 1"}}}}'
        )
        invoke("init", "simple", PID, TITLE)
        write_plan(PID, TITLE)
        invoke("approve", PID, "spec_approval")
        invoke("done", PID)

        result = invoke("check", PID)

        assert result.exit_code == 1
        assert "✗ build" in result.output
        assert "nope" in result.output
        assert "RESULT: CHECKS FAILED" in result.output

    def test_unknown_gate(self, invoke) -> None:  # noqa: ANN001
        invoke("init", "simple", PID, TITLE)

        result = invoke("approve", PID, "bogus")

        assert result.exit_code == 1
        assert "Unknown gate: bogus" in result.output


class TestOptions:
    """Tests for global options and configuration errors."""

    def test_invalid_config_reported(self, invoke, project_root) -> None:  # noqa: ANN001
        (project_root / "af-config.json").write_text("{broken")

        result = invoke("pending")

        assert result.exit_code == 1
        assert "Invalid JSON" in result.output

    def test_timeout_option(self, project_root, monkeypatch) -> None:  # noqa: ANN001
        monkeypatch.delenv("PORCH_CHECK_TIMEOUT", raising=False)

        orchestrator = create_orchestrator(project_root, timeout_s=2)

        assert orchestrator._check_runner.timeout_ms == 2000

    def test_invalid_timeout(self, project_root) -> None:  # noqa: ANN001
        with pytest.raises(ConfigurationError):
            create_orchestrator(project_root, timeout_s=-1)

    def test_log_file(self, invoke, project_root, tmp_path) -> None:  # noqa: ANN001
        log_file = tmp_path / "logs" / "porch.log"

        result = invoke("--log-file", str(log_file), "init", "simple", PID, TITLE)

        assert result.exit_code == 0, result.output
        assert "initialized with protocol simple" in log_file.read_text()

    def test_version(self, runner) -> None:  # noqa: ANN001
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "porch" in result.output


class TestSetupLogging:
    """Tests for logging configuration."""

    def test_quiet_console_by_default(self) -> None:
        logger = setup_logging()

        assert logger.name == LOGGER_NAME
        assert [h.level for h in logger.handlers] == [logging.WARNING]

    def test_verbose_console(self) -> None:
        logger = setup_logging(verbose=True)

        assert logger.handlers[0].level == logging.DEBUG

    def test_repeated_setup_does_not_stack_handlers(self) -> None:
        setup_logging()
        logger = setup_logging()

        assert len(logger.handlers) == 1
