"""
Check execution.

Runs a phase's check commands (build, test, lint, ...) as shell subprocesses
with a timeout. On timeout the process group receives SIGTERM, then SIGKILL
if it is still alive after a grace period.
"""

import logging
import os
import signal
import subprocess
import time
from collections.abc import Mapping, Sequence
from pathlib import Path

from porch.domain.interfaces import CheckRunnerInterface
from porch.domain.models import CheckResult, CheckSpec

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 5 * 60 * 1000
KILL_GRACE_S = 5.0

# Lines of error output shown per failing check
MAX_ERROR_LINES = 5


def run_check(
    name: str,
    command: str,
    cwd: str | Path,
    env: Mapping[str, str],
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    kill_grace_s: float = KILL_GRACE_S,
) -> CheckResult:
    """
    Run a single check command.

    Args:
        name: Check name (for reporting)
        command: Shell command line
        cwd: Working directory
        env: Variables layered over the inherited environment
        timeout_ms: Deadline before the command is terminated
        kill_grace_s: Wait after SIGTERM before sending SIGKILL

    Returns:
        CheckResult; a timeout is a failure with ``timed_out`` set
    """
    logger.info("Running check '%s': %s", name, command)
    start = time.monotonic()

    try:
        proc = subprocess.Popen(
            command,
            shell=True,
            cwd=cwd,
            env={**os.environ, **env},
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            encoding="utf-8",
            errors="replace",  # Invalid bytes become U+FFFD
            start_new_session=True,  # Own process group, so children die with it
        )
    except OSError as e:
        logger.warning("Check '%s' could not start: %s", name, e)
        return CheckResult(
            name=name,
            command=command,
            passed=False,
            error=str(e),
            duration_ms=_elapsed_ms(start),
        )

    timed_out = False
    try:
        stdout, stderr = proc.communicate(timeout=timeout_ms / 1000)
    except subprocess.TimeoutExpired:
        timed_out = True
        logger.warning("Check '%s' timed out after %sms, terminating", name, timeout_ms)
        _signal_group(proc, signal.SIGTERM)
        try:
            stdout, stderr = proc.communicate(timeout=kill_grace_s)
        except subprocess.TimeoutExpired:
            logger.warning("Check '%s' ignored SIGTERM, killing", name)
            _signal_group(proc, signal.SIGKILL)
            stdout, stderr = proc.communicate()

    duration_ms = _elapsed_ms(start)

    if timed_out:
        result = CheckResult(
            name=name,
            command=command,
            passed=False,
            output=(stdout or "").strip(),
            error=f"Timed out after {timeout_ms / 1000:g}s",
            timed_out=True,
            duration_ms=duration_ms,
        )
    elif proc.returncode == 0:
        result = CheckResult(
            name=name,
            command=command,
            passed=True,
            output=stdout.strip(),
            duration_ms=duration_ms,
        )
    else:
        result = CheckResult(
            name=name,
            command=command,
            passed=False,
            output=stdout.strip(),
            error=stderr.strip() or f"Exit code {proc.returncode}",
            duration_ms=duration_ms,
        )

    logger.info(
        "Check '%s' %s in %dms", name, "passed" if result.passed else "failed", duration_ms
    )
    return result


def run_phase_checks(
    checks: Mapping[str, str | CheckSpec],
    cwd: str | Path,
    env: Mapping[str, str],
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    kill_grace_s: float = KILL_GRACE_S,
) -> list[CheckResult]:
    """
    Run checks in order, stopping at the first failure.

    A spec's own ``cwd`` is resolved relative to ``cwd``.
    """
    results: list[CheckResult] = []
    for name, check in checks.items():
        spec = CheckSpec(command=check) if isinstance(check, str) else check
        check_cwd = Path(cwd) / spec.cwd if spec.cwd else Path(cwd)
        result = run_check(name, spec.command, check_cwd, env, timeout_ms, kill_grace_s)
        results.append(result)
        if not result.passed:
            break
    return results


def all_checks_passed(results: Sequence[CheckResult]) -> bool:
    return all(r.passed for r in results)


def format_check_results(results: Sequence[CheckResult]) -> str:
    """Compact pass/fail listing with truncated error detail."""
    lines: list[str] = []
    for result in results:
        mark = "✓" if result.passed else "✗"
        duration = f" ({result.duration_ms / 1000:.1f}s)" if result.duration_ms else ""
        lines.append(f"  {mark} {result.name}{duration}")

        if not result.passed and result.error:
            error_lines = result.error.splitlines()
            lines.extend(f"    {line}" for line in error_lines[:MAX_ERROR_LINES])
            if len(error_lines) > MAX_ERROR_LINES:
                lines.append("    ...")
    return "\n".join(lines)


class SubprocessCheckRunner(CheckRunnerInterface):
    """Check runner backed by shell subprocesses."""

    def __init__(
        self,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        kill_grace_s: float = KILL_GRACE_S,
    ):
        """
        Args:
            timeout_ms: Per-check deadline
            kill_grace_s: Wait after SIGTERM before SIGKILL
        """
        self.timeout_ms = timeout_ms
        self.kill_grace_s = kill_grace_s

    def run_phase_checks(
        self,
        checks: Mapping[str, CheckSpec],
        cwd: str,
        env: Mapping[str, str],
    ) -> list[CheckResult]:
        return run_phase_checks(checks, cwd, env, self.timeout_ms, self.kill_grace_s)


def _signal_group(proc: subprocess.Popen, sig: signal.Signals) -> None:
    try:
        os.killpg(proc.pid, sig)
    except ProcessLookupError:
        logger.debug("Process group %d already exited", proc.pid)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
