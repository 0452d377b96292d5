"""Configuration loading for porch.

Settings come from three places, highest precedence first:

1. Explicit arguments (the CLI's ``--timeout``)
2. Environment (``PORCH_CHECK_TIMEOUT``, in seconds)
3. Defaults

Per-check overrides live in ``<root>/af-config.json``::

    {
      "porch": {
        "checks": {
          "build": {"command": "make build"},
          "e2e":   {"skip": true},
          "test":  {"command": "npm test", "cwd": "packages/app"}
        }
      }
    }
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from porch.domain.exceptions import ConfigurationError
from porch.domain.models import CheckOverride
from porch.infrastructure.checks import DEFAULT_TIMEOUT_MS, KILL_GRACE_S

logger = logging.getLogger(__name__)

CONFIG_FILE = "af-config.json"
TIMEOUT_ENV = "PORCH_CHECK_TIMEOUT"


@dataclass(frozen=True)
class Settings:
    """Runtime settings for one porch invocation."""

    check_timeout_ms: int = DEFAULT_TIMEOUT_MS
    kill_grace_s: float = KILL_GRACE_S
    check_overrides: Mapping[str, CheckOverride] = field(
        default_factory=lambda: MappingProxyType({})
    )


def load_settings(root: str | Path, timeout_s: float | None = None) -> Settings:
    """
    Build settings for a project root.

    Args:
        root: Project root directory
        timeout_s: Check timeout from the command line, if given

    Returns:
        Resolved Settings

    Raises:
        ConfigurationError: If the timeout or the config file is invalid
    """
    if timeout_s is not None:
        timeout_ms = _timeout_ms(timeout_s, "--timeout")
    elif os.environ.get(TIMEOUT_ENV):
        timeout_ms = _timeout_ms(os.environ[TIMEOUT_ENV], TIMEOUT_ENV)
    else:
        timeout_ms = DEFAULT_TIMEOUT_MS

    overrides = load_check_overrides(root)
    logger.debug(
        "Settings: check_timeout_ms=%d, %d check override(s)",
        timeout_ms,
        len(overrides),
    )
    return Settings(
        check_timeout_ms=timeout_ms,
        check_overrides=MappingProxyType(overrides),
    )


def load_check_overrides(root: str | Path) -> dict[str, CheckOverride]:
    """
    Read the ``porch.checks`` section of ``af-config.json``.

    A missing file or section means no overrides.

    Raises:
        ConfigurationError: If the file is not valid JSON or an entry is malformed
    """
    path = Path(root) / CONFIG_FILE
    if not path.is_file():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected dict in {path}, got {type(data).__name__}")

    porch_section = data.get("porch") or {}
    if not isinstance(porch_section, dict):
        raise ConfigurationError(f"{path}: 'porch' must be an object")

    checks = porch_section.get("checks") or {}
    if not isinstance(checks, dict):
        raise ConfigurationError(f"{path}: 'porch.checks' must be an object")

    return {name: _parse_override(path, name, raw) for name, raw in checks.items()}


def _parse_override(path: Path, name: str, raw: Any) -> CheckOverride:
    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"{path}: override for check '{name}' must be an object"
        )

    command = raw.get("command")
    cwd = raw.get("cwd")
    for key, value in (("command", command), ("cwd", cwd)):
        if value is not None and not isinstance(value, str):
            raise ConfigurationError(
                f"{path}: '{key}' for check '{name}' must be a string"
            )

    return CheckOverride(skip=bool(raw.get("skip", False)), command=command, cwd=cwd)


def _timeout_ms(value: Any, source: str) -> int:
    try:
        seconds = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid check timeout from {source}: {value!r} (expected seconds)"
        ) from e
    if seconds <= 0:
        raise ConfigurationError(
            f"Invalid check timeout from {source}: {value!r} (must be positive)"
        )
    return int(seconds * 1000)
