"""
Protocol loading from the filesystem.

Protocols are looked up in the project-local directories first and in the
definitions bundled with the package last. Loading fails loudly: there is no
fallback protocol and no partial result.
"""

import json
import logging
from importlib.resources import files
from pathlib import Path

import jsonschema

from porch.domain.exceptions import (
    ProtocolNotFound,
    ProtocolParseError,
    ProtocolValidationError,
)
from porch.domain.interfaces import ProtocolSourceInterface
from porch.domain.models import Protocol
from porch.domain.protocol import normalize_protocol
from porch.schemas import describe_error, validate_protocol

logger = logging.getLogger(__name__)

# Project-local protocol directories, relative to the project root
PROTOCOL_PATHS = (
    "codev/protocols",
    "codev-skeleton/protocols",
)


def protocol_search_dirs(root: str | Path) -> list[Path]:
    """Base directories searched for protocols, in precedence order."""
    root_path = Path(root)
    dirs = [root_path / base for base in PROTOCOL_PATHS]
    dirs.append(bundled_protocols_dir())
    return dirs


def bundled_protocols_dir() -> Path:
    return Path(str(files("porch.protocols")))


def candidate_paths(root: str | Path, name: str) -> list[Path]:
    """Every file that may hold protocol ``name``: flat file first, then directory."""
    candidates = []
    for base in protocol_search_dirs(root):
        candidates.append(base / f"{name}.json")
        candidates.append(base / name / "protocol.json")
    return candidates


def find_protocol_file(root: str | Path, name: str) -> Path | None:
    for candidate in candidate_paths(root, name):
        if candidate.is_file():
            return candidate
    return None


def load_protocol(root: str | Path, name: str) -> Protocol:
    """
    Find and load a protocol by name.

    Args:
        root: Project root directory
        name: Protocol name (e.g. "spider")

    Returns:
        The validated, normalized Protocol

    Raises:
        ProtocolNotFound: If no candidate file exists (lists every path searched)
        ProtocolParseError: If the file is not valid JSON
        ProtocolValidationError: If the document or its phase graph is invalid
    """
    protocol_file = find_protocol_file(root, name)
    if protocol_file is None:
        raise ProtocolNotFound(name, [str(p) for p in candidate_paths(root, name)])

    logger.debug("Loading protocol '%s' from %s", name, protocol_file)
    try:
        with open(protocol_file, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ProtocolParseError(
            f"Invalid protocol '{name}': JSON parse error\n{e}"
        ) from e

    try:
        validate_protocol(data)
    except jsonschema.ValidationError as e:
        raise ProtocolValidationError(
            f"Invalid protocol '{name}' ({protocol_file}): {describe_error(e)}"
        ) from e

    return normalize_protocol(data)


class FilesystemProtocolSource(ProtocolSourceInterface):
    """Protocol lookup rooted at a project directory."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def load(self, name: str) -> Protocol:
        return load_protocol(self.root, name)
