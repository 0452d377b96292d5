"""porch JSON Schema definitions and validation utilities.

Schemas:
    - protocol.schema.json: Protocol definition (phases, gates, checks, transitions)
    - state.schema.json: Project state record (status.yaml)

Usage:
    from porch.schemas import validate_protocol

    with open("codev/protocols/spider/protocol.json") as f:
        data = json.load(f)
    validate_protocol(data)  # Raises jsonschema.ValidationError if invalid
"""

from __future__ import annotations

import json
from functools import cache
from importlib.resources import files
from typing import Any

import jsonschema


@cache
def _load_schema(name: str) -> dict[str, Any]:
    """Load a JSON schema from the schemas package.

    Args:
        name: Schema filename (e.g., 'protocol.schema.json')

    Returns:
        Parsed JSON schema as a dictionary
    """
    schema_text = files("porch.schemas").joinpath(name).read_text(encoding="utf-8")
    result: dict[str, Any] = json.loads(schema_text)
    return result


def get_protocol_schema() -> dict[str, Any]:
    """Get the protocol definition schema."""
    return _load_schema("protocol.schema.json")


def get_state_schema() -> dict[str, Any]:
    """Get the project state record schema."""
    return _load_schema("state.schema.json")


def validate_protocol(data: Any) -> None:
    """Validate a protocol definition against the schema.

    Raises:
        jsonschema.ValidationError: If validation fails
    """
    jsonschema.validate(data, get_protocol_schema())


def validate_state(data: Any) -> None:
    """Validate a project state record against the schema.

    Raises:
        jsonschema.ValidationError: If validation fails
    """
    jsonschema.validate(data, get_state_schema())


def describe_error(error: jsonschema.ValidationError) -> str:
    """Render a validation error as a short, path-qualified message.

    Missing required properties read as ``missing "<field>" field`` so the
    message names exactly what the author has to add.
    """
    location = "/".join(str(part) for part in error.absolute_path) or "<root>"
    if error.validator == "required":
        missing = [
            field
            for field in error.validator_value
            if isinstance(error.instance, dict) and field not in error.instance
        ]
        fields = ", ".join(f'"{field}"' for field in missing)
        return f"missing {fields} field (at {location})"
    return f"{error.message} (at {location})"


__all__ = [
    "describe_error",
    "get_protocol_schema",
    "get_state_schema",
    "validate_protocol",
    "validate_state",
]
