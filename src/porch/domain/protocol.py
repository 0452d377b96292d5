"""
Protocol normalization.

Turns a raw protocol document (already parsed from JSON) into an immutable
Protocol and enforces the graph invariants the state machine relies on:
unique phase ids and every ``next`` naming an existing phase.
"""

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from porch.domain.exceptions import ProtocolValidationError
from porch.domain.models import PhaseType, Protocol, ProtocolPhase


def normalize_protocol(data: Any) -> Protocol:
    """
    Build a Protocol from a raw JSON document.

    The check-command table merges ``defaults.checks`` (lowest precedence)
    with every phase's inline checks, in phase order.

    Raises:
        ProtocolValidationError: If the document or phase graph is invalid
    """
    if not isinstance(data, Mapping):
        raise ProtocolValidationError(
            f"Invalid protocol: expected an object, got {type(data).__name__}"
        )
    name = data.get("name")
    if not name or not isinstance(name, str):
        raise ProtocolValidationError('Invalid protocol: missing "name" field')
    raw_phases = data.get("phases")
    if not isinstance(raw_phases, list):
        raise ProtocolValidationError('Invalid protocol: missing "phases" array')
    if not raw_phases:
        raise ProtocolValidationError(f"Invalid protocol '{name}': no phases defined")

    phases = tuple(normalize_phase(p) for p in raw_phases)

    checks: dict[str, str] = {}
    defaults = data.get("defaults")
    if isinstance(defaults, Mapping):
        checks.update(_check_commands(defaults.get("checks")))
    for raw_phase in raw_phases:
        checks.update(_check_commands(raw_phase.get("checks")))

    protocol = Protocol(
        name=name,
        phases=phases,
        checks=MappingProxyType(checks),
        version=data.get("version"),
        description=data.get("description"),
    )
    validate_phase_graph(protocol)
    return protocol


def normalize_phase(raw: Any) -> ProtocolPhase:
    """Normalize a single phase object."""
    if not isinstance(raw, Mapping):
        raise ProtocolValidationError(
            "Invalid protocol phase: expected an object, "
            f"got {type(raw).__name__}"
        )
    phase_id = raw.get("id")
    if not phase_id or not isinstance(phase_id, str):
        raise ProtocolValidationError('Invalid protocol phase: missing "id"')

    # transition.on_complete wins over gate.next
    transition = raw.get("transition") or {}
    gate = raw.get("gate") or {}
    next_phase: str | None = None
    if transition.get("on_complete"):
        next_phase = transition["on_complete"]
    elif "next" in gate:
        next_phase = gate["next"]

    raw_type = raw.get("type")
    try:
        phase_type = PhaseType(raw_type) if raw_type is not None else None
    except ValueError:
        valid = ", ".join(t.value for t in PhaseType)
        raise ProtocolValidationError(
            f"Invalid protocol phase '{phase_id}': unknown type '{raw_type}' "
            f"(expected one of: {valid})"
        ) from None

    raw_checks = raw.get("checks")
    check_names = tuple(raw_checks.keys()) if isinstance(raw_checks, Mapping) else ()

    return ProtocolPhase(
        id=phase_id,
        name=raw.get("name") or phase_id,
        type=phase_type,
        gate=gate.get("name") or None,
        checks=check_names,
        next=next_phase,
    )


def validate_phase_graph(protocol: Protocol) -> None:
    """Reject duplicate phase ids and dangling ``next`` references."""
    seen: set[str] = set()
    for phase in protocol.phases:
        if phase.id in seen:
            raise ProtocolValidationError(
                f"Invalid protocol '{protocol.name}': duplicate phase id '{phase.id}'"
            )
        seen.add(phase.id)

    for phase in protocol.phases:
        if phase.next is not None and phase.next not in seen:
            raise ProtocolValidationError(
                f"Invalid protocol '{protocol.name}': phase '{phase.id}' "
                f"transitions to unknown phase '{phase.next}'.\n"
                f"Valid phases: {', '.join(protocol.phase_ids)}"
            )


def _check_commands(raw_checks: Any) -> dict[str, str]:
    """Extract name -> command from a checks object (string or {command})."""
    commands: dict[str, str] = {}
    if not isinstance(raw_checks, Mapping):
        return commands
    for name, check in raw_checks.items():
        if isinstance(check, str):
            commands[name] = check
        elif isinstance(check, Mapping) and isinstance(check.get("command"), str):
            commands[name] = check["command"]
    return commands
