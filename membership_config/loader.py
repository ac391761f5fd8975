"""
Configuration Loader (``membership_config.loader``).

Responsibility
--------------
Loads lifecycle YAML files and parses them into the frozen dataclasses of
``membership_config.schema``.  The single public entry point for runtime
config is ``membership_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* ``compute_checksum`` is the SHA-256 of the file bytes, so any edit to a
  set (comments included) changes its identity.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from membership_kernel.utils.hashing import hash_bytes

from membership_config.schema import LifecycleConfig, NamedTransitionDef

_KNOWN_KEYS = frozenset({
    "name",
    "version",
    "status_graph",
    "transitions",
    "named_transitions",
    "initial_status",
    "period_statuses",
    "cancellable_statuses",
    "primary_targets",
    "default_membership_type",
    "one_change_per_day",
    "max_reason_length",
    "description",
})


def compute_checksum(raw: bytes) -> str:
    """SHA-256 hex digest of the raw configuration bytes."""
    return hash_bytes(raw)


def load_yaml_text(raw: bytes | str) -> dict[str, Any]:
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError("Lifecycle configuration must be a mapping at the top level")
    return data


def _status_list(value: Any, key: str) -> tuple[str, ...] | None:
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"'{key}' must be a list of status names")
    return tuple(str(v) for v in value)


def parse_named_transition(data: dict[str, Any]) -> NamedTransitionDef:
    return NamedTransitionDef(
        from_status=str(data["from"]),
        target_status=str(data["to"]),
        action=str(data["action"]),
        destructive=bool(data.get("destructive", False)),
        auto_left_category=data.get("auto_left_category"),
    )


def parse_lifecycle_config(data: dict[str, Any], checksum: str) -> LifecycleConfig:
    """
    Parse a ``LifecycleConfig`` from a dict.

    Raises:
        KeyError: if ``name`` or ``version`` is missing.
        ValueError: if a field has the wrong shape.
    """
    transitions = data.get("transitions")
    if transitions is not None:
        if not isinstance(transitions, dict):
            raise ValueError("'transitions' must map each status to its targets")
        transitions = tuple(
            (str(source), _status_list(targets or [], f"transitions.{source}"))
            for source, targets in transitions.items()
        )

    primary = data.get("primary_targets") or {}
    if not isinstance(primary, dict):
        raise ValueError("'primary_targets' must map a status to one target")

    return LifecycleConfig(
        name=str(data["name"]),
        version=int(data["version"]),
        checksum=checksum,
        status_graph=data.get("status_graph"),
        transitions=transitions,
        named_transitions=tuple(
            parse_named_transition(nt) for nt in data.get("named_transitions") or ()
        ),
        initial_status=data.get("initial_status"),
        period_statuses=_status_list(data.get("period_statuses"), "period_statuses"),
        cancellable_statuses=_status_list(
            data.get("cancellable_statuses"), "cancellable_statuses"
        ),
        primary_targets=tuple((str(k), str(v)) for k, v in primary.items()),
        default_membership_type=data.get("default_membership_type"),
        one_change_per_day=bool(data.get("one_change_per_day", True)),
        max_reason_length=int(data.get("max_reason_length", 500)),
        description=str(data.get("description", "")),
        extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
    )


def load_config_file(path: Path) -> LifecycleConfig:
    """Read, checksum and parse one configuration file."""
    raw = Path(path).read_bytes()
    return parse_lifecycle_config(load_yaml_text(raw), compute_checksum(raw))
