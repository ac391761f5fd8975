"""
Configuration Validator (``membership_config.validator``).

Responsibility
--------------
Checks a ``LifecycleConfig`` for structural integrity before the bridges
build a status graph and an engine from it.

Invariants enforced
-------------------
* The graph is declared exactly once: a preset name or explicit transitions.
* Every status name is a ``MemberStatus``; every edge target is declared.
* Named transitions describe existing edges; automatic left categories are
  valid ``LeftCategory`` names on edges into LEFT.
* Cancellable statuses can reach LEFT, so the scheduler can complete a
  cancellation.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``)  -> the set MUST
  NOT be used.
* Validation warnings  -> the set may be used but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from membership_config.schema import LifecycleConfig
from membership_kernel.domain.status_graph import STATUS_GRAPH_PRESETS
from membership_kernel.domain.statuses import LeftCategory, MemberStatus

_STATUS_NAMES = frozenset(s.value for s in MemberStatus)
_CATEGORY_NAMES = frozenset(c.value for c in LeftCategory)
# Reason column width in member_status_transitions.
_REASON_COLUMN_LENGTH = 500


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
    * Warnings do not block use but should be reviewed.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: LifecycleConfig) -> ConfigValidationResult:
    """
    Validate a lifecycle configuration.

    Postconditions:
        - Returns a ``ConfigValidationResult`` with errors and warnings.
        - A configuration with errors MUST NOT be bridged into the kernel.
    """
    result = ConfigValidationResult()

    edges = _validate_graph_source(config, result)
    if edges is not None:
        _validate_statuses(config, edges, result)
        _validate_named_transitions(config, edges, result)
        _validate_cancellable(config, edges, result)
    _validate_limits(config, result)

    return result


def _validate_graph_source(
    config: LifecycleConfig, result: ConfigValidationResult
) -> dict[str, frozenset[str]] | None:
    """Return the effective edges as status names, or None if unusable."""
    if config.status_graph and config.transitions:
        result.add_error(
            f"'{config.name}': declare either status_graph or transitions, not both"
        )
        return None
    if config.status_graph:
        preset = STATUS_GRAPH_PRESETS.get(config.status_graph)
        if preset is None:
            result.add_error(
                f"'{config.name}': unknown status_graph preset '{config.status_graph}' "
                f"(known: {sorted(STATUS_GRAPH_PRESETS)})"
            )
            return None
        if config.named_transitions:
            result.add_warning(
                f"'{config.name}': named_transitions are ignored for preset graphs"
            )
        return {
            source.value: frozenset(t.value for t in targets)
            for source, targets in preset.edges.items()
        }
    if not config.transitions:
        result.add_error(f"'{config.name}': no status_graph and no transitions declared")
        return None

    edges: dict[str, frozenset[str]] = {}
    for source, targets in config.transitions:
        if source in edges:
            result.add_error(f"'{config.name}': status {source} declared twice")
        edges[source] = frozenset(targets)
    return edges


def _validate_statuses(
    config: LifecycleConfig,
    edges: dict[str, frozenset[str]],
    result: ConfigValidationResult,
) -> None:
    for source, targets in edges.items():
        for name in (source, *targets):
            if name not in _STATUS_NAMES:
                result.add_error(f"'{config.name}': unknown status '{name}'")
        undeclared = targets - set(edges)
        if undeclared:
            result.add_error(
                f"'{config.name}': {source} leads to undeclared status(es) "
                f"{sorted(undeclared)}"
            )

    if config.initial_status is not None and config.initial_status not in edges:
        result.add_error(
            f"'{config.name}': initial status '{config.initial_status}' is not declared"
        )

    if config.period_statuses is not None:
        for name in config.period_statuses:
            if name not in edges:
                result.add_error(
                    f"'{config.name}': period status '{name}' is not declared"
                )
        if not config.period_statuses:
            result.add_warning(f"'{config.name}': no status requires a membership period")

    for source, target in config.primary_targets:
        if target not in edges.get(source, frozenset()):
            result.add_error(
                f"'{config.name}': primary target {source} -> {target} is not an edge"
            )


def _validate_named_transitions(
    config: LifecycleConfig,
    edges: dict[str, frozenset[str]],
    result: ConfigValidationResult,
) -> None:
    seen: set[tuple[str, str]] = set()
    for nt in config.named_transitions:
        edge = (nt.from_status, nt.target_status)
        if edge in seen:
            result.add_error(
                f"'{config.name}': more than one named transition for "
                f"{nt.from_status} -> {nt.target_status}"
            )
        seen.add(edge)
        if nt.target_status not in edges.get(nt.from_status, frozenset()):
            result.add_error(
                f"'{config.name}': named transition '{nt.action}' describes missing "
                f"edge {nt.from_status} -> {nt.target_status}"
            )
        if nt.auto_left_category is not None:
            if nt.auto_left_category not in _CATEGORY_NAMES:
                result.add_error(
                    f"'{config.name}': named transition '{nt.action}' has unknown "
                    f"left category '{nt.auto_left_category}'"
                )
            if nt.target_status != MemberStatus.LEFT.value:
                result.add_error(
                    f"'{config.name}': named transition '{nt.action}' sets a left "
                    f"category on an edge into {nt.target_status}"
                )


def _validate_cancellable(
    config: LifecycleConfig,
    edges: dict[str, frozenset[str]],
    result: ConfigValidationResult,
) -> None:
    for name in config.cancellable_statuses or ():
        if name not in edges:
            result.add_error(f"'{config.name}': cancellable status '{name}' is not declared")
        elif MemberStatus.LEFT.value not in edges[name]:
            result.add_error(
                f"'{config.name}': cancellable status '{name}' has no edge to LEFT"
            )


def _validate_limits(config: LifecycleConfig, result: ConfigValidationResult) -> None:
    if not 1 <= config.max_reason_length <= _REASON_COLUMN_LENGTH:
        result.add_error(
            f"'{config.name}': max_reason_length must be between 1 and "
            f"{_REASON_COLUMN_LENGTH}, got {config.max_reason_length}"
        )
    if config.version < 1:
        result.add_error(f"'{config.name}': version must be positive")
    if config.extra:
        result.add_warning(
            f"'{config.name}': unknown keys ignored: {sorted(config.extra)}"
        )
