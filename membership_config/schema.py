"""
Lifecycle configuration schema.

Defines the human-authored, reviewable source artifact for a club's member
lifecycle.  YAML files in ``membership_config/sets`` are parsed into these
types by the loader, checked by the validator and turned into kernel
objects by the bridges.

Status names are kept as plain strings here; the validator checks them
against ``MemberStatus`` and the bridges convert them.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class NamedTransitionDef:
    """A named lifecycle action on one edge of the status graph."""

    from_status: str
    target_status: str
    action: str
    destructive: bool = False
    auto_left_category: str | None = None


@dataclass(frozen=True)
class LifecycleConfig:
    """
    One lifecycle configuration set.

    Either ``status_graph`` names a built-in graph preset, or
    ``transitions`` declares the graph explicitly (status -> reachable
    statuses).  ``period_statuses`` overrides the preset's period statuses
    when given.

    Attributes:
        name: Set identifier (file stem), e.g. "default".
        version: Configuration version number.
        checksum: SHA-256 of the YAML file bytes.
        status_graph: Name of a built-in graph preset.
        transitions: Explicit graph as (status, targets) pairs.
        named_transitions: Named actions for the explicit graph.
        initial_status: Status of a newly registered member.
        period_statuses: Statuses that require an open membership period.
        cancellable_statuses: Statuses that accept a formal cancellation.
        primary_targets: Most common next status per status.
        default_membership_type: Type given to periods opened without one.
        one_change_per_day: Reject a second status change on one date.
        max_reason_length: Upper bound for transition reasons.
        description: Free text for reviewers.
    """

    name: str
    version: int
    checksum: str
    status_graph: str | None = None
    transitions: tuple[tuple[str, tuple[str, ...]], ...] | None = None
    named_transitions: tuple[NamedTransitionDef, ...] = ()
    initial_status: str | None = None
    period_statuses: tuple[str, ...] | None = None
    cancellable_statuses: tuple[str, ...] | None = None
    primary_targets: tuple[tuple[str, str], ...] = ()
    default_membership_type: str | None = None
    one_change_per_day: bool = True
    max_reason_length: int = 500
    description: str = ""
    extra: dict = field(default_factory=dict, compare=False, hash=False)
