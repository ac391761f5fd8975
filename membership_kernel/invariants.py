"""
Lifecycle Invariants Contract.

These invariants hold for every member after every committed operation.
They are not configurable: a lifecycle configuration decides which statuses
exist and which of them require a membership period, never whether these
rules apply.

This module exists solely to declare the invariants explicitly. The checks
live in membership_kernel.domain.consistency; enforcement is distributed
across PeriodLedger, ChainRecalculator and LifecycleEngine.
"""

from enum import Enum, unique


@unique
class LifecycleInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    CHAIN_WALK = "chain_walk"
    """Transitions ordered by (effective_date, sequence) walk the status
    graph: each from_status equals the predecessor's to_status, or the
    member's initial status for the first entry."""

    DERIVED_STATUS = "derived_status"
    """The current status is the to_status of the last entry dated on or
    before today. Member.current_status is only a cache of it."""

    PERIOD_MATCHES_STATUS = "period_matches_status"
    """Exactly one open membership period exists iff the status reached at
    the end of the walk requires a period."""

    NO_OVERLAP = "no_overlap"
    """No two membership periods of a member overlap (half-open ranges)."""

    SINGLE_OPEN_PERIOD = "single_open_period"
    """At most one membership period of a member is open."""


# All invariants as a frozenset for programmatic checks.
ALL_LIFECYCLE_INVARIANTS: frozenset[LifecycleInvariant] = frozenset(LifecycleInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = ("membership_config",)
