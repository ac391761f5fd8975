"""
Consistency checks for a member's timeline.

Pure functions that evaluate the lifecycle invariants over plain records.
ChainRecalculator and LifecycleEngine call ``assert_member_invariants``
before anything is written; tests call ``find_invariant_violations``
directly.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from membership_kernel.domain.dtos import MembershipPeriodInfo, StatusTransitionInfo
from membership_kernel.domain.period_ledger import PeriodLedger
from membership_kernel.domain.status_graph import StatusGraph
from membership_kernel.domain.statuses import MemberStatus
from membership_kernel.exceptions import LifecycleInvariantError
from membership_kernel.invariants import LifecycleInvariant


@dataclass(frozen=True)
class InvariantViolation:
    invariant: LifecycleInvariant
    detail: str


def find_invariant_violations(
    graph: StatusGraph,
    member_id: UUID,
    initial_status: MemberStatus,
    transitions: Iterable[StatusTransitionInfo],
    periods: Iterable[MembershipPeriodInfo],
) -> list[InvariantViolation]:
    """Every invariant a timeline breaks, in declaration order."""
    violations: list[InvariantViolation] = []
    entries = sorted(transitions, key=lambda e: e.sort_key)
    ledger = PeriodLedger(member_id, periods)

    status = initial_status
    for entry in entries:
        if entry.from_status != status:
            violations.append(InvariantViolation(
                LifecycleInvariant.CHAIN_WALK,
                f"entry {entry.id} on {entry.effective_date} starts at "
                f"{entry.from_status.value}, predecessor ends at {status.value}",
            ))
        elif not graph.can_transition(entry.from_status, entry.to_status):
            violations.append(InvariantViolation(
                LifecycleInvariant.CHAIN_WALK,
                f"entry {entry.id} uses missing edge "
                f"{entry.from_status.value} -> {entry.to_status.value}",
            ))
        status = entry.to_status

    open_periods = ledger.open_periods()
    if graph.requires_period(status) and len(open_periods) != 1:
        violations.append(InvariantViolation(
            LifecycleInvariant.PERIOD_MATCHES_STATUS,
            f"status {status.value} requires one open period, found {len(open_periods)}",
        ))
    elif not graph.requires_period(status) and open_periods:
        violations.append(InvariantViolation(
            LifecycleInvariant.PERIOD_MATCHES_STATUS,
            f"status {status.value} has open period {open_periods[0].id}",
        ))

    for first, second in ledger.overlapping_pairs():
        violations.append(InvariantViolation(
            LifecycleInvariant.NO_OVERLAP,
            f"periods {first.id} and {second.id} overlap",
        ))

    if len(open_periods) > 1:
        violations.append(InvariantViolation(
            LifecycleInvariant.SINGLE_OPEN_PERIOD,
            f"{len(open_periods)} open periods",
        ))
    return violations


def assert_member_invariants(
    graph: StatusGraph,
    member_id: UUID,
    initial_status: MemberStatus,
    transitions: Iterable[StatusTransitionInfo],
    periods: Iterable[MembershipPeriodInfo],
) -> None:
    """Raise for the first broken invariant.

    Overlaps raise OverlapError so callers see the same error the ledger
    raises for a direct period edit.
    """
    periods = tuple(periods)
    PeriodLedger(member_id, periods).check_no_overlap()
    violations = find_invariant_violations(
        graph, member_id, initial_status, transitions, periods
    )
    if violations:
        first = violations[0]
        raise LifecycleInvariantError(first.invariant.value, str(member_id), first.detail)
