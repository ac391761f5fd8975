"""
Pure domain layer.

This module contains the lifecycle value types and logic with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time (injected through Clock)
- I/O

All domain objects are immutable and deterministic.
"""

from membership_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from membership_kernel.domain.consistency import (
    InvariantViolation,
    assert_member_invariants,
    find_invariant_violations,
)
from membership_kernel.domain.dtos import (
    MemberInfo,
    MembershipPeriodInfo,
    MemberSnapshot,
    StatusTransitionInfo,
    TimelineItem,
    TimelineItemKind,
    timeline_fingerprint,
)
from membership_kernel.domain.period_ledger import PeriodLedger
from membership_kernel.domain.recalculation import (
    ChainRecalculator,
    DeleteTransition,
    EditTransition,
    InsertTransition,
    RecalculationPlan,
    TransitionChange,
)
from membership_kernel.domain.status_graph import (
    CLUB_GRAPH,
    STANDARD_GRAPH,
    STATUS_GRAPH_PRESETS,
    NamedTransition,
    StatusGraph,
)
from membership_kernel.domain.statuses import (
    SYSTEM_ACTOR_ID,
    LeftCategory,
    MemberStatus,
    TransitionKind,
)
from membership_kernel.domain.timeline import build_timeline
from membership_kernel.domain.transition_log import TransitionLog

__all__ = [
    "CLUB_GRAPH",
    "STANDARD_GRAPH",
    "STATUS_GRAPH_PRESETS",
    "SYSTEM_ACTOR_ID",
    "ChainRecalculator",
    "Clock",
    "DeleteTransition",
    "DeterministicClock",
    "EditTransition",
    "InsertTransition",
    "InvariantViolation",
    "LeftCategory",
    "MemberInfo",
    "MemberSnapshot",
    "MemberStatus",
    "MembershipPeriodInfo",
    "NamedTransition",
    "PeriodLedger",
    "RecalculationPlan",
    "StatusGraph",
    "StatusTransitionInfo",
    "SystemClock",
    "TimelineItem",
    "TimelineItemKind",
    "TransitionChange",
    "TransitionKind",
    "TransitionLog",
    "assert_member_invariants",
    "build_timeline",
    "find_invariant_violations",
    "timeline_fingerprint",
]
