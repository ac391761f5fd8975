"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable records that flow through the lifecycle engine:
    MembershipPeriodInfo, StatusTransitionInfo, MemberInfo, the MemberSnapshot
    that recalculation works on, and the read-side TimelineItem.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies, database access, and external services.
    from_model() class methods exist as boundary converters but are only
    invoked from the persistence layer (never from domain logic).

Invariants enforced:
    (none directly -- the records are the vocabulary the invariants are
    stated in; see membership_kernel.invariants)

Failure modes:
    - ValueError on a period whose notes exceed 1000 characters.

Audit relevance:
    StatusTransitionInfo keeps both timelines: effective_date is the business
    timeline, created_at/sequence the recording timeline.  The fingerprint
    of a MemberSnapshot identifies the exact timeline a plan was computed
    against.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from membership_kernel.domain.statuses import LeftCategory, MemberStatus, TransitionKind
from membership_kernel.utils.hashing import hash_payload

if TYPE_CHECKING:
    from membership_kernel.models.member import Member as MemberModel
    from membership_kernel.models.membership_period import (
        MembershipPeriod as MembershipPeriodModel,
    )
    from membership_kernel.models.status_transition import (
        StatusTransition as StatusTransitionModel,
    )

MAX_NOTES_LENGTH = 1000


@dataclass(frozen=True)
class MembershipPeriodInfo:
    """
    Pure domain representation of a membership period.

    Contract:
        Half-open range ``[join_date, leave_date)``; an open period has no
        leave_date and extends to +infinity.  A period whose leave_date
        equals its join_date is void and covers no day.

    Guarantees:
        - Immutable (frozen dataclass)
        - leave_date ordering is NOT checked here (PeriodLedger does that)
    """

    id: UUID
    member_id: UUID
    join_date: date
    leave_date: date | None = None
    membership_type_id: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.notes is not None and len(self.notes) > MAX_NOTES_LENGTH:
            raise ValueError(
                f"Period notes must not exceed {MAX_NOTES_LENGTH} characters"
            )

    @property
    def is_open(self) -> bool:
        return self.leave_date is None

    @property
    def is_void(self) -> bool:
        return self.leave_date is not None and self.leave_date == self.join_date

    @property
    def end(self) -> date:
        """Exclusive upper bound; ``date.max`` for an open period."""
        return self.leave_date if self.leave_date is not None else date.max

    def covers(self, on_date: date) -> bool:
        return self.join_date <= on_date < self.end

    def overlaps(self, start: date, end: date | None) -> bool:
        other_end = end if end is not None else date.max
        if self.is_void or start == other_end:
            return False
        return self.join_date < other_end and start < self.end

    def state_key(self) -> dict:
        """Fields that define the period, excluding audit timestamps."""
        return {
            "id": self.id,
            "join_date": self.join_date,
            "leave_date": self.leave_date,
            "membership_type_id": self.membership_type_id,
            "notes": self.notes,
        }

    @classmethod
    def from_model(cls, model: MembershipPeriodModel) -> MembershipPeriodInfo:
        return cls(
            id=model.id,
            member_id=model.member_id,
            join_date=model.join_date,
            leave_date=model.leave_date,
            membership_type_id=model.membership_type_id,
            notes=model.notes,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


@dataclass(frozen=True)
class StatusTransitionInfo:
    """
    Pure domain representation of one status transition entry.

    Contract:
        Ordered by ``(effective_date, sequence)``.  ``opened_period_id`` and
        ``closed_period_id`` name the period boundary this entry produced;
        boundaries without such a link are manual.

    Guarantees:
        - Immutable (frozen dataclass)
        - left_category is set iff to_status is LEFT (TransitionLog enforces)
    """

    id: UUID
    member_id: UUID
    from_status: MemberStatus
    to_status: MemberStatus
    reason: str
    effective_date: date
    actor_id: UUID
    sequence: int
    kind: TransitionKind = TransitionKind.STATUS_CHANGE
    left_category: LeftCategory | None = None
    membership_type_id: str | None = None
    opened_period_id: UUID | None = None
    closed_period_id: UUID | None = None
    created_at: datetime | None = None

    @property
    def is_self_transition(self) -> bool:
        return self.from_status == self.to_status

    @property
    def sort_key(self) -> tuple[date, int]:
        return (self.effective_date, self.sequence)

    def state_key(self) -> dict:
        """Fields that define the entry, excluding audit timestamps."""
        return {
            "id": self.id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "reason": self.reason,
            "effective_date": self.effective_date,
            "actor_id": self.actor_id,
            "sequence": self.sequence,
            "kind": self.kind,
            "left_category": self.left_category,
            "membership_type_id": self.membership_type_id,
            "opened_period_id": self.opened_period_id,
            "closed_period_id": self.closed_period_id,
        }

    @classmethod
    def from_model(cls, model: StatusTransitionModel) -> StatusTransitionInfo:
        return cls(
            id=model.id,
            member_id=model.member_id,
            from_status=MemberStatus(model.from_status),
            to_status=MemberStatus(model.to_status),
            reason=model.reason,
            effective_date=model.effective_date,
            actor_id=model.actor_id,
            sequence=model.sequence,
            kind=TransitionKind(model.kind),
            left_category=LeftCategory(model.left_category) if model.left_category else None,
            membership_type_id=model.membership_type_id,
            opened_period_id=model.opened_period_id,
            closed_period_id=model.closed_period_id,
            created_at=model.created_at,
        )


@dataclass(frozen=True)
class MemberInfo:
    """
    Pure domain representation of a member's lifecycle anchor.

    current_status is a cache of the derived status; the TransitionLog is
    the source of truth.  version increments on every committed change.
    """

    id: UUID
    display_name: str
    initial_status: MemberStatus
    current_status: MemberStatus
    version: int = 1
    club_id: str | None = None
    status_changed_at: datetime | None = None
    status_changed_by_id: UUID | None = None
    status_change_reason: str | None = None
    cancellation_date: date | None = None
    cancellation_received_at: date | None = None
    created_at: datetime | None = None

    @property
    def has_formal_cancellation(self) -> bool:
        return self.cancellation_received_at is not None

    @classmethod
    def from_model(cls, model: MemberModel) -> MemberInfo:
        return cls(
            id=model.id,
            display_name=model.display_name,
            initial_status=MemberStatus(model.initial_status),
            current_status=MemberStatus(model.current_status),
            version=model.version,
            club_id=model.club_id,
            status_changed_at=model.status_changed_at,
            status_changed_by_id=model.status_changed_by_id,
            status_change_reason=model.status_change_reason,
            cancellation_date=model.cancellation_date,
            cancellation_received_at=model.cancellation_received_at,
            created_at=model.created_at,
        )


def timeline_fingerprint(
    member_id: UUID,
    initial_status: MemberStatus,
    transitions: tuple[StatusTransitionInfo, ...] | list[StatusTransitionInfo],
    periods: tuple[MembershipPeriodInfo, ...] | list[MembershipPeriodInfo],
) -> str:
    """SHA-256 over a member's timeline, independent of record order and timestamps.

    The member id is part of the payload, so two members with identical
    histories never share a fingerprint or the record ids derived from it.
    """
    return hash_payload({
        "member_id": member_id,
        "initial_status": initial_status,
        "transitions": sorted(
            (t.state_key() for t in transitions), key=lambda k: str(k["id"])
        ),
        "periods": sorted(
            (p.state_key() for p in periods), key=lambda k: str(k["id"])
        ),
    })


@dataclass(frozen=True)
class MemberSnapshot:
    """
    Everything recalculation needs about one member, read at one instant.

    Contract:
        transitions are in walk order, periods in join_date order.
    """

    member: MemberInfo
    transitions: tuple[StatusTransitionInfo, ...]
    periods: tuple[MembershipPeriodInfo, ...]

    @classmethod
    def of(
        cls,
        member: MemberInfo,
        transitions: list[StatusTransitionInfo] | tuple[StatusTransitionInfo, ...],
        periods: list[MembershipPeriodInfo] | tuple[MembershipPeriodInfo, ...],
    ) -> MemberSnapshot:
        return cls(
            member=member,
            transitions=tuple(sorted(transitions, key=lambda t: t.sort_key)),
            periods=tuple(sorted(periods, key=lambda p: (p.join_date, str(p.id)))),
        )

    @property
    def member_id(self) -> UUID:
        return self.member.id

    @property
    def version(self) -> int:
        return self.member.version

    @property
    def initial_status(self) -> MemberStatus:
        return self.member.initial_status

    @property
    def fingerprint(self) -> str:
        return timeline_fingerprint(
            self.member_id, self.initial_status, self.transitions, self.periods
        )


class TimelineItemKind(str, Enum):
    """What a timeline row shows."""

    TRANSITION = "TRANSITION"
    PERIOD_START = "PERIOD_START"
    PERIOD_END = "PERIOD_END"


@dataclass(frozen=True)
class TimelineItem:
    """One row of the merged, date-sorted member timeline."""

    on_date: date
    kind: TimelineItemKind
    transition: StatusTransitionInfo | None = None
    period: MembershipPeriodInfo | None = None
