"""
PeriodLedger -- a member's membership periods as an immutable value.

Responsibility:
    Holds one member's membership periods and implements the period
    operations (create, close, reopen) plus the interval queries used by
    both user-facing validation and chain recalculation.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Every mutating
    operation returns a new ledger together with the affected period; the
    caller decides whether to persist it.

Invariants enforced:
    NO_OVERLAP          -- create() and reopen() reject intersecting ranges.
    SINGLE_OPEN_PERIOD  -- follows from NO_OVERLAP: two open periods always
                           intersect.

Failure modes:
    - OverlapError when a new or reopened range intersects another period.
    - InvalidRangeError when leave_date < join_date.
    - NotOpenError when closing a period that already has a leave date.
    - PeriodNotFoundError for unknown period ids.

Interval convention:
    Periods are half-open ``[join_date, leave_date)``.  Closing a period and
    opening the next one on the same date therefore does not overlap, which
    is how a membership type change is modeled.  This replaces the inclusive
    ``start <= other_end and other_start <= end`` check, under which such
    back-to-back periods would collide.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import date, datetime
from uuid import UUID, uuid4

from membership_kernel.domain.dtos import MembershipPeriodInfo
from membership_kernel.exceptions import (
    InvalidRangeError,
    NotOpenError,
    OverlapError,
    PeriodNotFoundError,
)


class PeriodLedger:
    """Ordered, non-overlapping membership periods of one member."""

    def __init__(self, member_id: UUID, periods: Iterable[MembershipPeriodInfo] = ()):
        self.member_id = member_id
        self._periods: tuple[MembershipPeriodInfo, ...] = tuple(
            sorted(periods, key=lambda p: (p.join_date, str(p.id)))
        )

    def __iter__(self):
        return iter(self._periods)

    def __len__(self) -> int:
        return len(self._periods)

    @property
    def periods(self) -> tuple[MembershipPeriodInfo, ...]:
        return self._periods

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, period_id: UUID) -> MembershipPeriodInfo:
        for period in self._periods:
            if period.id == period_id:
                return period
        raise PeriodNotFoundError(str(period_id))

    def contains(self, period_id: UUID) -> bool:
        return any(p.id == period_id for p in self._periods)

    def find_overlapping(
        self,
        start: date,
        end: date | None,
        exclude_period_id: UUID | None = None,
    ) -> list[MembershipPeriodInfo]:
        """Periods intersecting ``[start, end)``; ``end=None`` is unbounded."""
        return [
            p for p in self._periods
            if p.id != exclude_period_id and p.overlaps(start, end)
        ]

    def find_open(self) -> MembershipPeriodInfo | None:
        """The open period, or None.  With several (a broken ledger) the latest."""
        open_periods = [p for p in self._periods if p.is_open]
        return open_periods[-1] if open_periods else None

    def find_at(self, on_date: date) -> MembershipPeriodInfo | None:
        """The period whose ``[join_date, leave_date)`` contains ``on_date``."""
        covering = [p for p in self._periods if p.covers(on_date)]
        return covering[-1] if covering else None

    def open_periods(self) -> list[MembershipPeriodInfo]:
        return [p for p in self._periods if p.is_open]

    def visible_periods(self) -> list[MembershipPeriodInfo]:
        """Periods that cover at least one day."""
        return [p for p in self._periods if not p.is_void]

    def overlapping_pairs(self) -> list[tuple[MembershipPeriodInfo, MembershipPeriodInfo]]:
        pairs = []
        for i, first in enumerate(self._periods):
            for second in self._periods[i + 1:]:
                if first.overlaps(second.join_date, second.leave_date):
                    pairs.append((first, second))
        return pairs

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create(
        self,
        join_date: date,
        membership_type_id: str | None,
        notes: str | None = None,
        *,
        leave_date: date | None = None,
        period_id: UUID | None = None,
        now: datetime | None = None,
    ) -> tuple[PeriodLedger, MembershipPeriodInfo]:
        """Add a period starting at ``join_date``, open unless ``leave_date`` is given."""
        if leave_date is not None and leave_date < join_date:
            raise InvalidRangeError(join_date.isoformat(), leave_date.isoformat())
        self._check_free(join_date, leave_date, exclude_period_id=None)
        period = MembershipPeriodInfo(
            id=period_id or uuid4(),
            member_id=self.member_id,
            join_date=join_date,
            leave_date=leave_date,
            membership_type_id=membership_type_id,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        return PeriodLedger(self.member_id, (*self._periods, period)), period

    def close(
        self,
        period_id: UUID,
        leave_date: date,
        *,
        now: datetime | None = None,
    ) -> tuple[PeriodLedger, MembershipPeriodInfo]:
        """Set the leave date of an open period."""
        period = self.get(period_id)
        if period.leave_date is not None:
            raise NotOpenError(str(period_id), period.leave_date.isoformat())
        if leave_date < period.join_date:
            raise InvalidRangeError(
                period.join_date.isoformat(), leave_date.isoformat(), str(period_id)
            )
        closed = replace(period, leave_date=leave_date, updated_at=now or period.updated_at)
        return self.replace(closed), closed

    def reopen(
        self,
        period_id: UUID,
        *,
        now: datetime | None = None,
    ) -> tuple[PeriodLedger, MembershipPeriodInfo]:
        """Clear the leave date of a period."""
        period = self.get(period_id)
        if period.leave_date is None:
            return self, period
        self._check_free(period.join_date, None, exclude_period_id=period_id)
        reopened = replace(period, leave_date=None, updated_at=now or period.updated_at)
        return self.replace(reopened), reopened

    def replace(self, period: MembershipPeriodInfo) -> PeriodLedger:
        """Swap in a changed version of an existing period, unchecked."""
        self.get(period.id)
        return PeriodLedger(
            self.member_id,
            (period if p.id == period.id else p for p in self._periods),
        )

    def add(self, period: MembershipPeriodInfo) -> PeriodLedger:
        """Add a period as-is, unchecked."""
        return PeriodLedger(self.member_id, (*self._periods, period))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def check_no_overlap(self) -> None:
        """Raise OverlapError for the first pair of intersecting periods."""
        pairs = self.overlapping_pairs()
        if pairs:
            first, second = pairs[0]
            raise OverlapError(
                str(self.member_id),
                second.join_date.isoformat(),
                second.leave_date.isoformat() if second.leave_date else None,
                [str(first.id)],
            )

    def _check_free(
        self,
        start: date,
        end: date | None,
        exclude_period_id: UUID | None,
    ) -> None:
        conflicts = self.find_overlapping(start, end, exclude_period_id=exclude_period_id)
        if conflicts:
            raise OverlapError(
                str(self.member_id),
                start.isoformat(),
                end.isoformat() if end else None,
                [str(p.id) for p in conflicts],
            )
