"""
MemberWriter -- persists a member's lifecycle state to the SQL tables.

Responsibility:
    Writes the outcome of a lifecycle change: the member row (with its
    optimistic version check), the full set of live status transitions and
    the full set of membership periods.  The writer never decides what the
    state should be; LifecycleEngine hands it the final records of a
    RecalculationPlan.

Architecture position:
    Kernel > Services -- imperative shell.  Used only by
    SqlAlchemyMemberStore, inside the session it opened for the member lock.

Invariants enforced:
    - Flush-only: never commits or rolls back the session.
    - Version check: the member UPDATE carries ``WHERE version = expected``;
      zero affected rows raise ConcurrentModificationError.
    - Transitions missing from the new set are soft-deleted (``deleted_at``,
      ``deleted_by_id``), never removed.
    - Periods are upserted and never deleted; recalculation voids them.

Failure modes:
    - ConcurrentModificationError when the stored version differs.
    - MemberNotFoundError when updating an unknown member.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select, update

from membership_kernel.domain.clock import Clock, SystemClock
from membership_kernel.domain.dtos import (
    MemberInfo,
    MembershipPeriodInfo,
    StatusTransitionInfo,
)
from membership_kernel.domain.statuses import SYSTEM_ACTOR_ID
from membership_kernel.exceptions import ConcurrentModificationError, MemberNotFoundError
from membership_kernel.logging_config import get_logger
from membership_kernel.models.member import Member
from membership_kernel.models.membership_period import MembershipPeriod
from membership_kernel.models.status_transition import StatusTransition
from membership_kernel.services.base import BaseService

logger = get_logger("services.member_writer")


class MemberWriter(BaseService[Member]):
    """Flush-only writer for members, transitions and periods."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def insert_member(self, member: MemberInfo, actor_id: UUID | None = None) -> MemberInfo:
        row = Member(
            id=member.id,
            club_id=member.club_id,
            display_name=member.display_name,
            initial_status=member.initial_status.value,
            current_status=member.current_status.value,
            version=member.version,
            status_changed_at=member.status_changed_at,
            status_changed_by_id=member.status_changed_by_id,
            status_change_reason=member.status_change_reason,
            cancellation_date=member.cancellation_date,
            cancellation_received_at=member.cancellation_received_at,
            created_by_id=actor_id or member.status_changed_by_id or SYSTEM_ACTOR_ID,
        )
        if member.created_at is not None:
            row.created_at = member.created_at
        self.session.add(row)
        self.session.flush()
        return MemberInfo.from_model(row)

    def update_member(self, member: MemberInfo, expected_version: int) -> MemberInfo:
        """Compare-and-set update of the member row; bumps the version."""
        result = self.session.execute(
            update(Member)
            .where(Member.id == member.id, Member.version == expected_version)
            .values(
                club_id=member.club_id,
                display_name=member.display_name,
                current_status=member.current_status.value,
                version=expected_version + 1,
                status_changed_at=member.status_changed_at,
                status_changed_by_id=member.status_changed_by_id,
                status_change_reason=member.status_change_reason,
                cancellation_date=member.cancellation_date,
                cancellation_received_at=member.cancellation_received_at,
                updated_by_id=member.status_changed_by_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            actual = self.session.execute(
                select(Member.version).where(Member.id == member.id)
            ).scalar_one_or_none()
            if actual is None:
                raise MemberNotFoundError(str(member.id))
            logger.warning(
                "member_version_conflict",
                extra={
                    "member_id": str(member.id),
                    "expected_version": expected_version,
                    "actual_version": actual,
                },
            )
            raise ConcurrentModificationError(str(member.id), expected_version, actual)
        self.session.flush()
        row = self.session.get(Member, member.id, populate_existing=True)
        return MemberInfo.from_model(row)

    def write_transitions(
        self,
        member_id: UUID,
        transitions: Iterable[StatusTransitionInfo],
        actor_id: UUID | None = None,
    ) -> None:
        """Make the live transitions of a member equal ``transitions``."""
        existing = {
            row.id: row
            for row in self.session.execute(
                select(StatusTransition).where(StatusTransition.member_id == member_id)
            ).scalars()
        }
        keep: set[UUID] = set()
        for entry in transitions:
            keep.add(entry.id)
            row = existing.get(entry.id)
            if row is None:
                row = StatusTransition(id=entry.id, member_id=member_id)
                self.session.add(row)
            row.from_status = entry.from_status.value
            row.to_status = entry.to_status.value
            row.reason = entry.reason
            row.left_category = entry.left_category.value if entry.left_category else None
            row.effective_date = entry.effective_date
            row.actor_id = entry.actor_id
            row.created_at = entry.created_at or row.created_at or self._clock.now()
            row.sequence = entry.sequence
            row.kind = entry.kind.value
            row.membership_type_id = entry.membership_type_id
            row.opened_period_id = entry.opened_period_id
            row.closed_period_id = entry.closed_period_id
            row.deleted_at = None
            row.deleted_by_id = None

        removed = 0
        for row_id, row in existing.items():
            if row_id in keep or row.is_deleted:
                continue
            row.deleted_at = self._clock.now()
            row.deleted_by_id = actor_id or SYSTEM_ACTOR_ID
            removed += 1
        self.session.flush()
        if removed:
            logger.info(
                "transitions_soft_deleted",
                extra={"member_id": str(member_id), "count": removed},
            )

    def write_periods(
        self,
        member_id: UUID,
        periods: Iterable[MembershipPeriodInfo],
        actor_id: UUID | None = None,
    ) -> None:
        """Upsert ``periods``; periods not listed are left untouched."""
        existing = {
            row.id: row
            for row in self.session.execute(
                select(MembershipPeriod).where(MembershipPeriod.member_id == member_id)
            ).scalars()
        }
        for period in periods:
            row = existing.get(period.id)
            if row is None:
                row = MembershipPeriod(
                    id=period.id,
                    member_id=member_id,
                    created_by_id=actor_id or SYSTEM_ACTOR_ID,
                )
                if period.created_at is not None:
                    row.created_at = period.created_at
                self.session.add(row)
            elif (
                row.join_date == period.join_date
                and row.leave_date == period.leave_date
                and row.membership_type_id == period.membership_type_id
                and row.notes == period.notes
            ):
                continue
            else:
                row.updated_by_id = actor_id
            row.join_date = period.join_date
            row.leave_date = period.leave_date
            row.membership_type_id = period.membership_type_id
            row.notes = period.notes
        self.session.flush()
