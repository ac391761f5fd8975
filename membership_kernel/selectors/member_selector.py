"""
Module: membership_kernel.selectors.member_selector
Responsibility: Read-only query access to members, their live status
    transitions and their membership periods.
Architecture position: Kernel > Selectors.  May import from models/,
    domain DTOs and selectors/base.py.

Invariants enforced:
    - Read-only: No mutations performed on any queried data.
    - Soft-deleted transitions are never returned.
    - Transitions come back in walk order (effective_date, sequence).

Failure modes:
    - MemberNotFoundError from get_member when the id is unknown.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from membership_kernel.domain.dtos import (
    MemberInfo,
    MembershipPeriodInfo,
    StatusTransitionInfo,
)
from membership_kernel.exceptions import MemberNotFoundError
from membership_kernel.models.member import Member
from membership_kernel.models.membership_period import MembershipPeriod
from membership_kernel.models.status_transition import StatusTransition
from membership_kernel.selectors.base import BaseSelector


class MemberSelector(BaseSelector[Member]):
    """Reads lifecycle state of members."""

    def get_member(self, member_id: UUID, *, for_update: bool = False) -> MemberInfo:
        """Load a member, optionally taking the row lock of the current transaction."""
        stmt = select(Member).where(Member.id == member_id)
        if for_update:
            stmt = stmt.with_for_update()
        member = self.session.execute(stmt).scalar_one_or_none()
        if member is None:
            raise MemberNotFoundError(str(member_id))
        return MemberInfo.from_model(member)

    def get_transitions(self, member_id: UUID) -> list[StatusTransitionInfo]:
        rows = self.session.execute(
            select(StatusTransition)
            .where(
                StatusTransition.member_id == member_id,
                StatusTransition.deleted_at.is_(None),
            )
            .order_by(StatusTransition.effective_date, StatusTransition.sequence)
        ).scalars().all()
        return [StatusTransitionInfo.from_model(row) for row in rows]

    def get_periods(self, member_id: UUID) -> list[MembershipPeriodInfo]:
        rows = self.session.execute(
            select(MembershipPeriod)
            .where(MembershipPeriod.member_id == member_id)
            .order_by(MembershipPeriod.join_date)
        ).scalars().all()
        return [MembershipPeriodInfo.from_model(row) for row in rows]

    def due_cancellations(self, as_of: date, exclude_status: str) -> list[UUID]:
        """Members whose cancellation date has arrived and who are not yet in ``exclude_status``."""
        return list(
            self.session.execute(
                select(Member.id)
                .where(
                    Member.cancellation_date.is_not(None),
                    Member.cancellation_date <= as_of,
                    Member.current_status != exclude_status,
                )
                .order_by(Member.cancellation_date, Member.id)
            ).scalars().all()
        )
