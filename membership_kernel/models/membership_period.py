"""
Module: membership_kernel.models.membership_period
Responsibility: ORM persistence for membership periods -- the date ranges
    during which a person is a member, each with a membership type.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    NO_OVERLAP, SINGLE_OPEN_PERIOD -- checked by PeriodLedger and
        ChainRecalculator before any write; this model does NOT enforce
        them itself.

Audit relevance:
    Rows are never deleted.  A period whose opening transition disappeared
    is voided (leave_date == join_date) so its id stays referenced.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from membership_kernel.db.base import TrackedBase, UUIDString


class MembershipPeriod(TrackedBase):
    """A half-open ``[join_date, leave_date)`` membership range."""

    __tablename__ = "membership_periods"

    __table_args__ = (
        Index("idx_period_member_join", "member_id", "join_date"),
    )

    member_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("members.id"),
        nullable=False,
    )

    join_date: Mapped[date] = mapped_column(Date, nullable=False)

    # NULL means open (current membership)
    leave_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    membership_type_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    def __repr__(self) -> str:
        end = self.leave_date.isoformat() if self.leave_date else "open"
        return f"<MembershipPeriod {self.join_date}..{end} {self.membership_type_id}>"

    @property
    def is_open(self) -> bool:
        return self.leave_date is None
