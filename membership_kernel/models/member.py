"""
Module: membership_kernel.models.member
Responsibility: ORM persistence for the member lifecycle anchor -- identity,
    the cached current status, the optimistic version and the formal
    cancellation fields.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    DERIVED_STATUS -- current_status is a cache written only by
        LifecycleEngine commits; it is never set directly by callers.
    Single writer per member -- every lifecycle commit locks this row
        (SELECT ... FOR UPDATE) and bumps ``version`` with a compare-and-set
        UPDATE.

Failure modes:
    - ConcurrentModificationError (raised by the store) when the version
      compare-and-set matches no row.

Audit relevance:
    status_changed_at / status_changed_by_id / status_change_reason record
    who moved the member last; the full history lives in
    member_status_transitions.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from membership_kernel.db.base import TrackedBase, UUIDString


class Member(TrackedBase):
    """
    A club member as seen by the lifecycle engine.

    Non-goals:
        - Contact data, households and fees live outside the kernel.
    """

    __tablename__ = "members"

    __table_args__ = (
        Index("idx_member_club_status", "club_id", "current_status"),
        Index("idx_member_cancellation", "cancellation_date"),
    )

    club_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    display_name: Mapped[str] = mapped_column(String(200), nullable=False)

    initial_status: Mapped[str] = mapped_column(String(20), nullable=False)

    current_status: Mapped[str] = mapped_column(String(20), nullable=False)

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    status_changed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    status_changed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    status_change_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Formal cancellation: effective date and the date the notice arrived
    cancellation_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    cancellation_received_at: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<Member {self.id}: {self.current_status} v{self.version}>"
