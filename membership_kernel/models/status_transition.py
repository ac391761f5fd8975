"""
Module: membership_kernel.models.status_transition
Responsibility: ORM persistence for member status transition entries.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    CHAIN_WALK -- rows are written only as complete, re-chained logs produced
        by ChainRecalculator.

Audit relevance:
    effective_date is the business timeline, created_at the recording
    timeline; ``sequence`` orders entries recorded for the same date.
    Entries removed by recalculation are soft-deleted (deleted_at,
    deleted_by_id) and excluded from every load.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from membership_kernel.db.base import Base, SoftDeleteMixin, UUIDString


class StatusTransition(SoftDeleteMixin, Base):
    """One status transition of a member."""

    __tablename__ = "member_status_transitions"

    __table_args__ = (
        Index("idx_transition_member_order", "member_id", "effective_date", "sequence"),
        Index("idx_transition_deleted", "member_id", "deleted_at"),
    )

    member_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("members.id"),
        nullable=False,
    )

    from_status: Mapped[str] = mapped_column(String(20), nullable=False)

    to_status: Mapped[str] = mapped_column(String(20), nullable=False)

    reason: Mapped[str] = mapped_column(String(500), nullable=False)

    left_category: Mapped[str | None] = mapped_column(String(20), nullable=True)

    effective_date: Mapped[date] = mapped_column(Date, nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Recording order within the member; ties on effective_date break on it
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    membership_type_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    opened_period_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    closed_period_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<StatusTransition {self.effective_date} "
            f"{self.from_status}->{self.to_status}>"
        )
