"""
Module: membership_kernel.db.base
Responsibility: Declarative base, column types and mixins shared by the
    member, membership period and status transition tables.
Architecture position: Kernel > DB.  Lowest import target of the kernel;
    must not import from models/, services/, selectors/ or domain/.

Invariants enforced:
    - Primary keys are UUIDs.  Rows written from domain records keep the
      record's id, so ids derived during recalculation survive a reload.
    - Business dates are plain DATE columns; instants are timezone-aware.
    - Constraint names follow one convention, so migrations generated
      against SQLite and PostgreSQL agree.

Audit relevance:
    TrackedBase records who created and last changed a row.  SoftDeleteMixin
    records who removed it; soft-deleted rows stay in the table.
"""

from datetime import date, datetime
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, MetaData, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_N_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """UUID kept as a 36 character string, portable across SQLite and PostgreSQL."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    """
    Declarative base for the membership tables.

    Annotation map:
        datetime -> DateTime(timezone=True)
        date     -> Date
        UUID     -> UUIDString
        int      -> BigInteger
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        date: Date(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Adds creation and last-change stamps; ``created_by_id`` is mandatory."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by_id: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString(), nullable=True)


class SoftDeleteMixin:
    """Rows are hidden by stamping ``deleted_at`` instead of being removed."""

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    deleted_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString(), nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


UUID = PyUUID
