"""
MemberStore -- the persistence port of the lifecycle engine.

Responsibility:
    Declares the storage operations LifecycleEngine needs and provides two
    implementations: an in-memory store for tests and embedded use, and a
    SQLAlchemy store backed by the tables in ``membership_kernel.models``.

Architecture position:
    Kernel > Services -- imperative shell.  LifecycleEngine depends on the
    ``MemberStore`` protocol only.

Invariants enforced:
    - Single writer per member: ``with_member_lock`` serializes mutations of
      one member.  In memory: a per-member ``RLock``.  SQL: ``SELECT ... FOR
      UPDATE`` on the member row plus the version check in the UPDATE.
    - All-or-nothing: an exception inside ``with_member_lock`` discards every
      write made under it (in-memory rollback copy, SQL transaction).
    - Loads return transitions in walk order and never return deleted ones.

Failure modes:
    - MemberNotFoundError for unknown members.
    - ConcurrentModificationError from ``save_member`` on a version mismatch.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import replace
from datetime import date
from typing import Protocol, TypeVar, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from membership_kernel.db.engine import get_session_factory, session_scope
from membership_kernel.domain.clock import Clock, SystemClock
from membership_kernel.domain.dtos import (
    MemberInfo,
    MembershipPeriodInfo,
    StatusTransitionInfo,
)
from membership_kernel.domain.statuses import MemberStatus
from membership_kernel.exceptions import ConcurrentModificationError, MemberNotFoundError
from membership_kernel.logging_config import get_logger
from membership_kernel.selectors.member_selector import MemberSelector
from membership_kernel.services.member_writer import MemberWriter

logger = get_logger("services.member_store")

T = TypeVar("T")


@runtime_checkable
class MemberStore(Protocol):
    """Storage operations the lifecycle engine relies on."""

    def add_member(self, member: MemberInfo) -> MemberInfo: ...

    def load_member(self, member_id: UUID) -> MemberInfo: ...

    def save_member(self, member: MemberInfo, expected_version: int) -> MemberInfo: ...

    def load_transitions(self, member_id: UUID) -> list[StatusTransitionInfo]: ...

    def save_transitions(
        self,
        member_id: UUID,
        transitions: Iterable[StatusTransitionInfo],
        actor_id: UUID | None = None,
    ) -> None: ...

    def load_periods(self, member_id: UUID) -> list[MembershipPeriodInfo]: ...

    def save_periods(
        self,
        member_id: UUID,
        periods: Iterable[MembershipPeriodInfo],
        actor_id: UUID | None = None,
    ) -> None: ...

    def with_member_lock(self, member_id: UUID, fn: Callable[[], T]) -> T: ...

    def find_due_cancellations(self, as_of: date) -> list[UUID]: ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryMemberStore:
    """
    Dict-backed MemberStore.

    Guarantees:
        - Thread-safe: one ``RLock`` per member, plus a registry lock.
        - An exception raised inside ``with_member_lock`` restores the
          member's records to what they were when the lock was taken.
    """

    def __init__(self) -> None:
        self._members: dict[UUID, MemberInfo] = {}
        self._transitions: dict[UUID, dict[UUID, StatusTransitionInfo]] = {}
        self._periods: dict[UUID, dict[UUID, MembershipPeriodInfo]] = {}
        self._locks: dict[UUID, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, member_id: UUID) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(member_id)
            if lock is None:
                lock = self._locks[member_id] = threading.RLock()
            return lock

    def _require(self, member_id: UUID) -> MemberInfo:
        member = self._members.get(member_id)
        if member is None:
            raise MemberNotFoundError(str(member_id))
        return member

    def add_member(self, member: MemberInfo) -> MemberInfo:
        with self._registry_lock:
            if member.id in self._members:
                raise ValueError(f"Member {member.id} already exists")
            self._members[member.id] = member
            self._transitions[member.id] = {}
            self._periods[member.id] = {}
        return member

    def load_member(self, member_id: UUID) -> MemberInfo:
        return self._require(member_id)

    def save_member(self, member: MemberInfo, expected_version: int) -> MemberInfo:
        with self._lock_for(member.id):
            stored = self._require(member.id)
            if stored.version != expected_version:
                raise ConcurrentModificationError(
                    str(member.id), expected_version, stored.version
                )
            saved = replace(member, version=expected_version + 1)
            self._members[member.id] = saved
            return saved

    def load_transitions(self, member_id: UUID) -> list[StatusTransitionInfo]:
        self._require(member_id)
        return sorted(self._transitions[member_id].values(), key=lambda t: t.sort_key)

    def save_transitions(
        self,
        member_id: UUID,
        transitions: Iterable[StatusTransitionInfo],
        actor_id: UUID | None = None,
    ) -> None:
        self._require(member_id)
        self._transitions[member_id] = {t.id: t for t in transitions}

    def load_periods(self, member_id: UUID) -> list[MembershipPeriodInfo]:
        self._require(member_id)
        return sorted(
            self._periods[member_id].values(), key=lambda p: (p.join_date, str(p.id))
        )

    def save_periods(
        self,
        member_id: UUID,
        periods: Iterable[MembershipPeriodInfo],
        actor_id: UUID | None = None,
    ) -> None:
        self._require(member_id)
        stored = self._periods[member_id]
        for period in periods:
            stored[period.id] = period

    def with_member_lock(self, member_id: UUID, fn: Callable[[], T]) -> T:
        with self._lock_for(member_id):
            self._require(member_id)
            saved = (
                self._members[member_id],
                dict(self._transitions[member_id]),
                dict(self._periods[member_id]),
            )
            try:
                return fn()
            except Exception:
                (
                    self._members[member_id],
                    self._transitions[member_id],
                    self._periods[member_id],
                ) = saved
                logger.debug("member_changes_rolled_back", extra={"member_id": str(member_id)})
                raise

    def find_due_cancellations(self, as_of: date) -> list[UUID]:
        due = [
            m for m in self._members.values()
            if m.cancellation_date is not None
            and m.cancellation_date <= as_of
            and m.current_status != MemberStatus.LEFT
        ]
        due.sort(key=lambda m: (m.cancellation_date, str(m.id)))
        return [m.id for m in due]


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------


class SqlAlchemyMemberStore:
    """
    MemberStore over the SQL tables.

    Contract:
        ``with_member_lock`` opens one session and transaction, takes the
        member row lock and runs ``fn``; every store call made inside ``fn``
        reuses that session, so the whole change commits or rolls back as
        one.  Calls made outside a lock run in their own short transaction.

    Non-goals:
        Does not retry on ConcurrentModificationError.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory or get_session_factory()
        self._clock = clock or SystemClock()
        self._active: ContextVar[Session | None] = ContextVar(
            f"member_store_session_{id(self)}", default=None
        )

    @contextmanager
    def _session(self) -> Iterator[Session]:
        active = self._active.get()
        if active is not None:
            yield active
            return
        with session_scope(self._session_factory) as session:
            yield session

    def add_member(self, member: MemberInfo) -> MemberInfo:
        with self._session() as session:
            return MemberWriter(session, self._clock).insert_member(member)

    def load_member(self, member_id: UUID) -> MemberInfo:
        with self._session() as session:
            return MemberSelector(session).get_member(member_id)

    def save_member(self, member: MemberInfo, expected_version: int) -> MemberInfo:
        with self._session() as session:
            return MemberWriter(session, self._clock).update_member(member, expected_version)

    def load_transitions(self, member_id: UUID) -> list[StatusTransitionInfo]:
        with self._session() as session:
            return MemberSelector(session).get_transitions(member_id)

    def save_transitions(
        self,
        member_id: UUID,
        transitions: Iterable[StatusTransitionInfo],
        actor_id: UUID | None = None,
    ) -> None:
        with self._session() as session:
            MemberWriter(session, self._clock).write_transitions(
                member_id, transitions, actor_id
            )

    def load_periods(self, member_id: UUID) -> list[MembershipPeriodInfo]:
        with self._session() as session:
            return MemberSelector(session).get_periods(member_id)

    def save_periods(
        self,
        member_id: UUID,
        periods: Iterable[MembershipPeriodInfo],
        actor_id: UUID | None = None,
    ) -> None:
        with self._session() as session:
            MemberWriter(session, self._clock).write_periods(member_id, periods, actor_id)

    def with_member_lock(self, member_id: UUID, fn: Callable[[], T]) -> T:
        if self._active.get() is not None:
            return fn()
        with session_scope(self._session_factory) as session:
            token = self._active.set(session)
            try:
                MemberSelector(session).get_member(member_id, for_update=True)
                return fn()
            finally:
                self._active.reset(token)

    def find_due_cancellations(self, as_of: date) -> list[UUID]:
        with self._session() as session:
            return MemberSelector(session).due_cancellations(as_of, MemberStatus.LEFT.value)
