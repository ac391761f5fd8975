"""
TransitionLog -- a member's status transitions as an immutable value.

Responsibility:
    Holds one member's status transition entries in walk order and answers
    the temporal questions the engine asks: which entry is in effect on a
    date, what status the member had then, which entries a change at a date
    affects.  Also owns entry-level validation (edge, reason, left category).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    CHAIN_WALK      -- append() only accepts edges of the status graph; the
                       chain itself is re-derived by ChainRecalculator.
    DERIVED_STATUS  -- status_as_of() is the single definition of the
                       derived status.

Failure modes:
    - InvalidTransitionError for an edge missing from the graph.
    - MissingCategoryError for LEFT without a resolvable category.
    - ReasonLengthError for a blank or over-long reason.
    - TransitionNotFoundError for unknown entry ids.

Ordering:
    Entries are ordered by ``(effective_date, sequence)``.  Among entries on
    the same effective date the one recorded last is the latest, so a
    correction recorded after the fact takes effect.  This replaces the
    earlier-recorded-wins tie-break, which would disagree with the status
    the chain walk ends in.
"""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Iterable
from dataclasses import replace
from datetime import date
from uuid import UUID

from membership_kernel.domain.dtos import StatusTransitionInfo
from membership_kernel.domain.status_graph import StatusGraph
from membership_kernel.domain.statuses import LeftCategory, MemberStatus
from membership_kernel.exceptions import (
    InvalidTransitionError,
    MissingCategoryError,
    ReasonLengthError,
    TransitionNotFoundError,
)

MIN_REASON_LENGTH = 1
MAX_REASON_LENGTH = 500


def validate_reason(reason: str, max_length: int = MAX_REASON_LENGTH) -> str:
    """Return the reason unchanged if its length is acceptable."""
    length = len(reason) if reason is not None else 0
    if reason is None or not reason.strip() or length > max_length:
        raise ReasonLengthError(length, MIN_REASON_LENGTH, max_length)
    return reason


def resolve_left_category(
    graph: StatusGraph,
    from_status: MemberStatus,
    to_status: MemberStatus,
    explicit: LeftCategory | None,
) -> LeftCategory | None:
    """The category to store: explicit first, then the named transition's default.

    Entries not going to LEFT never carry a category.
    """
    if to_status != MemberStatus.LEFT:
        return None
    if explicit is not None:
        return explicit
    named = graph.named_transition(from_status, to_status)
    if named is not None and named.auto_left_category is not None:
        return named.auto_left_category
    raise MissingCategoryError(from_status.value, to_status.value)


def validate_entry(
    entry: StatusTransitionInfo,
    graph: StatusGraph,
    max_reason_length: int = MAX_REASON_LENGTH,
) -> StatusTransitionInfo:
    """Check an entry against the graph and return it with its category resolved."""
    if not graph.can_transition(entry.from_status, entry.to_status):
        raise InvalidTransitionError(
            entry.from_status.value,
            entry.to_status.value,
            entry.effective_date.isoformat(),
        )
    validate_reason(entry.reason, max_reason_length)
    category = resolve_left_category(
        graph, entry.from_status, entry.to_status, entry.left_category
    )
    if category != entry.left_category:
        entry = replace(entry, left_category=category)
    return entry


class TransitionLog:
    """Status transition entries of one member in walk order."""

    def __init__(
        self,
        member_id: UUID,
        initial_status: MemberStatus,
        entries: Iterable[StatusTransitionInfo] = (),
    ):
        self.member_id = member_id
        self.initial_status = initial_status
        self._entries: tuple[StatusTransitionInfo, ...] = tuple(
            sorted(entries, key=lambda e: e.sort_key)
        )

    def __iter__(self):
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[StatusTransitionInfo, ...]:
        return self._entries

    def get(self, entry_id: UUID) -> StatusTransitionInfo:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        raise TransitionNotFoundError(str(entry_id))

    def latest_as_of(self, as_of: date) -> StatusTransitionInfo | None:
        """The last entry in walk order with ``effective_date <= as_of``."""
        dates = [e.effective_date for e in self._entries]
        index = bisect_right(dates, as_of)
        return self._entries[index - 1] if index else None

    def status_as_of(self, as_of: date) -> MemberStatus:
        latest = self.latest_as_of(as_of)
        return latest.to_status if latest is not None else self.initial_status

    def final_status(self) -> MemberStatus:
        """Status reached at the end of the walk, future-dated entries included."""
        return self._entries[-1].to_status if self._entries else self.initial_status

    def entries_from(self, from_date: date) -> list[StatusTransitionInfo]:
        """Entries with ``effective_date >= from_date``, ascending."""
        return [e for e in self._entries if e.effective_date >= from_date]

    def entries_on(self, on_date: date) -> list[StatusTransitionInfo]:
        return [e for e in self._entries if e.effective_date == on_date]

    def next_sequence(self) -> int:
        return max((e.sequence for e in self._entries), default=0) + 1

    def append(
        self,
        entry: StatusTransitionInfo,
        graph: StatusGraph,
        max_reason_length: int = MAX_REASON_LENGTH,
    ) -> tuple[TransitionLog, StatusTransitionInfo]:
        """Validate ``entry`` and return the log including it."""
        entry = validate_entry(entry, graph, max_reason_length)
        return (
            TransitionLog(self.member_id, self.initial_status, (*self._entries, entry)),
            entry,
        )

    def remove(self, entry_id: UUID) -> TransitionLog:
        """Drop an entry.  Only chain recalculation calls this."""
        self.get(entry_id)
        return TransitionLog(
            self.member_id,
            self.initial_status,
            (e for e in self._entries if e.id != entry_id),
        )

    def replace(self, entry: StatusTransitionInfo) -> TransitionLog:
        self.get(entry.id)
        return TransitionLog(
            self.member_id,
            self.initial_status,
            (entry if e.id == entry.id else e for e in self._entries),
        )
