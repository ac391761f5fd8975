"""
ChainRecalculator -- re-derive a member's timeline after an out-of-order change.

Responsibility:
    Given a MemberSnapshot and one change (insert, edit or delete of a status
    transition at an arbitrary effective date), compute the complete timeline
    that results: every later entry re-chained to its new predecessor, every
    transition-driven period boundary replayed, and a diff describing the
    knock-on effects.  The result is a RecalculationPlan, a pure value that
    serves as the preview and as the input of LifecycleEngine.apply().

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Time enters only
    through the ``today`` and ``now`` arguments; record ids for new entries
    and periods are derived from the snapshot fingerprint and the change, so
    recalculating twice yields the same plan.

Invariants enforced:
    CHAIN_WALK            -- entries from the changed date on are re-chained
                             or removed; earlier entries keep their statuses.
    PERIOD_MATCHES_STATUS -- boundaries are replayed from the walk and a
                             final reconciliation fixes the current period.
    NO_OVERLAP            -- the derived ledger is checked before returning.
    SINGLE_OPEN_PERIOD    -- ditto.

Failure modes:
    - InvalidTransitionError, MissingCategoryError, ReasonLengthError,
      SameDayTransitionError for the changed entry itself.
    - TransitionNotFoundError when an edit or delete names an unknown entry.
    - OverlapError when the derived periods intersect.
    - LifecycleInvariantError for any other broken invariant.
    Removing later entries is a normal outcome, reported in the plan.

Period replay:
    Entries link to the boundaries they produced (``opened_period_id``,
    ``closed_period_id``).  Linked boundaries are discarded and re-derived
    from the new walk; unlinked (manual) boundaries are kept.  A period
    whose opening entry no longer opens it is voided (leave_date set to its
    join_date) rather than deleted, so its id and history stay on record.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime
from uuid import UUID

from membership_kernel.domain.consistency import assert_member_invariants
from membership_kernel.domain.dtos import (
    MembershipPeriodInfo,
    MemberSnapshot,
    StatusTransitionInfo,
    timeline_fingerprint,
)
from membership_kernel.domain.period_ledger import PeriodLedger
from membership_kernel.domain.status_graph import StatusGraph
from membership_kernel.domain.statuses import LeftCategory, MemberStatus, TransitionKind
from membership_kernel.domain.transition_log import (
    MAX_REASON_LENGTH,
    TransitionLog,
    validate_entry,
    validate_reason,
)
from membership_kernel.exceptions import InvalidTransitionError, SameDayTransitionError
from membership_kernel.utils.hashing import derive_record_id

# ---------------------------------------------------------------------------
# Change descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InsertTransition:
    """Record a new transition at ``effective_date``.

    TYPE_CHANGE and CANCELLATION entries are self-transitions; their
    ``to_status`` is whatever status the member has on that date.
    """
    to_status: MemberStatus
    reason: str
    effective_date: date
    actor_id: UUID
    left_category: LeftCategory | None = None
    membership_type_id: str | None = None
    kind: TransitionKind = TransitionKind.STATUS_CHANGE


@dataclass(frozen=True)
class EditTransition:
    """Change fields of an existing transition.  ``None`` keeps the stored value."""
    transition_id: UUID
    actor_id: UUID
    effective_date: date | None = None
    reason: str | None = None
    left_category: LeftCategory | None = None
    to_status: MemberStatus | None = None


@dataclass(frozen=True)
class DeleteTransition:
    """Remove one or more transitions in a single recalculation."""
    transition_ids: tuple[UUID, ...]
    actor_id: UUID


TransitionChange = InsertTransition | EditTransition | DeleteTransition


def change_key(change: TransitionChange) -> dict:
    """Canonical, hashable description of a change."""
    return {"type": type(change).__name__, **asdict(change)}


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecalculationPlan:
    """
    The complete outcome of one change, computed without touching storage.

    Contract:
        ``final_transitions`` and ``final_periods`` are the member's entire
        timeline after the change.  ``base_version`` and ``base_fingerprint``
        identify the snapshot the plan was computed against; apply() refuses
        to write over any other state.

    Guarantees:
        - ``has_changes`` is False when the change touches nothing beyond the
          requested entry and the period boundaries it produces itself.
        - Removals are reported, never raised.
    """
    plan_id: UUID
    member_id: UUID
    change: TransitionChange
    base_version: int
    base_fingerprint: str
    result_fingerprint: str
    transition: StatusTransitionInfo | None
    out_of_order: bool
    has_changes: bool
    final_member_status: MemberStatus
    removed_transitions: tuple[StatusTransitionInfo, ...] = ()
    restored_transitions: tuple[StatusTransitionInfo, ...] = ()
    opened_periods: tuple[MembershipPeriodInfo, ...] = ()
    closed_periods: tuple[MembershipPeriodInfo, ...] = ()
    reopened_periods: tuple[MembershipPeriodInfo, ...] = ()
    adjusted_periods: tuple[MembershipPeriodInfo, ...] = ()
    final_transitions: tuple[StatusTransitionInfo, ...] = field(default=(), repr=False)
    final_periods: tuple[MembershipPeriodInfo, ...] = field(default=(), repr=False)

    @property
    def changed_periods(self) -> tuple[MembershipPeriodInfo, ...]:
        return (
            self.opened_periods
            + self.closed_periods
            + self.reopened_periods
            + self.adjusted_periods
        )


# ---------------------------------------------------------------------------
# Walk state
# ---------------------------------------------------------------------------


@dataclass
class _Walk:
    """Mutable scratch state of one replay.  Never escapes recalculate()."""
    ledger: PeriodLedger
    reusable: dict[UUID, MembershipPeriodInfo]
    used_period_ids: set[UUID] = field(default_factory=set)
    entries: list[StatusTransitionInfo] = field(default_factory=list)
    removed: list[StatusTransitionInfo] = field(default_factory=list)
    restored: list[StatusTransitionInfo] = field(default_factory=list)
    entered_on: date | None = None
    left_on: date | None = None


class ChainRecalculator:
    """
    Pure replay of a member timeline against a status graph.

    Contract:
        ``recalculate`` never mutates its inputs and performs no I/O.

    Non-goals:
        Does not lock, load or save anything (LifecycleEngine does that).
    """

    def __init__(
        self,
        graph: StatusGraph,
        *,
        default_membership_type_id: str | None = None,
        one_change_per_day: bool = True,
        max_reason_length: int = MAX_REASON_LENGTH,
    ):
        self.graph = graph
        self.default_membership_type_id = default_membership_type_id
        self.one_change_per_day = one_change_per_day
        self.max_reason_length = max_reason_length

    def recalculate(
        self,
        snapshot: MemberSnapshot,
        change: TransitionChange,
        *,
        today: date,
        now: datetime,
    ) -> RecalculationPlan:
        key = change_key(change)
        base_fingerprint = snapshot.fingerprint
        base_log = TransitionLog(snapshot.member_id, snapshot.initial_status, snapshot.transitions)

        log, target_id, touched_ids, changed_on = self._apply_change(
            snapshot, base_log, change, key, base_fingerprint, now
        )
        affected = {e.id for e in log.entries_from(changed_on)}
        out_of_order = any(
            e.effective_date > changed_on
            for e in base_log.entries_from(changed_on)
            if e.id not in touched_ids
        )

        walk = self._start_walk(snapshot)
        originals = {e.id: e for e in snapshot.transitions}
        # Metadata-only entries keep following their predecessor's status.
        following = {e.id for e in snapshot.transitions if e.is_self_transition}
        if isinstance(change, EditTransition) and change.to_status is not None:
            following.discard(change.transition_id)
        status = snapshot.initial_status
        left_category: LeftCategory | None = None

        for entry in log:
            is_target = entry.id == target_id
            original = originals.get(entry.id)
            unlinked = replace(entry, opened_period_id=None, closed_period_id=None)

            if entry.id in affected:
                follows = entry.kind != TransitionKind.STATUS_CHANGE or entry.id in following
                to_status = status if follows else entry.to_status
                try:
                    rechained = validate_entry(
                        replace(
                            unlinked,
                            from_status=status,
                            to_status=to_status,
                            left_category=self._carried_category(
                                entry, status, to_status, left_category
                            ),
                        ),
                        self.graph,
                        self.max_reason_length,
                    )
                except InvalidTransitionError:
                    if is_target:
                        raise
                    walk.removed.append(entry)
                    continue
            else:
                rechained = unlinked

            rechained = self._replay_period_effect(
                walk, rechained, entry, key, base_fingerprint, now
            )

            if original is not None and not is_target and (
                (original.from_status, original.to_status)
                != (rechained.from_status, rechained.to_status)
            ):
                walk.restored.append(rechained)

            requires_before = self.graph.requires_period(rechained.from_status)
            requires_after = self.graph.requires_period(rechained.to_status)
            if requires_after and not requires_before:
                walk.entered_on = entry.effective_date
            elif requires_before and not requires_after:
                walk.left_on = entry.effective_date

            walk.entries.append(rechained)
            status = rechained.to_status
            left_category = rechained.left_category

        self._void_orphans(walk, now)
        self._reconcile_current_period(walk, status, key, base_fingerprint, now)

        target = next((e for e in walk.entries if e.id == target_id), None)
        if target is not None and self._moves_entry(change, originals):
            self._check_same_day(walk.entries, target)

        final_periods = self._keep_unchanged(snapshot.periods, walk.ledger.periods)
        final_entries = tuple(walk.entries)
        assert_member_invariants(
            self.graph,
            snapshot.member_id,
            snapshot.initial_status,
            final_entries,
            final_periods,
        )

        return self._build_plan(
            snapshot=snapshot,
            change=change,
            key=key,
            base_fingerprint=base_fingerprint,
            walk=walk,
            target=target,
            touched_ids=touched_ids,
            out_of_order=out_of_order,
            final_entries=final_entries,
            final_periods=final_periods,
            today=today,
        )

    # ------------------------------------------------------------------
    # Change application
    # ------------------------------------------------------------------

    def _apply_change(
        self,
        snapshot: MemberSnapshot,
        log: TransitionLog,
        change: TransitionChange,
        key: dict,
        base_fingerprint: str,
        now: datetime,
    ) -> tuple[TransitionLog, UUID | None, set[UUID], date]:
        """Return (modified log, target id, ids whose own effects don't count, date)."""
        if isinstance(change, InsertTransition):
            from_status = log.status_as_of(change.effective_date)
            latest = log.latest_as_of(change.effective_date)
            log, entry = log.append(
                StatusTransitionInfo(
                    id=derive_record_id(base_fingerprint, key, "transition"),
                    member_id=snapshot.member_id,
                    from_status=from_status,
                    to_status=change.to_status,
                    reason=change.reason,
                    effective_date=change.effective_date,
                    actor_id=change.actor_id,
                    sequence=log.next_sequence(),
                    kind=self._insert_kind(snapshot, change, from_status),
                    left_category=self._carried_category(
                        change,
                        from_status,
                        change.to_status,
                        latest.left_category if latest is not None else None,
                    ),
                    membership_type_id=change.membership_type_id,
                    created_at=now,
                ),
                self.graph,
                self.max_reason_length,
            )
            return log, entry.id, {entry.id}, change.effective_date

        if isinstance(change, EditTransition):
            existing = log.get(change.transition_id)
            if change.reason is not None:
                validate_reason(change.reason, self.max_reason_length)
            if (
                change.to_status is not None
                and change.to_status != existing.to_status
                and existing.kind != TransitionKind.STATUS_CHANGE
            ):
                raise InvalidTransitionError(
                    existing.to_status.value,
                    change.to_status.value,
                    existing.effective_date.isoformat(),
                )
            to_status = change.to_status or existing.to_status
            edited = replace(
                existing,
                effective_date=change.effective_date or existing.effective_date,
                reason=change.reason if change.reason is not None else existing.reason,
                to_status=to_status,
                left_category=(
                    change.left_category
                    if change.left_category is not None
                    else (existing.left_category if to_status == existing.to_status else None)
                ),
            )
            changed_on = min(existing.effective_date, edited.effective_date)
            return log.replace(edited), existing.id, {existing.id}, changed_on

        removed_ids = set(change.transition_ids)
        changed_on = min(log.get(entry_id).effective_date for entry_id in removed_ids)
        for entry_id in removed_ids:
            log = log.remove(entry_id)
        return log, None, removed_ids, changed_on

    def _insert_kind(
        self,
        snapshot: MemberSnapshot,
        change: InsertTransition,
        from_status: MemberStatus,
    ) -> TransitionKind:
        """A self-transition naming a new membership type is a type change."""
        if (
            change.kind != TransitionKind.STATUS_CHANGE
            or change.to_status != from_status
            or change.membership_type_id is None
        ):
            return change.kind
        covering = PeriodLedger(snapshot.member_id, snapshot.periods).find_at(
            change.effective_date
        )
        if (
            covering is not None
            and covering.is_open
            and covering.membership_type_id != change.membership_type_id
        ):
            return TransitionKind.TYPE_CHANGE
        return change.kind

    @staticmethod
    def _carried_category(
        entry: StatusTransitionInfo | InsertTransition,
        from_status: MemberStatus,
        to_status: MemberStatus,
        previous: LeftCategory | None,
    ) -> LeftCategory | None:
        """LEFT to LEFT entries keep the category of the exit they follow."""
        if from_status == to_status == MemberStatus.LEFT:
            return entry.left_category or previous
        return entry.left_category

    # ------------------------------------------------------------------
    # Period replay
    # ------------------------------------------------------------------

    def _start_walk(self, snapshot: MemberSnapshot) -> _Walk:
        """Base ledger: manual boundaries only.

        Periods opened by an entry are set aside for reuse; leave dates set by
        an entry are cleared so the replay can set them again.
        """
        owned_joins = {e.opened_period_id for e in snapshot.transitions if e.opened_period_id}
        owned_leaves = {e.closed_period_id for e in snapshot.transitions if e.closed_period_id}
        base: list[MembershipPeriodInfo] = []
        reusable: dict[UUID, MembershipPeriodInfo] = {}
        for period in snapshot.periods:
            if period.id in owned_joins:
                reusable[period.id] = period
                continue
            if period.id in owned_leaves and period.leave_date is not None:
                period = replace(period, leave_date=None)
            base.append(period)
        return _Walk(ledger=PeriodLedger(snapshot.member_id, base), reusable=reusable)

    def _replay_period_effect(
        self,
        walk: _Walk,
        entry: StatusTransitionInfo,
        original: StatusTransitionInfo,
        key: dict,
        base_fingerprint: str,
        now: datetime,
    ) -> StatusTransitionInfo:
        on_date = entry.effective_date
        requires_before = self.graph.requires_period(entry.from_status)
        requires_after = self.graph.requires_period(entry.to_status)

        if entry.kind == TransitionKind.TYPE_CHANGE:
            if not requires_after:
                return entry
            current = walk.ledger.find_at(on_date)
            closed_id = None
            if current is not None and current.is_open:
                walk.ledger, _ = walk.ledger.close(current.id, on_date, now=now)
                closed_id = current.id
            elif current is not None:
                return entry
            opened = self._open_period(walk, entry, original, key, base_fingerprint, now)
            return replace(entry, opened_period_id=opened.id, closed_period_id=closed_id)

        if requires_after and not requires_before:
            if walk.ledger.find_at(on_date) is not None:
                return entry
            opened = self._open_period(walk, entry, original, key, base_fingerprint, now)
            return replace(entry, opened_period_id=opened.id)

        if requires_before and not requires_after:
            current = walk.ledger.find_at(on_date)
            if current is None or not current.is_open:
                return entry
            walk.ledger, _ = walk.ledger.close(current.id, on_date, now=now)
            return replace(entry, closed_period_id=current.id)

        return entry

    def _open_period(
        self,
        walk: _Walk,
        entry: StatusTransitionInfo,
        original: StatusTransitionInfo,
        key: dict,
        base_fingerprint: str,
        now: datetime,
    ) -> MembershipPeriodInfo:
        type_id = entry.membership_type_id or self.default_membership_type_id
        reuse_id = original.opened_period_id
        if reuse_id in walk.reusable and reuse_id not in walk.used_period_ids:
            previous = walk.reusable[reuse_id]
            period = replace(
                previous,
                join_date=entry.effective_date,
                leave_date=None,
                membership_type_id=type_id or previous.membership_type_id,
                updated_at=now,
            )
        else:
            period = MembershipPeriodInfo(
                id=derive_record_id(base_fingerprint, key, "period", entry.id),
                member_id=entry.member_id,
                join_date=entry.effective_date,
                leave_date=None,
                membership_type_id=type_id,
                created_at=now,
                updated_at=now,
            )
        walk.used_period_ids.add(period.id)
        walk.ledger = walk.ledger.add(period)
        return period

    def _void_orphans(self, walk: _Walk, now: datetime) -> None:
        for period_id, period in walk.reusable.items():
            if period_id in walk.used_period_ids:
                continue
            walk.ledger = walk.ledger.add(
                replace(period, leave_date=period.join_date, updated_at=now)
            )

    def _reconcile_current_period(
        self,
        walk: _Walk,
        final_status: MemberStatus,
        key: dict,
        base_fingerprint: str,
        now: datetime,
    ) -> None:
        """Make the current period match the status the walk ends in."""
        open_periods = walk.ledger.open_periods()
        if self.graph.requires_period(final_status):
            if open_periods:
                return
            visible = walk.ledger.visible_periods()
            latest = visible[-1] if visible else None
            if latest is not None and (
                walk.entered_on is None or latest.end >= walk.entered_on
            ):
                walk.ledger, _ = walk.ledger.reopen(latest.id, now=now)
            elif walk.entered_on is not None:
                period = MembershipPeriodInfo(
                    id=derive_record_id(base_fingerprint, key, "period", "current"),
                    member_id=walk.ledger.member_id,
                    join_date=walk.entered_on,
                    membership_type_id=self.default_membership_type_id,
                    created_at=now,
                    updated_at=now,
                )
                walk.ledger = walk.ledger.add(period)
            return

        for period in open_periods:
            leave = walk.left_on if walk.left_on is not None else period.join_date
            walk.ledger = walk.ledger.replace(
                replace(period, leave_date=max(leave, period.join_date), updated_at=now)
            )

    # ------------------------------------------------------------------
    # Checks and diff
    # ------------------------------------------------------------------

    @staticmethod
    def _moves_entry(
        change: TransitionChange, originals: dict[UUID, StatusTransitionInfo]
    ) -> bool:
        """Whether the change puts a status change on a (possibly new) date."""
        if not isinstance(change, EditTransition):
            return True
        existing = originals[change.transition_id]
        return (
            change.effective_date not in (None, existing.effective_date)
            or change.to_status not in (None, existing.to_status)
        )

    def _check_same_day(
        self, entries: list[StatusTransitionInfo], target: StatusTransitionInfo
    ) -> None:
        if not self.one_change_per_day or target.is_self_transition:
            return
        for entry in entries:
            if (
                entry.id != target.id
                and entry.effective_date == target.effective_date
                and not entry.is_self_transition
            ):
                raise SameDayTransitionError(
                    target.effective_date.isoformat(), str(entry.id)
                )

    @staticmethod
    def _keep_unchanged(
        before: tuple[MembershipPeriodInfo, ...],
        after: tuple[MembershipPeriodInfo, ...],
    ) -> tuple[MembershipPeriodInfo, ...]:
        """Use the stored record wherever the replay reproduced it exactly."""
        stored = {p.id: p for p in before}
        result = []
        for period in after:
            old = stored.get(period.id)
            if old is not None and old.state_key() == period.state_key():
                result.append(old)
            else:
                result.append(period)
        return tuple(sorted(result, key=lambda p: (p.join_date, str(p.id))))

    def _build_plan(
        self,
        *,
        snapshot: MemberSnapshot,
        change: TransitionChange,
        key: dict,
        base_fingerprint: str,
        walk: _Walk,
        target: StatusTransitionInfo | None,
        touched_ids: set[UUID],
        out_of_order: bool,
        final_entries: tuple[StatusTransitionInfo, ...],
        final_periods: tuple[MembershipPeriodInfo, ...],
        today: date,
    ) -> RecalculationPlan:
        before = {p.id: p for p in snapshot.periods}
        opened, closed, reopened, adjusted = [], [], [], []
        for period in final_periods:
            old = before.get(period.id)
            if old is None:
                opened.append(period)
            elif old.state_key() == period.state_key():
                continue
            elif old.is_open and not period.is_open:
                closed.append(period)
            elif not old.is_open and period.is_open:
                reopened.append(period)
            elif period.is_void and not old.is_void:
                closed.append(period)
            else:
                adjusted.append(period)

        # Period boundaries that belong to the requested entry itself.
        own_periods: set[UUID] = set()
        for entry in (*snapshot.transitions, *final_entries):
            if entry.id in touched_ids:
                own_periods.update(
                    pid for pid in (entry.opened_period_id, entry.closed_period_id) if pid
                )
        knock_on_periods = [
            p for p in (*opened, *closed, *reopened, *adjusted) if p.id not in own_periods
        ]
        has_changes = bool(walk.removed or walk.restored or knock_on_periods)
        final_log = TransitionLog(snapshot.member_id, snapshot.initial_status, final_entries)

        return RecalculationPlan(
            plan_id=derive_record_id(base_fingerprint, key, "plan"),
            member_id=snapshot.member_id,
            change=change,
            base_version=snapshot.version,
            base_fingerprint=base_fingerprint,
            result_fingerprint=timeline_fingerprint(
                snapshot.member_id, snapshot.initial_status, final_entries, final_periods
            ),
            transition=target,
            out_of_order=out_of_order,
            has_changes=has_changes,
            final_member_status=final_log.status_as_of(today),
            removed_transitions=tuple(walk.removed),
            restored_transitions=tuple(walk.restored),
            opened_periods=tuple(opened),
            closed_periods=tuple(closed),
            reopened_periods=tuple(reopened),
            adjusted_periods=tuple(adjusted),
            final_transitions=final_entries,
            final_periods=final_periods,
        )
