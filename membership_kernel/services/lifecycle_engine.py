"""
LifecycleEngine -- the public surface of the member lifecycle.

Responsibility:
    Accepts lifecycle requests (status transitions, membership-type changes,
    history edits and deletions, formal cancellations, manual period
    maintenance), turns each into a RecalculationPlan through the pure
    ChainRecalculator, and commits the plan atomically through a MemberStore.

Architecture position:
    Kernel > Services -- imperative shell around the pure domain core.
    Owns locking and committing; owns no lifecycle rules of its own beyond
    request-level guards (cancellations, type changes).

Invariants enforced:
    CHAIN_WALK, PERIOD_MATCHES_STATUS, NO_OVERLAP, SINGLE_OPEN_PERIOD
        -- every commit writes the final timeline of a plan that passed
           ``assert_member_invariants``; manual period edits are checked
           the same way.
    DERIVED_STATUS
        -- ``current_status`` on the member is refreshed from the new log on
           every commit and by ``refresh_current_status`` once a
           future-dated entry takes effect; ``get_current_status`` always
           derives it.

Failure modes:
    - Validation errors (LifecycleValidationError subclasses) before any write.
    - ConcurrentModificationError from ``apply`` when the member changed
      after the plan was computed.
    - Cancellation errors for cancellation requests in the wrong state.

Audit relevance:
    Every request, plan and commit is logged with the member, actor and plan
    ids bound to the LogContext.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import date
from typing import Any
from uuid import UUID, uuid4

from membership_kernel.domain.clock import Clock, SystemClock
from membership_kernel.domain.consistency import assert_member_invariants
from membership_kernel.domain.dtos import (
    MemberInfo,
    MembershipPeriodInfo,
    MemberSnapshot,
    StatusTransitionInfo,
    TimelineItem,
)
from membership_kernel.domain.period_ledger import PeriodLedger
from membership_kernel.domain.recalculation import (
    ChainRecalculator,
    DeleteTransition,
    EditTransition,
    InsertTransition,
    RecalculationPlan,
    TransitionChange,
)
from membership_kernel.domain.status_graph import STANDARD_GRAPH, StatusGraph
from membership_kernel.domain.statuses import (
    SYSTEM_ACTOR_ID,
    LeftCategory,
    MemberStatus,
    TransitionKind,
)
from membership_kernel.domain.timeline import build_timeline
from membership_kernel.domain.transition_log import MAX_REASON_LENGTH, TransitionLog
from membership_kernel.exceptions import (
    CancellationExistsError,
    CancellationNotAllowedError,
    ConcurrentModificationError,
    MembershipKernelError,
    MembershipTypeChangeError,
    NoCancellationError,
)
from membership_kernel.logging_config import LogContext, get_logger
from membership_kernel.services.member_store import MemberStore

logger = get_logger("services.lifecycle_engine")

__all__ = [
    "SYSTEM_ACTOR_ID",
    "BulkSkip",
    "BulkTransitionResult",
    "LifecycleEngine",
    "TransitionResult",
]


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a committed (or already committed) lifecycle change."""

    plan: RecalculationPlan | None
    member: MemberInfo
    transition: StatusTransitionInfo | None
    applied: bool


@dataclass(frozen=True)
class BulkSkip:
    member_id: UUID
    code: str
    message: str


@dataclass(frozen=True)
class BulkTransitionResult:
    updated: tuple[TransitionResult, ...]
    skipped: tuple[BulkSkip, ...]


class LifecycleEngine:
    """
    Member lifecycle operations over a MemberStore.

    Contract:
        Every mutating operation either commits the complete new timeline of
        one member or changes nothing.  ``preview_*`` methods return the
        plan the matching mutation would commit, without locking or writing.

    Non-goals:
        Authorization (callers pass an authorized ``actor_id``) and
        presentation.
    """

    def __init__(
        self,
        store: MemberStore,
        graph: StatusGraph = STANDARD_GRAPH,
        clock: Clock | None = None,
        *,
        default_membership_type_id: str | None = None,
        one_change_per_day: bool = True,
        cancellable_statuses: Iterable[MemberStatus] | None = None,
        max_reason_length: int = MAX_REASON_LENGTH,
    ):
        self.store = store
        self.graph = graph
        self.clock = clock or SystemClock()
        self.default_membership_type_id = default_membership_type_id
        self.cancellable_statuses = (
            frozenset(cancellable_statuses)
            if cancellable_statuses is not None
            else graph.period_statuses
        )
        self.recalculator = ChainRecalculator(
            graph,
            default_membership_type_id=default_membership_type_id,
            one_change_per_day=one_change_per_day,
            max_reason_length=max_reason_length,
        )

    # ------------------------------------------------------------------
    # Members and reads
    # ------------------------------------------------------------------

    def register_member(
        self,
        display_name: str,
        actor_id: UUID,
        *,
        member_id: UUID | None = None,
        club_id: str | None = None,
        initial_status: MemberStatus | None = None,
        join_date: date | None = None,
        membership_type_id: str | None = None,
    ) -> MemberInfo:
        """
        Create a member.

        A member registered with a period-requiring initial status (for
        example one migrated from an older register) gets an open period
        from ``join_date`` (default today).  The period is a manual
        boundary: no transition produced it.
        """
        status = initial_status or self.graph.initial_status
        if status not in self.graph.statuses:
            raise ValueError(f"Status {status.value} is not part of graph '{self.graph.name}'")
        now = self.clock.now()
        member = MemberInfo(
            id=member_id or uuid4(),
            display_name=display_name,
            initial_status=status,
            current_status=status,
            version=1,
            club_id=club_id,
            status_changed_at=now,
            status_changed_by_id=actor_id,
            created_at=now,
        )
        with LogContext.bind(member_id=member.id, actor_id=actor_id):
            member = self.store.add_member(member)
            if self.graph.requires_period(status):
                ledger, period = PeriodLedger(member.id).create(
                    join_date or self.clock.today(),
                    membership_type_id or self.default_membership_type_id,
                    now=now,
                )
                self.store.save_periods(member.id, ledger.periods, actor_id=actor_id)
                logger.info(
                    "period_created",
                    extra={"period_id": str(period.id), "join_date": period.join_date},
                )
            logger.info(
                "member_registered",
                extra={"initial_status": status.value, "club_id": club_id},
            )
        return member

    def get_member(self, member_id: UUID) -> MemberInfo:
        return self.store.load_member(member_id)

    def get_current_status(self, member_id: UUID, as_of: date | None = None) -> MemberStatus:
        """Status derived from the transition log as of ``as_of`` (default today)."""
        member = self.store.load_member(member_id)
        log = TransitionLog(member_id, member.initial_status, self.store.load_transitions(member_id))
        return log.status_as_of(as_of or self.clock.today())

    def get_status_history(self, member_id: UUID) -> list[StatusTransitionInfo]:
        """Transitions, newest first."""
        self.store.load_member(member_id)
        return sorted(
            self.store.load_transitions(member_id), key=lambda t: t.sort_key, reverse=True
        )

    def get_periods(self, member_id: UUID) -> list[MembershipPeriodInfo]:
        self.store.load_member(member_id)
        return self.store.load_periods(member_id)

    def get_timeline(self, member_id: UUID) -> tuple[TimelineItem, ...]:
        snapshot = self._snapshot(member_id)
        return build_timeline(snapshot.transitions, snapshot.periods)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def preview_transition(
        self,
        member_id: UUID,
        to_status: MemberStatus,
        reason: str,
        actor_id: UUID,
        effective_date: date | None = None,
        left_category: LeftCategory | None = None,
        membership_type_id: str | None = None,
    ) -> RecalculationPlan:
        change = self._insert(
            to_status, reason, actor_id, effective_date, left_category, membership_type_id
        )
        return self.preview(member_id, change)

    def request_transition(
        self,
        member_id: UUID,
        to_status: MemberStatus,
        reason: str,
        actor_id: UUID,
        effective_date: date | None = None,
        left_category: LeftCategory | None = None,
        membership_type_id: str | None = None,
    ) -> TransitionResult:
        """
        Record a status transition at ``effective_date`` (default today).

        The from-status is the member's status on that date; entries after it
        are re-chained by recalculation.  Commits under the member lock.
        """
        change = self._insert(
            to_status, reason, actor_id, effective_date, left_category, membership_type_id
        )
        logger.info(
            "transition_requested",
            extra={
                "member_id": str(member_id),
                "to_status": to_status.value,
                "effective_date": change.effective_date,
            },
        )
        return self._execute(member_id, actor_id, lambda snapshot: change)

    def _insert(
        self,
        to_status: MemberStatus,
        reason: str,
        actor_id: UUID,
        effective_date: date | None,
        left_category: LeftCategory | None,
        membership_type_id: str | None,
    ) -> InsertTransition:
        return InsertTransition(
            to_status=to_status,
            reason=reason,
            effective_date=effective_date or self.clock.today(),
            actor_id=actor_id,
            left_category=left_category,
            membership_type_id=membership_type_id,
        )

    # ------------------------------------------------------------------
    # Membership type changes
    # ------------------------------------------------------------------

    def preview_membership_type_change(
        self,
        member_id: UUID,
        membership_type_id: str,
        reason: str,
        actor_id: UUID,
        effective_date: date | None = None,
    ) -> RecalculationPlan:
        snapshot = self._snapshot(member_id)
        change = self._type_change(
            snapshot, membership_type_id, reason, actor_id, effective_date
        )
        return self._plan(snapshot, change)

    def change_membership_type(
        self,
        member_id: UUID,
        membership_type_id: str,
        reason: str,
        actor_id: UUID,
        effective_date: date | None = None,
    ) -> TransitionResult:
        """Close the current period and open one of ``membership_type_id`` on the same date."""
        return self._execute(
            member_id,
            actor_id,
            lambda snapshot: self._type_change(
                snapshot, membership_type_id, reason, actor_id, effective_date
            ),
        )

    def _type_change(
        self,
        snapshot: MemberSnapshot,
        membership_type_id: str,
        reason: str,
        actor_id: UUID,
        effective_date: date | None,
    ) -> InsertTransition:
        on_date = effective_date or self.clock.today()
        log = TransitionLog(snapshot.member_id, snapshot.initial_status, snapshot.transitions)
        status = log.status_as_of(on_date)

        def reject(detail: str) -> MembershipTypeChangeError:
            return MembershipTypeChangeError(str(snapshot.member_id), on_date.isoformat(), detail)

        if not self.graph.requires_period(status):
            raise reject(f"status {status.value} has no membership period")
        period = PeriodLedger(snapshot.member_id, snapshot.periods).find_at(on_date)
        if period is None or not period.is_open:
            raise reject("no open period covers the date")
        if period.membership_type_id == membership_type_id:
            raise reject(f"membership type is already {membership_type_id}")
        return InsertTransition(
            to_status=status,
            reason=reason,
            effective_date=on_date,
            actor_id=actor_id,
            membership_type_id=membership_type_id,
            kind=TransitionKind.TYPE_CHANGE,
        )

    # ------------------------------------------------------------------
    # History edits
    # ------------------------------------------------------------------

    def preview_edit(
        self,
        member_id: UUID,
        transition_id: UUID,
        actor_id: UUID,
        *,
        effective_date: date | None = None,
        reason: str | None = None,
        left_category: LeftCategory | None = None,
        to_status: MemberStatus | None = None,
    ) -> RecalculationPlan:
        change = EditTransition(
            transition_id=transition_id,
            actor_id=actor_id,
            effective_date=effective_date,
            reason=reason,
            left_category=left_category,
            to_status=to_status,
        )
        return self.preview(member_id, change)

    def edit_transition(
        self,
        member_id: UUID,
        transition_id: UUID,
        actor_id: UUID,
        *,
        effective_date: date | None = None,
        reason: str | None = None,
        left_category: LeftCategory | None = None,
        to_status: MemberStatus | None = None,
    ) -> TransitionResult:
        change = EditTransition(
            transition_id=transition_id,
            actor_id=actor_id,
            effective_date=effective_date,
            reason=reason,
            left_category=left_category,
            to_status=to_status,
        )
        return self._execute(member_id, actor_id, lambda snapshot: change)

    def preview_delete(
        self, member_id: UUID, transition_id: UUID, actor_id: UUID
    ) -> RecalculationPlan:
        snapshot = self._snapshot(member_id)
        self._guard_delete(snapshot, transition_id)
        return self._plan(snapshot, DeleteTransition((transition_id,), actor_id))

    def delete_transition(
        self, member_id: UUID, transition_id: UUID, actor_id: UUID
    ) -> TransitionResult:
        """Remove an entry; later entries are re-chained or removed."""

        def build(snapshot: MemberSnapshot) -> TransitionChange:
            self._guard_delete(snapshot, transition_id)
            return DeleteTransition((transition_id,), actor_id)

        return self._execute(member_id, actor_id, build)

    def _guard_delete(self, snapshot: MemberSnapshot, transition_id: UUID) -> None:
        member = snapshot.member
        if not member.has_formal_cancellation:
            return
        log = TransitionLog(snapshot.member_id, snapshot.initial_status, snapshot.transitions)
        entry = log.get(transition_id)
        completes_cancellation = (
            entry.to_status == MemberStatus.LEFT
            and not entry.is_self_transition
            and entry.effective_date == member.cancellation_date
        )
        if entry.kind == TransitionKind.CANCELLATION or completes_cancellation:
            raise CancellationExistsError(
                str(member.id), member.cancellation_date.isoformat()
            )

    # ------------------------------------------------------------------
    # Formal cancellation
    # ------------------------------------------------------------------

    def set_cancellation(
        self,
        member_id: UUID,
        cancellation_date: date,
        received_at: date,
        actor_id: UUID,
        reason: str | None = None,
    ) -> TransitionResult:
        """
        Record a member's notice of cancellation.

        The member stays in their status until ``cancellation_date``;
        MemberScheduler records the LEFT transition once the date is due.
        """

        def build(snapshot: MemberSnapshot) -> TransitionChange:
            member = snapshot.member
            if member.has_formal_cancellation:
                raise CancellationExistsError(
                    str(member.id), member.cancellation_date.isoformat()
                )
            log = TransitionLog(snapshot.member_id, snapshot.initial_status, snapshot.transitions)
            status = log.status_as_of(self.clock.today())
            if status not in self.cancellable_statuses:
                raise CancellationNotAllowedError(str(member.id), status.value)
            return InsertTransition(
                to_status=log.status_as_of(cancellation_date),
                reason=reason or f"Cancellation received on {received_at.isoformat()}",
                effective_date=cancellation_date,
                actor_id=actor_id,
                kind=TransitionKind.CANCELLATION,
            )

        result = self._execute(
            member_id,
            actor_id,
            build,
            member_updates={
                "cancellation_date": cancellation_date,
                "cancellation_received_at": received_at,
            },
        )
        logger.info(
            "cancellation_recorded",
            extra={
                "member_id": str(member_id),
                "cancellation_date": cancellation_date,
                "received_at": received_at,
            },
        )
        return result

    def revoke_cancellation(
        self, member_id: UUID, actor_id: UUID, reason: str | None = None
    ) -> TransitionResult:
        """Withdraw a formal cancellation, undoing the LEFT it already produced."""

        def build(snapshot: MemberSnapshot) -> TransitionChange:
            member = snapshot.member
            if not member.has_formal_cancellation:
                raise NoCancellationError(str(member.id))
            ids = tuple(
                e.id for e in snapshot.transitions
                if e.kind == TransitionKind.CANCELLATION
                or (
                    e.to_status == MemberStatus.LEFT
                    and not e.is_self_transition
                    and e.effective_date == member.cancellation_date
                )
            )
            if not ids:
                raise NoCancellationError(str(member.id))
            return DeleteTransition(ids, actor_id)

        result = self._execute(
            member_id,
            actor_id,
            build,
            member_updates={"cancellation_date": None, "cancellation_received_at": None},
            reason=reason,
        )
        logger.info("cancellation_revoked", extra={"member_id": str(member_id)})
        return result

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def bulk_change_status(
        self,
        member_ids: Iterable[UUID],
        to_status: MemberStatus,
        reason: str,
        actor_id: UUID,
        left_category: LeftCategory | None = None,
        effective_date: date | None = None,
    ) -> BulkTransitionResult:
        """Apply one transition to many members, each in its own commit."""
        updated: list[TransitionResult] = []
        skipped: list[BulkSkip] = []
        for member_id in member_ids:
            try:
                updated.append(
                    self.request_transition(
                        member_id,
                        to_status,
                        reason,
                        actor_id,
                        effective_date=effective_date,
                        left_category=left_category,
                    )
                )
            except MembershipKernelError as exc:
                logger.warning(
                    "bulk_transition_skipped",
                    extra={"member_id": str(member_id), "error_code": exc.code},
                )
                skipped.append(BulkSkip(member_id, exc.code, str(exc)))
        logger.info(
            "bulk_transition_completed",
            extra={
                "to_status": to_status.value,
                "updated": len(updated),
                "skipped": len(skipped),
            },
        )
        return BulkTransitionResult(tuple(updated), tuple(skipped))

    # ------------------------------------------------------------------
    # Cached status
    # ------------------------------------------------------------------

    def refresh_current_status(
        self, member_id: UUID, actor_id: UUID = SYSTEM_ACTOR_ID
    ) -> MemberInfo:
        """
        Store the status derived for today on the member row.

        Entries recorded ahead of time take effect without a write; this
        brings ``current_status`` up to date once their date has arrived.
        A member whose cached status already matches is returned unchanged.
        """

        def work() -> MemberInfo:
            snapshot = self._snapshot(member_id)
            log = TransitionLog(member_id, snapshot.initial_status, snapshot.transitions)
            today = self.clock.today()
            derived = log.status_as_of(today)
            member = snapshot.member
            if derived == member.current_status:
                return member
            latest = log.latest_as_of(today)
            refreshed = self.store.save_member(
                replace(
                    member,
                    current_status=derived,
                    status_changed_at=self.clock.now(),
                    status_changed_by_id=actor_id,
                    status_change_reason=latest.reason if latest is not None else None,
                ),
                expected_version=snapshot.version,
            )
            logger.info(
                "current_status_refreshed",
                extra={
                    "from_status": member.current_status.value,
                    "to_status": derived.value,
                    "version": refreshed.version,
                },
            )
            return refreshed

        with LogContext.bind(member_id=member_id, actor_id=actor_id):
            return self.store.with_member_lock(member_id, work)

    # ------------------------------------------------------------------
    # Manual period maintenance
    # ------------------------------------------------------------------

    def create_period(
        self,
        member_id: UUID,
        join_date: date,
        actor_id: UUID,
        *,
        membership_type_id: str | None = None,
        leave_date: date | None = None,
        notes: str | None = None,
    ) -> MembershipPeriodInfo:
        return self._edit_periods(
            member_id,
            actor_id,
            "period_created",
            lambda ledger, now: ledger.create(
                join_date,
                membership_type_id or self.default_membership_type_id,
                notes,
                leave_date=leave_date,
                now=now,
            ),
        )

    def close_period(
        self, member_id: UUID, period_id: UUID, leave_date: date, actor_id: UUID
    ) -> MembershipPeriodInfo:
        return self._edit_periods(
            member_id,
            actor_id,
            "period_closed",
            lambda ledger, now: ledger.close(period_id, leave_date, now=now),
        )

    def reopen_period(
        self, member_id: UUID, period_id: UUID, actor_id: UUID
    ) -> MembershipPeriodInfo:
        return self._edit_periods(
            member_id,
            actor_id,
            "period_reopened",
            lambda ledger, now: ledger.reopen(period_id, now=now),
        )

    def _edit_periods(
        self,
        member_id: UUID,
        actor_id: UUID,
        event: str,
        operation: Callable[[PeriodLedger, Any], tuple[PeriodLedger, MembershipPeriodInfo]],
    ) -> MembershipPeriodInfo:
        def work() -> MembershipPeriodInfo:
            snapshot = self._snapshot(member_id)
            ledger, period = operation(
                PeriodLedger(member_id, snapshot.periods), self.clock.now()
            )
            assert_member_invariants(
                self.graph,
                member_id,
                snapshot.initial_status,
                snapshot.transitions,
                ledger.periods,
            )
            self.store.save_member(snapshot.member, expected_version=snapshot.version)
            self.store.save_periods(member_id, (period,), actor_id=actor_id)
            return period

        with LogContext.bind(member_id=member_id, actor_id=actor_id):
            period = self.store.with_member_lock(member_id, work)
            logger.info(
                event,
                extra={
                    "period_id": str(period.id),
                    "join_date": period.join_date,
                    "leave_date": period.leave_date,
                },
            )
        return period

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    def preview(self, member_id: UUID, change: TransitionChange) -> RecalculationPlan:
        """Compute the plan for ``change`` against the current state, without locking."""
        return self._plan(self._snapshot(member_id), change)

    def apply(
        self,
        plan: RecalculationPlan,
        member_updates: dict[str, Any] | None = None,
    ) -> TransitionResult:
        """
        Commit a previewed plan.

        Re-reads the member under the lock.  A member already in the plan's
        result state is returned unchanged (``applied=False``); a member that
        moved since the plan was computed raises ConcurrentModificationError.
        """

        def work() -> TransitionResult:
            snapshot = self._snapshot(plan.member_id)
            if snapshot.fingerprint == plan.result_fingerprint:
                logger.info("plan_already_applied", extra={"plan_id": str(plan.plan_id)})
                return TransitionResult(plan, snapshot.member, plan.transition, applied=False)
            if (
                snapshot.version != plan.base_version
                or snapshot.fingerprint != plan.base_fingerprint
            ):
                logger.warning(
                    "concurrent_modification_detected",
                    extra={
                        "plan_id": str(plan.plan_id),
                        "expected_version": plan.base_version,
                        "actual_version": snapshot.version,
                    },
                )
                raise ConcurrentModificationError(
                    str(plan.member_id), plan.base_version, snapshot.version
                )
            return self._commit(snapshot, plan, member_updates)

        with LogContext.bind(member_id=plan.member_id, actor_id=plan.change.actor_id):
            return self.store.with_member_lock(plan.member_id, work)

    def _snapshot(self, member_id: UUID) -> MemberSnapshot:
        return MemberSnapshot.of(
            self.store.load_member(member_id),
            self.store.load_transitions(member_id),
            self.store.load_periods(member_id),
        )

    def _plan(self, snapshot: MemberSnapshot, change: TransitionChange) -> RecalculationPlan:
        plan = self.recalculator.recalculate(
            snapshot, change, today=self.clock.today(), now=self.clock.now()
        )
        logger.info(
            "recalculation_planned",
            extra={
                "member_id": str(snapshot.member_id),
                "plan_id": str(plan.plan_id),
                "change": type(change).__name__,
                "out_of_order": plan.out_of_order,
                "has_changes": plan.has_changes,
                "removed": len(plan.removed_transitions),
                "restored": len(plan.restored_transitions),
            },
        )
        return plan

    def _execute(
        self,
        member_id: UUID,
        actor_id: UUID,
        build: Callable[[MemberSnapshot], TransitionChange],
        *,
        member_updates: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> TransitionResult:
        """Snapshot, plan and commit one change under the member lock."""

        def work() -> TransitionResult:
            snapshot = self._snapshot(member_id)
            plan = self._plan(snapshot, build(snapshot))
            return self._commit(snapshot, plan, member_updates, reason=reason)

        with LogContext.bind(member_id=member_id, actor_id=actor_id):
            return self.store.with_member_lock(member_id, work)

    def _commit(
        self,
        snapshot: MemberSnapshot,
        plan: RecalculationPlan,
        member_updates: dict[str, Any] | None = None,
        *,
        reason: str | None = None,
    ) -> TransitionResult:
        actor_id = plan.change.actor_id
        member = snapshot.member
        if plan.final_member_status != member.current_status:
            member = replace(
                member,
                current_status=plan.final_member_status,
                status_changed_at=self.clock.now(),
                status_changed_by_id=actor_id,
                status_change_reason=(
                    reason or (plan.transition.reason if plan.transition else None)
                ),
            )
        member = self._track_cancellation_date(member, plan)
        if member_updates:
            member = replace(member, **member_updates)

        with LogContext.bind(plan_id=plan.plan_id):
            stored = self.store.save_member(member, expected_version=snapshot.version)
            self.store.save_transitions(plan.member_id, plan.final_transitions, actor_id=actor_id)
            self.store.save_periods(plan.member_id, plan.final_periods, actor_id=actor_id)
            logger.info(
                "plan_applied",
                extra={
                    "transition_id": str(plan.transition.id) if plan.transition else None,
                    "current_status": stored.current_status.value,
                    "version": stored.version,
                    "removed": len(plan.removed_transitions),
                    "restored": len(plan.restored_transitions),
                    "changed_periods": len(plan.changed_periods),
                },
            )
        return TransitionResult(plan, stored, plan.transition, applied=True)

    def _track_cancellation_date(
        self, member: MemberInfo, plan: RecalculationPlan
    ) -> MemberInfo:
        """
        Keep an informal cancellation date in step with the exit it records.

        An exit recorded without a formal notice sets the cancellation date
        when none is set.  The date is cleared again once that exit is gone
        from the chain or the member has come back after it.  Formal notices
        are managed by set_cancellation() and revoke_cancellation() only.
        """
        if member.has_formal_cancellation:
            return member
        if member.cancellation_date is None:
            entry = plan.transition
            if (
                isinstance(plan.change, InsertTransition)
                and entry is not None
                and entry.to_status == MemberStatus.LEFT
                and not entry.is_self_transition
            ):
                return replace(member, cancellation_date=entry.effective_date)
            return member
        exit_dates = {
            e.effective_date
            for e in plan.final_transitions
            if e.to_status == MemberStatus.LEFT and not e.is_self_transition
        }
        superseded = (
            member.cancellation_date <= self.clock.today()
            and plan.final_member_status != MemberStatus.LEFT
        )
        if member.cancellation_date not in exit_dates or superseded:
            return replace(member, cancellation_date=None)
        return member
