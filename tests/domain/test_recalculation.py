"""
ChainRecalculator: re-deriving a member timeline after out-of-order changes.

Each test builds a snapshot by hand, applies one change and inspects the
resulting plan.  No storage is involved.
"""

from dataclasses import replace
from datetime import date
from uuid import uuid4

import pytest

from membership_kernel.domain.consistency import find_invariant_violations
from membership_kernel.domain.recalculation import (
    ChainRecalculator,
    DeleteTransition,
    EditTransition,
    InsertTransition,
)
from membership_kernel.domain.status_graph import STANDARD_GRAPH
from membership_kernel.domain.statuses import LeftCategory, MemberStatus, TransitionKind
from membership_kernel.exceptions import (
    InvalidTransitionError,
    MissingCategoryError,
    OverlapError,
    ReasonLengthError,
    SameDayTransitionError,
    TransitionNotFoundError,
)

from tests.factories import (
    MEMBER_ID,
    NOW,
    TEST_ACTOR_ID,
    TODAY,
    make_entry,
    make_period,
    make_snapshot,
)

P = MemberStatus


@pytest.fixture
def recalculator() -> ChainRecalculator:
    return ChainRecalculator(STANDARD_GRAPH, default_membership_type_id="REGULAR")


def _run(recalculator, snapshot, change):
    return recalculator.recalculate(snapshot, change, today=TODAY, now=NOW)


def _insert(to_status, on, **kwargs):
    return InsertTransition(
        to_status=to_status,
        reason=kwargs.pop("reason", "test"),
        effective_date=on,
        actor_id=TEST_ACTOR_ID,
        **kwargs,
    )


def _active_member():
    """PENDING -> ACTIVE on 2024-03-01, period P1 opened by the entry."""
    p1 = make_period(date(2024, 3, 1))
    admit = make_entry(P.PENDING, P.ACTIVE, date(2024, 3, 1), 1, opened_period_id=p1.id)
    return admit, p1


class TestInsertAtEnd:
    """Appending after all history is the common case."""

    def test_first_activation_opens_a_period(self, recalculator):
        plan = _run(recalculator, make_snapshot(), _insert(P.ACTIVE, date(2024, 3, 1)))

        assert plan.transition.from_status == P.PENDING
        assert plan.transition.to_status == P.ACTIVE
        assert len(plan.opened_periods) == 1
        opened = plan.opened_periods[0]
        assert opened.join_date == date(2024, 3, 1)
        assert opened.membership_type_id == "REGULAR"
        assert plan.transition.opened_period_id == opened.id
        assert plan.has_changes is False
        assert plan.out_of_order is False
        assert plan.final_member_status == P.ACTIVE

    def test_leaving_closes_the_open_period(self, recalculator):
        admit, p1 = _active_member()
        snapshot = make_snapshot([admit], [p1])
        plan = _run(
            recalculator,
            snapshot,
            _insert(P.LEFT, date(2025, 1, 1), left_category=LeftCategory.VOLUNTARY),
        )

        assert plan.closed_periods[0].id == p1.id
        assert plan.closed_periods[0].leave_date == date(2025, 1, 1)
        assert plan.transition.closed_period_id == p1.id
        assert plan.transition.left_category == LeftCategory.VOLUNTARY
        assert plan.has_changes is False
        assert plan.final_member_status == P.LEFT

    def test_future_exit_keeps_current_status(self, recalculator):
        admit, p1 = _active_member()
        plan = _run(
            recalculator,
            make_snapshot([admit], [p1]),
            _insert(P.LEFT, date(2030, 1, 1), left_category=LeftCategory.VOLUNTARY),
        )
        assert plan.final_member_status == P.ACTIVE
        assert plan.closed_periods[0].leave_date == date(2030, 1, 1)

    def test_plan_is_deterministic(self, recalculator):
        snapshot = make_snapshot()
        change = _insert(P.ACTIVE, date(2024, 3, 1))
        assert _run(recalculator, snapshot, change) == _run(recalculator, snapshot, change)

    def test_snapshot_is_not_mutated(self, recalculator):
        admit, p1 = _active_member()
        snapshot = make_snapshot([admit], [p1])
        fingerprint = snapshot.fingerprint
        _run(recalculator, snapshot, _insert(P.INACTIVE, date(2024, 6, 1)))
        assert snapshot.fingerprint == fingerprint


class TestValidation:
    """Errors on the requested entry itself."""

    def test_invalid_edge(self, recalculator):
        with pytest.raises(InvalidTransitionError):
            _run(recalculator, make_snapshot(), _insert(P.INACTIVE, date(2024, 3, 1)))

    def test_missing_left_category(self, recalculator):
        admit, p1 = _active_member()
        with pytest.raises(MissingCategoryError):
            _run(recalculator, make_snapshot([admit], [p1]), _insert(P.LEFT, date(2025, 1, 1)))

    def test_blank_reason(self, recalculator):
        with pytest.raises(ReasonLengthError):
            _run(recalculator, make_snapshot(), _insert(P.ACTIVE, date(2024, 3, 1), reason=" "))

    def test_second_change_on_same_day(self, recalculator):
        admit, p1 = _active_member()
        with pytest.raises(SameDayTransitionError) as exc_info:
            _run(recalculator, make_snapshot([admit], [p1]), _insert(P.INACTIVE, date(2024, 3, 1)))
        assert exc_info.value.existing_transition_id == str(admit.id)

    def test_same_day_allowed_when_rule_disabled(self):
        recalculator = ChainRecalculator(STANDARD_GRAPH, one_change_per_day=False)
        admit, p1 = _active_member()
        plan = _run(
            recalculator, make_snapshot([admit], [p1]), _insert(P.INACTIVE, date(2024, 3, 1))
        )
        assert plan.final_member_status == P.INACTIVE
        assert plan.closed_periods[0].is_void

    def test_unknown_transition(self, recalculator):
        with pytest.raises(TransitionNotFoundError):
            _run(recalculator, make_snapshot(), DeleteTransition((MEMBER_ID,), TEST_ACTOR_ID))

    def test_derived_overlap_is_rejected(self, recalculator):
        """Opening a period next to a later manual period would overlap it."""
        early = make_period(date(2024, 1, 1), date(2024, 3, 1))
        later = make_period(date(2024, 9, 1), date(2024, 10, 1))
        with pytest.raises(OverlapError):
            _run(
                recalculator,
                make_snapshot([], [early, later]),
                _insert(P.ACTIVE, date(2024, 5, 1)),
            )


class TestOutOfOrderInsert:
    """Backdated inserts re-chain, restore or remove later entries."""

    def test_backdated_exit_removes_invalid_later_entry(self, recalculator):
        admit, p1 = _active_member()
        deactivate = make_entry(
            P.ACTIVE, P.INACTIVE, date(2024, 6, 1), 2, closed_period_id=p1.id
        )
        p1 = replace(p1, leave_date=date(2024, 6, 1))
        plan = _run(
            recalculator,
            make_snapshot([admit, deactivate], [p1]),
            _insert(P.LEFT, date(2024, 5, 1), left_category=LeftCategory.VOLUNTARY),
        )

        assert plan.out_of_order is True
        assert plan.removed_transitions == (deactivate,)
        assert plan.has_changes is True
        assert [e.to_status for e in plan.final_transitions] == [P.ACTIVE, P.LEFT]
        assert plan.adjusted_periods[0].leave_date == date(2024, 5, 1)
        assert plan.final_member_status == P.LEFT

    def test_metadata_entry_follows_new_predecessor(self, recalculator):
        admit, p1 = _active_member()
        note = make_entry(P.ACTIVE, P.ACTIVE, date(2024, 4, 1), 2, reason="Address changed")
        plan = _run(
            recalculator,
            make_snapshot([admit, note], [p1]),
            _insert(P.INACTIVE, date(2024, 3, 15)),
        )

        restored = plan.restored_transitions[0]
        assert restored.id == note.id
        assert (restored.from_status, restored.to_status) == (P.INACTIVE, P.INACTIVE)
        assert plan.closed_periods[0].leave_date == date(2024, 3, 15)
        assert plan.has_changes is True

    def test_backdated_head_insert_without_history_is_plain(self, recalculator):
        plan = _run(recalculator, make_snapshot(), _insert(P.ACTIVE, date(2024, 2, 1)))
        assert plan.has_changes is False
        assert plan.out_of_order is False
        assert plan.removed_transitions == ()
        assert plan.restored_transitions == ()


class TestDelete:

    def test_delete_restores_later_entry_and_reopens_period(self, recalculator):
        p1 = make_period(date(2024, 3, 1), date(2024, 6, 1))
        p2 = make_period(date(2024, 9, 1))
        admit = make_entry(P.PENDING, P.ACTIVE, date(2024, 3, 1), 1, opened_period_id=p1.id)
        deactivate = make_entry(
            P.ACTIVE, P.INACTIVE, date(2024, 6, 1), 2, closed_period_id=p1.id
        )
        reactivate = make_entry(
            P.INACTIVE, P.ACTIVE, date(2024, 9, 1), 3, opened_period_id=p2.id
        )
        plan = _run(
            recalculator,
            make_snapshot([admit, deactivate, reactivate], [p1, p2]),
            DeleteTransition((deactivate.id,), TEST_ACTOR_ID),
        )

        assert plan.transition is None
        assert [e.id for e in plan.restored_transitions] == [reactivate.id]
        assert plan.restored_transitions[0].from_status == P.ACTIVE
        assert [p.id for p in plan.reopened_periods] == [p1.id]
        assert [p.id for p in plan.closed_periods] == [p2.id]
        assert plan.closed_periods[0].is_void
        assert plan.has_changes is True
        assert find_invariant_violations(
            STANDARD_GRAPH, MEMBER_ID, P.PENDING, plan.final_transitions, plan.final_periods
        ) == []

    def test_delete_only_entry_voids_its_period(self, recalculator):
        admit, p1 = _active_member()
        plan = _run(
            recalculator,
            make_snapshot([admit], [p1]),
            DeleteTransition((admit.id,), TEST_ACTOR_ID),
        )
        assert plan.final_transitions == ()
        assert plan.final_member_status == P.PENDING
        assert plan.closed_periods[0].id == p1.id
        assert plan.closed_periods[0].is_void
        assert plan.has_changes is False


class TestEdit:

    def test_edit_reason_only(self, recalculator):
        admit, p1 = _active_member()
        plan = _run(
            recalculator,
            make_snapshot([admit], [p1]),
            EditTransition(admit.id, TEST_ACTOR_ID, reason="Board decision"),
        )
        assert plan.transition.reason == "Board decision"
        assert plan.changed_periods == ()
        assert plan.has_changes is False

    def test_edit_date_moves_period_start(self, recalculator):
        admit, p1 = _active_member()
        plan = _run(
            recalculator,
            make_snapshot([admit], [p1]),
            EditTransition(admit.id, TEST_ACTOR_ID, effective_date=date(2024, 1, 1)),
        )
        assert plan.transition.effective_date == date(2024, 1, 1)
        assert plan.transition.sequence == admit.sequence
        assert plan.adjusted_periods[0].id == p1.id
        assert plan.adjusted_periods[0].join_date == date(2024, 1, 1)
        assert plan.has_changes is False

    def test_edit_to_invalid_edge(self, recalculator):
        admit, p1 = _active_member()
        deactivate = make_entry(P.ACTIVE, P.INACTIVE, date(2024, 6, 1), 2)
        with pytest.raises(InvalidTransitionError):
            _run(
                recalculator,
                make_snapshot([admit, deactivate], [replace(p1, leave_date=date(2024, 6, 1))]),
                EditTransition(deactivate.id, TEST_ACTOR_ID, to_status=P.PENDING),
            )

    def test_type_change_target_cannot_be_edited(self, recalculator):
        admit, p1 = _active_member()
        change = make_entry(
            P.ACTIVE, P.ACTIVE, date(2024, 6, 1), 2, kind=TransitionKind.TYPE_CHANGE
        )
        with pytest.raises(InvalidTransitionError):
            _run(
                recalculator,
                make_snapshot([admit, change], [p1]),
                EditTransition(change.id, TEST_ACTOR_ID, to_status=P.INACTIVE),
            )


class TestTypeChange:

    def test_type_change_hands_over_on_same_date(self, recalculator):
        admit, p1 = _active_member()
        plan = _run(
            recalculator,
            make_snapshot([admit], [p1]),
            _insert(
                P.ACTIVE,
                date(2024, 9, 1),
                membership_type_id="SENIOR",
                kind=TransitionKind.TYPE_CHANGE,
            ),
        )
        closed, = plan.closed_periods
        opened, = plan.opened_periods
        assert closed.id == p1.id and closed.leave_date == date(2024, 9, 1)
        assert opened.join_date == date(2024, 9, 1)
        assert opened.membership_type_id == "SENIOR"
        assert plan.transition.is_self_transition
        assert plan.transition.closed_period_id == p1.id
        assert plan.transition.opened_period_id == opened.id
        assert plan.has_changes is False

    def test_self_transition_with_new_type_is_a_type_change(self, recalculator):
        admit, p1 = _active_member()
        plan = _run(
            recalculator,
            make_snapshot([admit], [p1]),
            _insert(P.ACTIVE, date(2024, 9, 1), membership_type_id="SENIOR"),
        )
        assert plan.transition.kind == TransitionKind.TYPE_CHANGE
        assert [
            (p.join_date, p.leave_date, p.membership_type_id) for p in plan.final_periods
        ] == [
            (date(2024, 3, 1), date(2024, 9, 1), "REGULAR"),
            (date(2024, 9, 1), None, "SENIOR"),
        ]

    def test_self_transition_with_current_type_is_a_note(self, recalculator):
        admit, p1 = _active_member()
        plan = _run(
            recalculator,
            make_snapshot([admit], [p1]),
            _insert(P.ACTIVE, date(2024, 9, 1), membership_type_id="REGULAR"),
        )
        assert plan.transition.kind == TransitionKind.STATUS_CHANGE
        assert plan.changed_periods == ()


class TestMemberIdentity:

    def test_same_change_on_two_members_derives_distinct_ids(self, recalculator):
        other_id = uuid4()
        change = _insert(P.ACTIVE, date(2024, 3, 1))
        first = _run(recalculator, make_snapshot(), change)
        second = _run(recalculator, make_snapshot(id=other_id), change)

        assert first.base_fingerprint != second.base_fingerprint
        assert first.plan_id != second.plan_id
        assert first.transition.id != second.transition.id
        assert first.opened_periods[0].id != second.opened_periods[0].id
        assert second.transition.member_id == other_id


class TestAffectedRange:
    """Only entries from the changed date on are re-chained."""

    def test_entries_before_the_change_are_carried_over(self, recalculator):
        admit, p1 = _active_member()
        note = make_entry(P.ACTIVE, P.ACTIVE, date(2024, 4, 1), 2, reason="Address changed")
        deactivate = make_entry(
            P.ACTIVE, P.INACTIVE, date(2024, 6, 1), 3, closed_period_id=p1.id
        )
        plan = _run(
            recalculator,
            make_snapshot([admit, note, deactivate], [replace(p1, leave_date=date(2024, 6, 1))]),
            _insert(P.LEFT, date(2024, 5, 1), left_category=LeftCategory.VOLUNTARY),
        )

        assert plan.final_transitions[:2] == (admit, note)
        assert plan.removed_transitions == (deactivate,)
        assert plan.restored_transitions == ()

    def test_earlier_entries_are_not_revalidated(self):
        recalculator = ChainRecalculator(
            STANDARD_GRAPH, default_membership_type_id="REGULAR", max_reason_length=10
        )
        p1 = make_period(date(2024, 3, 1))
        admit = make_entry(
            P.PENDING, P.ACTIVE, date(2024, 3, 1), 1,
            opened_period_id=p1.id, reason="Admitted by the board",
        )
        plan = _run(
            recalculator, make_snapshot([admit], [p1]), _insert(P.INACTIVE, date(2024, 6, 1))
        )
        assert plan.final_transitions[0] == admit
        assert plan.transition.reason == "test"

    def test_later_entries_use_the_reason_limit(self):
        recalculator = ChainRecalculator(
            STANDARD_GRAPH, default_membership_type_id="REGULAR", max_reason_length=10
        )
        p1 = make_period(date(2024, 3, 1))
        admit = make_entry(P.PENDING, P.ACTIVE, date(2024, 3, 1), 1, opened_period_id=p1.id)
        note = make_entry(
            P.ACTIVE, P.ACTIVE, date(2024, 9, 1), 2, reason="Address changed twice"
        )
        with pytest.raises(ReasonLengthError):
            _run(
                recalculator,
                make_snapshot([admit, note], [p1]),
                _insert(P.INACTIVE, date(2024, 6, 1)),
            )

    def test_delete_several_entries_at_once(self, recalculator):
        admit, p1 = _active_member()
        note = make_entry(P.ACTIVE, P.ACTIVE, date(2024, 4, 1), 2, reason="Address changed")
        other = make_entry(P.ACTIVE, P.ACTIVE, date(2024, 8, 1), 3, reason="Phone changed")
        plan = _run(
            recalculator,
            make_snapshot([admit, note, other], [p1]),
            DeleteTransition((other.id, note.id), TEST_ACTOR_ID),
        )
        assert plan.final_transitions == (admit,)
        assert plan.out_of_order is False
        assert plan.has_changes is False
