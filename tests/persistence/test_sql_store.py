"""
SqlAlchemyMemberStore: the lifecycle engine over real tables.

Runs against in-memory SQLite unless DATABASE_URL points elsewhere.
"""

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import select

from membership_kernel.db.engine import session_scope
from membership_kernel.domain.statuses import LeftCategory, MemberStatus, TransitionKind
from membership_kernel.exceptions import ConcurrentModificationError, MemberNotFoundError
from membership_kernel.models import StatusTransition
from membership_kernel.services.member_scheduler import MemberScheduler
from membership_kernel.services.member_store import MemberStore
from membership_kernel.services.member_writer import MemberWriter

P = MemberStatus


@pytest.fixture
def active_member(sql_engine, register, test_actor_id):
    member = register(sql_engine, club_id="north")
    sql_engine.request_transition(
        member.id, P.ACTIVE, "Admitted", test_actor_id,
        effective_date=date(2024, 3, 1), membership_type_id="ORDENTLICH",
    )
    return sql_engine.get_member(member.id)


def _stored_transitions(member_id):
    with session_scope() as session:
        rows = session.execute(
            select(StatusTransition).where(StatusTransition.member_id == member_id)
        ).scalars().all()
        return [(row.to_status, row.deleted_at is not None, row.deleted_by_id) for row in rows]


class TestRoundTrip:

    def test_store_implements_protocol(self, sql_store):
        assert isinstance(sql_store, MemberStore)

    def test_member_and_timeline_survive_reload(self, sql_engine, active_member, test_actor_id):
        assert active_member.current_status == P.ACTIVE
        assert active_member.version == 2
        assert active_member.club_id == "north"
        assert active_member.status_changed_by_id == test_actor_id

        entry, = sql_engine.get_status_history(active_member.id)
        period, = sql_engine.get_periods(active_member.id)
        assert (entry.from_status, entry.to_status) == (P.PENDING, P.ACTIVE)
        assert entry.kind == TransitionKind.STATUS_CHANGE
        assert entry.effective_date == date(2024, 3, 1)
        assert entry.opened_period_id == period.id
        assert period.membership_type_id == "ORDENTLICH"
        assert period.is_open

    def test_preview_matches_commit(self, sql_engine, active_member, test_actor_id):
        plan = sql_engine.preview_transition(
            active_member.id, P.LEFT, "Resigned", test_actor_id,
            effective_date=date(2025, 1, 1), left_category=LeftCategory.VOLUNTARY,
        )
        result = sql_engine.apply(plan)

        assert result.applied is True
        assert sql_engine.get_status_history(active_member.id)[0].id == plan.transition.id
        assert sql_engine.get_periods(active_member.id)[0].leave_date == date(2025, 1, 1)
        assert sql_engine.apply(plan).applied is False

    def test_same_admission_for_two_members(self, sql_engine, register, test_actor_id):
        first, second = register(sql_engine, name="First"), register(sql_engine, name="Second")
        for member in (first, second):
            sql_engine.request_transition(
                member.id, P.ACTIVE, "Admitted", test_actor_id, effective_date=date(2024, 3, 1)
            )

        (first_entry,), (second_entry,) = (
            sql_engine.get_status_history(m.id) for m in (first, second)
        )
        assert first_entry.id != second_entry.id
        assert second_entry.member_id == second.id
        assert sql_engine.get_periods(second.id)[0].is_open

    def test_bulk_admission_over_sql(self, sql_engine, register, test_actor_id):
        members = [register(sql_engine, name=f"Applicant {i}") for i in range(3)]

        result = sql_engine.bulk_change_status(
            [m.id for m in members], P.ACTIVE, "Admitted", test_actor_id,
            effective_date=date(2025, 1, 1),
        )

        assert [r.member.id for r in result.updated] == [m.id for m in members]
        assert result.skipped == ()

    def test_unknown_member(self, sql_engine):
        with pytest.raises(MemberNotFoundError):
            sql_engine.get_member(uuid4())

    def test_manual_period_with_notes(self, sql_engine, register, test_actor_id):
        member = register(sql_engine)
        sql_engine.create_period(
            member.id, date(2015, 1, 1), test_actor_id,
            leave_date=date(2018, 1, 1), notes="Paper register",
        )
        period, = sql_engine.get_periods(member.id)
        assert period.notes == "Paper register"
        assert sql_engine.get_member(member.id).version == 2


class TestRecalculationPersistence:

    def test_removed_entries_are_soft_deleted(self, sql_engine, active_member, test_actor_id):
        sql_engine.request_transition(
            active_member.id, P.INACTIVE, "Dormant", test_actor_id,
            effective_date=date(2024, 9, 1),
        )
        admission = sql_engine.get_status_history(active_member.id)[-1]

        sql_engine.delete_transition(active_member.id, admission.id, test_actor_id)

        assert sql_engine.get_status_history(active_member.id) == []
        stored = _stored_transitions(active_member.id)
        assert len(stored) == 2
        assert all(deleted and by == test_actor_id for _, deleted, by in stored)
        assert all(p.is_void for p in sql_engine.get_periods(active_member.id))

    def test_moved_admission_reopens_manual_period(self, sql_engine, register, test_actor_id):
        member = register(sql_engine)
        sql_engine.create_period(
            member.id, date(2022, 1, 15), test_actor_id,
            membership_type_id="PASSIV", leave_date=date(2023, 12, 31),
        )
        sql_engine.request_transition(
            member.id, P.PENDING, "Documents received", test_actor_id,
            effective_date=date(2023, 12, 31),
        )
        admission = sql_engine.request_transition(
            member.id, P.ACTIVE, "Admitted", test_actor_id,
            effective_date=date(2024, 3, 1), membership_type_id="ORDENTLICH",
        ).transition

        result = sql_engine.edit_transition(
            member.id, admission.id, test_actor_id, effective_date=date(2022, 1, 15)
        )

        assert len(result.plan.restored_transitions) == 1
        periods = {p.membership_type_id: p for p in sql_engine.get_periods(member.id)}
        assert periods["PASSIV"].is_open
        assert periods["ORDENTLICH"].is_void
        history = sql_engine.get_status_history(member.id)
        assert [(e.from_status, e.to_status) for e in history] == [
            (P.ACTIVE, P.ACTIVE),
            (P.PENDING, P.ACTIVE),
        ]


class TestConcurrencyControl:

    def test_writer_rejects_stale_version(self, sql_store, active_member, deterministic_clock):
        with pytest.raises(ConcurrentModificationError) as exc_info:
            with session_scope() as session:
                MemberWriter(session, deterministic_clock).update_member(
                    active_member, expected_version=1
                )
        assert exc_info.value.actual_version == 2

    def test_stale_plan_is_rejected(self, sql_engine, active_member, test_actor_id):
        plan = sql_engine.preview_transition(
            active_member.id, P.INACTIVE, "Dormant", test_actor_id,
            effective_date=date(2024, 9, 1),
        )
        sql_engine.request_transition(
            active_member.id, P.SUSPENDED, "Suspended", test_actor_id,
            effective_date=date(2024, 8, 1),
        )
        with pytest.raises(ConcurrentModificationError):
            sql_engine.apply(plan)

    def test_failure_inside_lock_rolls_back(self, sql_store, active_member):
        def work():
            sql_store.save_member(active_member, expected_version=active_member.version)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            sql_store.with_member_lock(active_member.id, work)

        assert sql_store.load_member(active_member.id).version == active_member.version


class TestDueCancellations:

    def test_scheduler_over_sql(self, sql_engine, active_member, test_actor_id):
        sql_engine.set_cancellation(
            active_member.id, date(2025, 5, 31), date(2025, 2, 1), test_actor_id
        )
        assert sql_engine.store.find_due_cancellations(date(2025, 6, 1)) == [active_member.id]

        run = MemberScheduler(sql_engine).process_due_cancellations()

        assert run.processed == (active_member.id,)
        member = sql_engine.get_member(active_member.id)
        assert member.current_status == P.LEFT
        assert member.cancellation_date == date(2025, 5, 31)
        assert sql_engine.store.find_due_cancellations(date(2025, 6, 1)) == []
