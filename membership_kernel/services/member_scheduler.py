"""
MemberScheduler -- daily processing of due formal cancellations.

Responsibility:
    Finds members whose formal cancellation date has arrived and records the
    LEFT transition for each of them at the cancellation date, as the system
    actor, with the VOLUNTARY left category.

Architecture position:
    Kernel > Services -- imperative shell.  Meant to be run once a day by
    whatever job runner hosts the application.

Exits recorded ahead of time:
    A member whose LEFT entry on the cancellation date already exists is not
    processed again; once that date has passed, the member's cached status
    is refreshed so the member stops showing up as due.

Failure modes:
    A member whose transition fails is logged and reported in the run
    result; the run continues with the next member.
"""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from membership_kernel.domain.statuses import SYSTEM_ACTOR_ID, LeftCategory, MemberStatus
from membership_kernel.exceptions import MembershipKernelError
from membership_kernel.logging_config import get_logger
from membership_kernel.services.lifecycle_engine import LifecycleEngine

logger = get_logger("services.member_scheduler")

CANCELLATION_REASON = "Formal cancellation took effect"


@dataclass(frozen=True)
class SchedulerFailure:
    member_id: UUID
    code: str
    message: str


@dataclass(frozen=True)
class SchedulerRunResult:
    as_of: date
    processed: tuple[UUID, ...]
    failed: tuple[SchedulerFailure, ...]


class MemberScheduler:
    """Runs the time-triggered parts of the member lifecycle."""

    def __init__(self, engine: LifecycleEngine):
        self.engine = engine

    def process_due_cancellations(self, as_of: date | None = None) -> SchedulerRunResult:
        as_of = as_of or self.engine.clock.today()
        processed: list[UUID] = []
        failed: list[SchedulerFailure] = []

        for member_id in self.engine.store.find_due_cancellations(as_of):
            try:
                member = self.engine.get_member(member_id)
                if self._already_left(member_id, member.cancellation_date):
                    self.engine.refresh_current_status(member_id)
                    continue
                self.engine.request_transition(
                    member_id,
                    MemberStatus.LEFT,
                    CANCELLATION_REASON,
                    SYSTEM_ACTOR_ID,
                    effective_date=member.cancellation_date,
                    left_category=LeftCategory.VOLUNTARY,
                )
                processed.append(member_id)
            except MembershipKernelError as exc:
                logger.warning(
                    "scheduled_cancellation_failed",
                    extra={"member_id": str(member_id), "error_code": exc.code},
                    exc_info=True,
                )
                failed.append(SchedulerFailure(member_id, exc.code, str(exc)))

        logger.info(
            "scheduler_run_completed",
            extra={"as_of": as_of, "processed": len(processed), "failed": len(failed)},
        )
        return SchedulerRunResult(as_of, tuple(processed), tuple(failed))

    def _already_left(self, member_id: UUID, cancellation_date: date) -> bool:
        """A LEFT entry on the cancellation date exists but is not yet in effect today."""
        return any(
            entry.to_status == MemberStatus.LEFT and not entry.is_self_transition
            for entry in self.engine.get_status_history(member_id)
            if entry.effective_date == cancellation_date
        )
