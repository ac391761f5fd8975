"""
Imperative shell of the membership kernel: storage port, writers and the
lifecycle engine.
"""

from membership_kernel.services.lifecycle_engine import (
    BulkSkip,
    BulkTransitionResult,
    LifecycleEngine,
    TransitionResult,
)
from membership_kernel.services.member_scheduler import (
    MemberScheduler,
    SchedulerFailure,
    SchedulerRunResult,
)
from membership_kernel.services.member_store import (
    InMemoryMemberStore,
    MemberStore,
    SqlAlchemyMemberStore,
)

__all__ = [
    "BulkSkip",
    "BulkTransitionResult",
    "InMemoryMemberStore",
    "LifecycleEngine",
    "MemberScheduler",
    "MemberStore",
    "SchedulerFailure",
    "SchedulerRunResult",
    "SqlAlchemyMemberStore",
    "TransitionResult",
]
