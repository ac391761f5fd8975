"""Member lifecycle enumerations."""

from enum import Enum
from uuid import UUID


class MemberStatus(str, Enum):
    """
    Lifecycle status of a club member.

    Which of these statuses a club uses, how they connect and which of
    them require a membership period is decided by the StatusGraph.
    """

    PENDING = "PENDING"
    PROBATION = "PROBATION"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    LEFT = "LEFT"


class LeftCategory(str, Enum):
    """Why a member's status became LEFT."""

    VOLUNTARY = "VOLUNTARY"
    EXCLUSION = "EXCLUSION"
    REJECTED = "REJECTED"
    DEATH = "DEATH"
    OTHER = "OTHER"


class TransitionKind(str, Enum):
    """
    What a status transition entry records.

    TYPE_CHANGE and CANCELLATION entries are always self-transitions; they
    exist so that the type change and the cancellation notice are explicit
    entries on the business timeline instead of being inferred from dates.
    """

    STATUS_CHANGE = "STATUS_CHANGE"
    TYPE_CHANGE = "TYPE_CHANGE"
    CANCELLATION = "CANCELLATION"


# Actor recorded for changes the system makes on its own (scheduler runs).
SYSTEM_ACTOR_ID = UUID(int=0)
