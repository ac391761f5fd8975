"""Domain models for the membership kernel."""

from membership_kernel.models.member import Member
from membership_kernel.models.membership_period import MembershipPeriod
from membership_kernel.models.status_transition import StatusTransition

__all__ = [
    "Member",
    "MembershipPeriod",
    "StatusTransition",
]
