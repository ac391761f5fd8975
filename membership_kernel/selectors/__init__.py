"""Read-only selectors over lifecycle tables."""

from membership_kernel.selectors.base import BaseSelector
from membership_kernel.selectors.member_selector import MemberSelector

__all__ = ["BaseSelector", "MemberSelector"]
