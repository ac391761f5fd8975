"""
Membership Kernel - Member Lifecycle Engine

A storage-agnostic core for club membership administration with:
- A configurable member status state machine
- A per-member membership-period ledger
- Chain recalculation for backdated, edited and deleted transitions
- Preview/apply split with per-member optimistic concurrency
"""

__version__ = "0.1.0"
