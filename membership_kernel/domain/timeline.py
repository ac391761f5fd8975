"""Read-only projection of a member's timeline for display."""

from __future__ import annotations

from collections.abc import Iterable

from membership_kernel.domain.dtos import (
    MembershipPeriodInfo,
    StatusTransitionInfo,
    TimelineItem,
    TimelineItemKind,
)

# Same-day rows: a period ending, then the transitions, then a period starting.
_KIND_ORDER = {
    TimelineItemKind.PERIOD_END: 0,
    TimelineItemKind.TRANSITION: 1,
    TimelineItemKind.PERIOD_START: 2,
}


def build_timeline(
    transitions: Iterable[StatusTransitionInfo],
    periods: Iterable[MembershipPeriodInfo],
) -> tuple[TimelineItem, ...]:
    """Merge transitions and period boundaries into one date-sorted sequence.

    Void periods cover no day and are left out.
    """
    rows: list[tuple[tuple, TimelineItem]] = []
    for entry in transitions:
        item = TimelineItem(entry.effective_date, TimelineItemKind.TRANSITION, transition=entry)
        rows.append(((entry.effective_date, _KIND_ORDER[item.kind], entry.sequence), item))
    for period in periods:
        if period.is_void:
            continue
        start = TimelineItem(period.join_date, TimelineItemKind.PERIOD_START, period=period)
        rows.append(((period.join_date, _KIND_ORDER[start.kind], 0), start))
        if period.leave_date is not None:
            end = TimelineItem(period.leave_date, TimelineItemKind.PERIOD_END, period=period)
            rows.append(((period.leave_date, _KIND_ORDER[end.kind], 0), end))
    rows.sort(key=lambda row: row[0])
    return tuple(item for _, item in rows)
