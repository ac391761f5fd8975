"""
Config -> Kernel Bridges.

Functions that turn a validated LifecycleConfig into kernel objects.  They
live in membership_config (the producer) because the kernel must NEVER
import membership_config.

Usage:
    from membership_config import get_active_config
    from membership_config.bridges import build_lifecycle_engine

    config = get_active_config("club")
    engine = build_lifecycle_engine(store, config)
"""

from __future__ import annotations

from membership_config.schema import LifecycleConfig
from membership_kernel.domain.clock import Clock
from membership_kernel.domain.status_graph import (
    STATUS_GRAPH_PRESETS,
    NamedTransition,
    StatusGraph,
)
from membership_kernel.domain.statuses import LeftCategory, MemberStatus
from membership_kernel.services.lifecycle_engine import LifecycleEngine
from membership_kernel.services.member_store import MemberStore


def build_status_graph(config: LifecycleConfig) -> StatusGraph:
    """
    Build the StatusGraph a configuration describes.

    Raises:
        ValueError: If the configuration names an unknown preset or the
            explicit graph is inconsistent (see ``StatusGraph.build``).
    """
    if config.status_graph:
        preset = STATUS_GRAPH_PRESETS.get(config.status_graph)
        if preset is None:
            raise ValueError(f"Unknown status graph preset '{config.status_graph}'")
        return StatusGraph.build(
            config.name,
            preset.edges,
            (
                [MemberStatus(s) for s in config.period_statuses]
                if config.period_statuses is not None
                else preset.period_statuses
            ),
            initial_status=(
                MemberStatus(config.initial_status)
                if config.initial_status
                else preset.initial_status
            ),
            named_transitions=preset.named_transitions.values(),
            primary_targets=(
                {MemberStatus(k): MemberStatus(v) for k, v in config.primary_targets}
                or preset.primary_targets
            ),
        )

    return StatusGraph.build(
        config.name,
        {
            MemberStatus(source): [MemberStatus(t) for t in targets]
            for source, targets in config.transitions or ()
        },
        [MemberStatus(s) for s in config.period_statuses or ()],
        initial_status=MemberStatus(config.initial_status or MemberStatus.PENDING.value),
        named_transitions=[
            NamedTransition(
                from_status=MemberStatus(nt.from_status),
                target_status=MemberStatus(nt.target_status),
                action=nt.action,
                destructive=nt.destructive,
                auto_left_category=(
                    LeftCategory(nt.auto_left_category) if nt.auto_left_category else None
                ),
            )
            for nt in config.named_transitions
        ],
        primary_targets={MemberStatus(k): MemberStatus(v) for k, v in config.primary_targets},
    )


def build_lifecycle_engine(
    store: MemberStore,
    config: LifecycleConfig,
    clock: Clock | None = None,
) -> LifecycleEngine:
    """Build a LifecycleEngine wired with the configuration's graph and options."""
    graph = build_status_graph(config)
    return LifecycleEngine(
        store,
        graph,
        clock,
        default_membership_type_id=config.default_membership_type,
        one_change_per_day=config.one_change_per_day,
        cancellable_statuses=(
            [MemberStatus(s) for s in config.cancellable_statuses]
            if config.cancellable_statuses is not None
            else None
        ),
        max_reason_length=config.max_reason_length,
    )
