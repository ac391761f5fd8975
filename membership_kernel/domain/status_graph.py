"""
StatusGraph -- member lifecycle state machine definition.

Responsibility
--------------
Pure value objects describing which member statuses exist, which status
changes are allowed, which statuses require a membership period, and the
named transitions (user-facing lifecycle actions with defaulted metadata).

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Edges reference only statuses of the graph.
* ``initial_status`` and every period-requiring status belong to the graph.
* Named transitions describe existing edges; an automatic left category
  only appears on an edge into LEFT.
* Self-transitions are always allowed (metadata-only changes).

Named transitions are keyed by the ``(from_status, target_status)`` edge.
The same target can carry different defaults depending on where the member
comes from: leaving from PENDING is a rejection, leaving from SUSPENDED an
exclusion.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from membership_kernel.domain.statuses import LeftCategory, MemberStatus


@dataclass(frozen=True)
class NamedTransition:
    """A user-facing lifecycle action bound to one edge of the graph.

    Contract: frozen.  ``destructive=True`` marks actions that need an
    explicit confirmation in the calling UI.  ``auto_left_category`` pre-fills
    the left category when the caller supplies none.
    """
    from_status: MemberStatus
    target_status: MemberStatus
    action: str
    destructive: bool = False
    auto_left_category: LeftCategory | None = None


@dataclass(frozen=True)
class StatusGraph:
    """A member lifecycle state machine.

    Contract: frozen; build instances with ``StatusGraph.build``.
    Guarantees: ``can_transition`` is a pure lookup.  Statuses without
    outgoing edges are terminal.
    """
    name: str
    edges: Mapping[MemberStatus, frozenset[MemberStatus]]
    period_statuses: frozenset[MemberStatus]
    initial_status: MemberStatus = MemberStatus.PENDING
    named_transitions: Mapping[tuple[MemberStatus, MemberStatus], NamedTransition] = field(
        default_factory=lambda: MappingProxyType({})
    )
    primary_targets: Mapping[MemberStatus, MemberStatus] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def build(
        cls,
        name: str,
        edges: Mapping[MemberStatus, Iterable[MemberStatus]],
        period_statuses: Iterable[MemberStatus],
        *,
        initial_status: MemberStatus = MemberStatus.PENDING,
        named_transitions: Iterable[NamedTransition] = (),
        primary_targets: Mapping[MemberStatus, MemberStatus] | None = None,
    ) -> StatusGraph:
        """Build a validated graph from plain mappings.

        Raises:
            ValueError: If the graph references unknown statuses or a named
                transition describes an edge the graph does not have.
        """
        frozen_edges = {
            MemberStatus(source): frozenset(MemberStatus(t) for t in targets)
            for source, targets in edges.items()
        }
        statuses = set(frozen_edges)
        for source, targets in frozen_edges.items():
            unknown = targets - statuses
            if unknown:
                raise ValueError(
                    f"Graph '{name}': {source.value} leads to undeclared "
                    f"status(es) {sorted(s.value for s in unknown)}"
                )
        if initial_status not in statuses:
            raise ValueError(
                f"Graph '{name}': initial status {initial_status.value} is not declared"
            )
        requiring = frozenset(MemberStatus(s) for s in period_statuses)
        if not requiring <= statuses:
            raise ValueError(
                f"Graph '{name}': period statuses "
                f"{sorted(s.value for s in requiring - statuses)} are not declared"
            )

        named: dict[tuple[MemberStatus, MemberStatus], NamedTransition] = {}
        for nt in named_transitions:
            if nt.target_status not in frozen_edges.get(nt.from_status, frozenset()):
                raise ValueError(
                    f"Graph '{name}': named transition '{nt.action}' describes "
                    f"missing edge {nt.from_status.value} -> {nt.target_status.value}"
                )
            if nt.auto_left_category is not None and nt.target_status != MemberStatus.LEFT:
                raise ValueError(
                    f"Graph '{name}': named transition '{nt.action}' sets a left "
                    f"category on an edge into {nt.target_status.value}"
                )
            named[(nt.from_status, nt.target_status)] = nt

        primary = dict(primary_targets or {})
        for source, target in primary.items():
            if target not in frozen_edges.get(source, frozenset()):
                raise ValueError(
                    f"Graph '{name}': primary action {source.value} -> "
                    f"{target.value} is not an edge"
                )

        return cls(
            name=name,
            edges=MappingProxyType(frozen_edges),
            period_statuses=requiring,
            initial_status=initial_status,
            named_transitions=MappingProxyType(named),
            primary_targets=MappingProxyType(primary),
        )

    @property
    def statuses(self) -> frozenset[MemberStatus]:
        return frozenset(self.edges)

    def allowed_transitions(self, status: MemberStatus) -> frozenset[MemberStatus]:
        """Statuses reachable from ``status`` in one step (self excluded)."""
        return self.edges.get(status, frozenset())

    def can_transition(self, from_status: MemberStatus, to_status: MemberStatus) -> bool:
        if from_status == to_status:
            return from_status in self.edges
        return to_status in self.allowed_transitions(from_status)

    def is_terminal(self, status: MemberStatus) -> bool:
        return not self.allowed_transitions(status)

    def is_destructive(
        self, status: MemberStatus, from_status: MemberStatus | None = None
    ) -> bool:
        """Whether moving into ``status`` is an irreversible action.

        With ``from_status`` the answer is the named transition's flag for
        that edge; without it, any destructive edge into ``status`` counts.
        """
        if from_status is not None:
            named = self.named_transition(from_status, status)
            return named.destructive if named is not None else False
        return any(
            nt.destructive
            for (_, target), nt in self.named_transitions.items()
            if target == status
        )

    def requires_period(self, status: MemberStatus) -> bool:
        return status in self.period_statuses

    def named_transition(
        self, from_status: MemberStatus, to_status: MemberStatus
    ) -> NamedTransition | None:
        return self.named_transitions.get((from_status, to_status))

    def named_transitions_from(self, status: MemberStatus) -> tuple[NamedTransition, ...]:
        """Named actions available from ``status``, ordered by target."""
        order = list(MemberStatus)
        return tuple(
            sorted(
                (nt for (src, _), nt in self.named_transitions.items() if src == status),
                key=lambda nt: order.index(nt.target_status),
            )
        )

    def primary_target(self, status: MemberStatus) -> MemberStatus | None:
        """The most common next status, if the graph declares one."""
        return self.primary_targets.get(status)


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

_P = MemberStatus

STANDARD_GRAPH = StatusGraph.build(
    "standard",
    {
        _P.PENDING: {_P.ACTIVE, _P.LEFT},
        _P.ACTIVE: {_P.INACTIVE, _P.LEFT},
        _P.INACTIVE: {_P.ACTIVE, _P.LEFT},
        _P.LEFT: set(),
    },
    period_statuses={_P.ACTIVE},
    named_transitions=(
        NamedTransition(_P.PENDING, _P.ACTIVE, "Admit member"),
        NamedTransition(
            _P.PENDING, _P.LEFT, "Reject application",
            destructive=True, auto_left_category=LeftCategory.REJECTED,
        ),
        NamedTransition(_P.ACTIVE, _P.INACTIVE, "Deactivate"),
        NamedTransition(_P.ACTIVE, _P.LEFT, "Record resignation", destructive=True),
        NamedTransition(_P.INACTIVE, _P.ACTIVE, "Reactivate"),
        NamedTransition(_P.INACTIVE, _P.LEFT, "Record resignation", destructive=True),
    ),
    primary_targets={_P.PENDING: _P.ACTIVE, _P.INACTIVE: _P.ACTIVE},
)

CLUB_GRAPH = StatusGraph.build(
    "club",
    {
        _P.PENDING: {_P.PROBATION, _P.ACTIVE, _P.LEFT},
        _P.PROBATION: {_P.ACTIVE, _P.INACTIVE, _P.SUSPENDED, _P.LEFT},
        _P.ACTIVE: {_P.INACTIVE, _P.SUSPENDED, _P.LEFT},
        _P.INACTIVE: {_P.ACTIVE, _P.PROBATION, _P.SUSPENDED, _P.LEFT},
        _P.SUSPENDED: {_P.ACTIVE, _P.INACTIVE, _P.PROBATION, _P.LEFT},
        _P.LEFT: {_P.PENDING, _P.PROBATION, _P.ACTIVE},
    },
    period_statuses={_P.PROBATION, _P.ACTIVE, _P.INACTIVE, _P.SUSPENDED},
    named_transitions=(
        NamedTransition(_P.PENDING, _P.ACTIVE, "Admit member"),
        NamedTransition(_P.PENDING, _P.PROBATION, "Admit on probation"),
        NamedTransition(
            _P.PENDING, _P.LEFT, "Reject application",
            destructive=True, auto_left_category=LeftCategory.REJECTED,
        ),
        NamedTransition(_P.PROBATION, _P.ACTIVE, "Confirm probation"),
        NamedTransition(_P.PROBATION, _P.INACTIVE, "Set dormant"),
        NamedTransition(_P.PROBATION, _P.SUSPENDED, "Suspend"),
        NamedTransition(_P.PROBATION, _P.LEFT, "End probation", destructive=True),
        NamedTransition(_P.ACTIVE, _P.INACTIVE, "Set dormant"),
        NamedTransition(_P.ACTIVE, _P.SUSPENDED, "Suspend"),
        NamedTransition(_P.ACTIVE, _P.LEFT, "Record resignation", destructive=True),
        NamedTransition(_P.INACTIVE, _P.ACTIVE, "Reactivate"),
        NamedTransition(_P.INACTIVE, _P.PROBATION, "Resume probation"),
        NamedTransition(_P.INACTIVE, _P.SUSPENDED, "Suspend"),
        NamedTransition(_P.INACTIVE, _P.LEFT, "Record resignation", destructive=True),
        NamedTransition(_P.SUSPENDED, _P.ACTIVE, "Lift suspension"),
        NamedTransition(_P.SUSPENDED, _P.INACTIVE, "Set dormant"),
        NamedTransition(_P.SUSPENDED, _P.PROBATION, "Resume probation"),
        NamedTransition(
            _P.SUSPENDED, _P.LEFT, "Exclude member",
            destructive=True, auto_left_category=LeftCategory.EXCLUSION,
        ),
        NamedTransition(_P.LEFT, _P.PENDING, "Record re-entry application"),
        NamedTransition(_P.LEFT, _P.PROBATION, "Readmit on probation"),
        NamedTransition(_P.LEFT, _P.ACTIVE, "Readmit member"),
    ),
    primary_targets={
        _P.PENDING: _P.ACTIVE,
        _P.PROBATION: _P.ACTIVE,
        _P.INACTIVE: _P.ACTIVE,
        _P.SUSPENDED: _P.ACTIVE,
        _P.LEFT: _P.ACTIVE,
    },
)

STATUS_GRAPH_PRESETS: Mapping[str, StatusGraph] = MappingProxyType({
    STANDARD_GRAPH.name: STANDARD_GRAPH,
    CLUB_GRAPH.name: CLUB_GRAPH,
})
