"""
Lifecycle configuration: YAML loading, validation and bridging into the kernel.
"""

import textwrap
from datetime import date

import pytest

from membership_config import available_configs, get_active_config, validate_configuration
from membership_config.bridges import build_lifecycle_engine, build_status_graph
from membership_config.loader import (
    compute_checksum,
    load_config_file,
    load_yaml_text,
    parse_lifecycle_config,
)
from membership_kernel.domain.status_graph import CLUB_GRAPH, STANDARD_GRAPH
from membership_kernel.domain.statuses import LeftCategory, MemberStatus
from membership_kernel.services.member_store import InMemoryMemberStore

P = MemberStatus


def _write(tmp_path, name, body):
    path = tmp_path / f"{name}.yaml"
    path.write_text(textwrap.dedent(body))
    return path


def _config(body):
    raw = textwrap.dedent(body).encode()
    return parse_lifecycle_config(load_yaml_text(raw), compute_checksum(raw))


def _errors(body):
    return validate_configuration(_config(body)).errors


class TestShippedConfigurations:

    def test_available(self):
        assert {"default", "club"} <= set(available_configs())

    def test_default_uses_standard_preset(self):
        config = get_active_config()
        graph = build_status_graph(config)

        assert config.name == "default"
        assert config.status_graph == "standard"
        assert len(config.checksum) == 64
        assert dict(graph.edges) == dict(STANDARD_GRAPH.edges)
        assert graph.period_statuses == STANDARD_GRAPH.period_statuses
        assert dict(graph.named_transitions) == dict(STANDARD_GRAPH.named_transitions)

    def test_club_graph_matches_preset(self):
        graph = build_status_graph(get_active_config("club"))

        assert dict(graph.edges) == dict(CLUB_GRAPH.edges)
        assert graph.period_statuses == CLUB_GRAPH.period_statuses
        assert graph.initial_status == CLUB_GRAPH.initial_status
        assert dict(graph.named_transitions) == dict(CLUB_GRAPH.named_transitions)
        assert dict(graph.primary_targets) == dict(CLUB_GRAPH.primary_targets)

    def test_shipped_sets_validate_cleanly(self):
        for name in ("default", "club"):
            result = validate_configuration(get_active_config(name))
            assert result.is_valid
            assert result.warnings == []

    def test_config_trace_is_logged(self, captured_logs):
        config = get_active_config("club")
        trace = next(r for r in captured_logs() if r["message"] == "MEMBERSHIP_CONFIG_TRACE")
        assert trace["config_name"] == "club"
        assert trace["checksum"] == config.checksum
        assert trace["status_graph"] == "explicit"


class TestBuildLifecycleEngine:

    def test_engine_follows_configuration(self, deterministic_clock, test_actor_id):
        engine = build_lifecycle_engine(
            InMemoryMemberStore(), get_active_config("club"), deterministic_clock
        )
        member = engine.register_member("Ada", test_actor_id)
        engine.request_transition(
            member.id, P.PROBATION, "Admitted on probation", test_actor_id,
            effective_date=date(2024, 3, 1),
        )
        result = engine.request_transition(
            member.id, P.SUSPENDED, "Suspended", test_actor_id, effective_date=date(2024, 6, 1)
        )

        assert engine.get_periods(member.id)[0].membership_type_id == "REGULAR"
        assert engine.get_periods(member.id)[0].is_open
        excluded = engine.request_transition(
            member.id, P.LEFT, "Excluded by the board", test_actor_id,
            effective_date=date(2024, 9, 1),
        )
        assert result.member.current_status == P.SUSPENDED
        assert excluded.transition.left_category == LeftCategory.EXCLUSION

    def test_preset_overrides(self):
        config = _config("""
            name: strict
            version: 2
            status_graph: standard
            period_statuses: [ACTIVE, INACTIVE]
        """)
        graph = build_status_graph(config)
        assert graph.period_statuses == frozenset({P.ACTIVE, P.INACTIVE})
        assert dict(graph.edges) == dict(STANDARD_GRAPH.edges)

    def test_limits_reach_engine(self):
        engine = build_lifecycle_engine(InMemoryMemberStore(), _config("""
            name: terse
            version: 1
            status_graph: standard
            max_reason_length: 40
            one_change_per_day: false
            cancellable_statuses: [ACTIVE, INACTIVE]
        """))
        assert engine.recalculator.max_reason_length == 40
        assert engine.recalculator.one_change_per_day is False
        assert engine.cancellable_statuses == frozenset({P.ACTIVE, P.INACTIVE})


class TestLoader:

    def test_checksum_covers_raw_bytes(self, tmp_path):
        path = _write(tmp_path, "x", """
            name: x
            version: 1
            status_graph: standard
        """)
        config = load_config_file(path)
        assert config.checksum == compute_checksum(path.read_bytes())

    def test_unknown_keys_are_kept_aside(self):
        config = _config("""
            name: x
            version: 1
            status_graph: standard
            fee_schedule: monthly
        """)
        assert config.extra == {"fee_schedule": "monthly"}
        assert validate_configuration(config).warnings

    def test_top_level_must_be_mapping(self):
        with pytest.raises(ValueError):
            load_yaml_text("- just\n- a list\n")

    def test_missing_name(self):
        with pytest.raises(KeyError):
            _config("""
                version: 1
                status_graph: standard
            """)

    def test_transitions_must_be_mapping(self):
        with pytest.raises(ValueError):
            _config("""
                name: x
                version: 1
                transitions: [PENDING, ACTIVE]
            """)


class TestValidator:

    def test_preset_and_transitions(self):
        assert _errors("""
            name: x
            version: 1
            status_graph: standard
            transitions: {PENDING: [ACTIVE], ACTIVE: []}
        """)

    def test_unknown_preset(self):
        assert any("unknown status_graph" in e for e in _errors("""
            name: x
            version: 1
            status_graph: gym
        """))

    def test_no_graph(self):
        assert _errors("""
            name: x
            version: 1
        """)

    def test_unknown_and_undeclared_statuses(self):
        errors = _errors("""
            name: x
            version: 1
            transitions:
              PENDING: [ACTIVE, HONORARY]
              ACTIVE: [LEFT]
        """)
        assert any("unknown status 'HONORARY'" in e for e in errors)
        assert any("undeclared" in e for e in errors)

    def test_named_transition_on_missing_edge(self):
        errors = _errors("""
            name: x
            version: 1
            transitions: {PENDING: [ACTIVE], ACTIVE: [LEFT], LEFT: []}
            period_statuses: [ACTIVE]
            named_transitions:
              - {from: PENDING, to: LEFT, action: Reject}
              - {from: PENDING, to: ACTIVE, action: Admit, auto_left_category: OTHER}
        """)
        assert any("missing edge PENDING -> LEFT" in e for e in errors)
        assert any("left category on an edge into ACTIVE" in e for e in errors)

    def test_cancellable_status_needs_exit(self):
        errors = _errors("""
            name: x
            version: 1
            transitions: {PENDING: [ACTIVE], ACTIVE: [INACTIVE], INACTIVE: [LEFT], LEFT: []}
            period_statuses: [ACTIVE]
            cancellable_statuses: [ACTIVE]
        """)
        assert any("no edge to LEFT" in e for e in errors)

    def test_reason_length_bounds(self):
        assert any("max_reason_length" in e for e in _errors("""
            name: x
            version: 1
            status_graph: standard
            max_reason_length: 0
        """))

    def test_invalid_set_is_refused(self, tmp_path):
        _write(tmp_path, "broken", """
            name: broken
            version: 1
            status_graph: gym
        """)
        with pytest.raises(ValueError, match="validation failed"):
            get_active_config("broken", config_dir=tmp_path)

    def test_missing_set(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config("nowhere", config_dir=tmp_path)

    def test_warnings_are_logged(self, tmp_path, captured_logs):
        _write(tmp_path, "noisy", """
            name: noisy
            version: 1
            status_graph: standard
            legacy_flag: true
        """)
        get_active_config("noisy", config_dir=tmp_path)
        assert any(r["message"] == "config_validation_warning" for r in captured_logs())
