"""
Pytest fixtures for the membership lifecycle test suite.

Provides:
- Structured logging capture
- A deterministic clock fixed at 2025-06-01
- Lifecycle engines over the in-memory store (standard and club graphs)
- A SQL-backed store (SQLite in memory unless DATABASE_URL is set)
- Record factories for the pure domain tests live in tests/factories.py

Environment Variables:
- DATABASE_URL: database for the persistence tests.  Defaults to an
  in-memory SQLite database; a PostgreSQL URL runs the same tests against
  PostgreSQL (install the ``postgres`` extra).
"""

import json
import logging
import os
from datetime import datetime, timezone
from io import StringIO
from typing import Generator
from uuid import UUID

import pytest
from sqlalchemy import delete

from membership_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from membership_kernel.domain.clock import DeterministicClock
from membership_kernel.domain.dtos import MemberInfo
from membership_kernel.domain.status_graph import CLUB_GRAPH, STANDARD_GRAPH
from membership_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from membership_kernel.models import Member, MembershipPeriod, StatusTransition
from membership_kernel.services.lifecycle_engine import LifecycleEngine
from membership_kernel.services.member_store import (
    InMemoryMemberStore,
    SqlAlchemyMemberStore,
)

from tests.factories import TEST_ACTOR_ID


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture membership_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.request_transition(...)
            logs = captured_logs()
            assert any(r["message"] == "plan_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("membership_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock, actor, engines
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Clock fixed at noon UTC on 2025-06-01."""
    return DeterministicClock(datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def memory_store() -> InMemoryMemberStore:
    return InMemoryMemberStore()


@pytest.fixture
def engine(memory_store, deterministic_clock) -> LifecycleEngine:
    """Engine over the standard graph."""
    return LifecycleEngine(
        memory_store,
        STANDARD_GRAPH,
        deterministic_clock,
        default_membership_type_id="REGULAR",
    )


@pytest.fixture
def club_engine(memory_store, deterministic_clock) -> LifecycleEngine:
    """Engine over the full club graph."""
    return LifecycleEngine(
        memory_store,
        CLUB_GRAPH,
        deterministic_clock,
        default_membership_type_id="REGULAR",
    )


@pytest.fixture
def register(test_actor_id):
    """Factory fixture registering a member on a given engine."""

    def _register(engine, name="Test Member", **kwargs) -> MemberInfo:
        return engine.register_member(name, test_actor_id, **kwargs)

    return _register


# =============================================================================
# SQL store
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", "sqlite://")


@pytest.fixture(scope="session")
def db_engine():
    """Engine and tables, created once per test session."""
    engine = init_engine_from_url(get_database_url(), echo=False)
    drop_tables()
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


def _clear_tables() -> None:
    with session_scope() as session:
        session.execute(delete(StatusTransition))
        session.execute(delete(MembershipPeriod))
        session.execute(delete(Member))


@pytest.fixture
def sql_store(db_engine, deterministic_clock) -> Generator[SqlAlchemyMemberStore, None, None]:
    _clear_tables()
    yield SqlAlchemyMemberStore(get_session_factory(), deterministic_clock)
    _clear_tables()


@pytest.fixture
def sql_engine(sql_store, deterministic_clock) -> LifecycleEngine:
    return LifecycleEngine(
        sql_store,
        CLUB_GRAPH,
        deterministic_clock,
        default_membership_type_id="REGULAR",
    )
