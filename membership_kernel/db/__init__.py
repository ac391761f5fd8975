"""Database layer - engine, base classes and types."""

from membership_kernel.db.base import UUID, Base, SoftDeleteMixin, TrackedBase, UUIDString
from membership_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_env,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "init_engine_from_url",
    "init_engine_from_env",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "Base",
    "TrackedBase",
    "SoftDeleteMixin",
    "UUIDString",
    "UUID",
]
