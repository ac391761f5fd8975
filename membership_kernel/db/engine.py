"""
Module: membership_kernel.db.engine
Responsibility: Owns the process-wide SQLAlchemy engine and session factory
    and the transactional scope every store write runs in.
Architecture position: Kernel > DB.  Imports db/base.py and, for table
    creation only, models/.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED.  Single-writer-per-member comes from
      ``SELECT ... FOR UPDATE`` on the member row plus the version check in
      the member UPDATE, not from the isolation level.
    - In-memory SQLite shares one connection (StaticPool), so every session
      sees the same database.  SQLite ignores FOR UPDATE; the version check
      still rejects a second writer.
    - SQLite enforces foreign keys (``PRAGMA foreign_keys=ON``), so a
      transition or period can never point at a missing member.

Failure modes:
    - RuntimeError when a session is requested before the engine exists.
    - ``session_scope`` re-raises whatever ended the block after rolling back.
"""

import atexit
import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from membership_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

DATABASE_URL_ENV = "DATABASE_URL"
DEFAULT_DATABASE_URL = "sqlite://"

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _build_engine(database_url: str, echo: bool, **pool_options) -> Engine:
    if make_url(database_url).get_backend_name() == "sqlite":
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        isolation_level="READ COMMITTED",
        **pool_options,
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the engine and session factory for ``database_url``.

    Replaces any engine created earlier.  Pool options apply to server
    databases only; SQLite always uses a single shared connection.
    """
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = _build_engine(
        database_url,
        echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_recycle=pool_recycle,
    )
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "database": _engine.url.database},
    )
    return _engine


def init_engine_from_env(echo: bool = False) -> Engine:
    """``init_engine_from_url`` with ``$DATABASE_URL`` (in-memory SQLite if unset)."""
    return init_engine_from_url(os.environ.get(DATABASE_URL_ENV, DEFAULT_DATABASE_URL), echo)


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory handed to SqlAlchemyMemberStore; one session per locked operation."""
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    One transaction: commit on normal exit, roll back and re-raise otherwise.

        with session_scope() as session:
            session.add(row)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception as exc:
        session.rollback()
        logger.info(
            "transaction_rolled_back",
            extra={
                "error_type": type(exc).__name__,
                "error_code": getattr(exc, "code", None),
            },
        )
        raise
    finally:
        session.close()


def create_tables() -> None:
    from membership_kernel.db.base import Base
    import membership_kernel.models  # noqa: F401  registers the tables

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop every membership table.  Tests and local tooling only."""
    from membership_kernel.db.base import Base
    import membership_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


atexit.register(reset_engine)
