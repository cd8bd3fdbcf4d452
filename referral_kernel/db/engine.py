"""
referral_kernel.db.engine -- Engine, sessions and the transaction boundary.

PostgreSQL (READ COMMITTED) is the production store: the approval gate's
conditional UPDATE and the ``FOR UPDATE`` lock taken by status recompute
rely on its row locking.  SQLite is accepted for tests and local runs.

Services only flush.  ``session_scope()`` commits or rolls back, so a
create or decide that raises leaves no referral, approval or comment rows
behind.

Calling any accessor before ``init_engine_from_url()`` raises RuntimeError.
"""

import atexit
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from referral_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

POSTGRES_POOL_OPTIONS: dict[str, Any] = {
    "pool_size": 20,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_timeout": 30,
    "pool_recycle": 1800,
    "isolation_level": "READ COMMITTED",
}

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _sqlite_foreign_keys_on(dbapi_connection, connection_record):
    # SQLite leaves FK enforcement off per connection; approvals and comments
    # must not outlive their referral.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _build_engine(database_url: str, echo: bool, pool_options: dict[str, Any]) -> Engine:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(url, echo=echo, **{**POSTGRES_POOL_OPTIONS, **pool_options})

    kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        # An in-memory database lives on one connection; share it.
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, echo=echo, **kwargs)
    event.listen(engine, "connect", _sqlite_foreign_keys_on)
    return engine


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options: Any) -> Engine:
    """
    (Re)initialize the module engine and session factory.

    ``pool_options`` override ``POSTGRES_POOL_OPTIONS`` and are ignored for
    SQLite.
    """
    global _engine, _session_factory

    _engine = _build_engine(database_url, echo, pool_options)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": _engine.dialect.name, "echo": echo})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory for callers that serve several approvers, one session each."""
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    One unit of work: commit on normal exit, roll back and re-raise otherwise.

    Usage:
        with session_scope() as session:
            gate = ApprovalGate(session, workflow, policy, roles)
            gate.submit_decision(...)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _metadata():
    from referral_kernel.db.base import Base
    import referral_kernel.models  # noqa: F401  (registers tables)

    return Base.metadata


def create_tables() -> None:
    _metadata().create_all(get_engine())


def drop_tables() -> None:
    """Drop every referral table.  Tests only."""
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"


atexit.register(reset_engine)
