"""Database layer: declarative base, column types, engine and sessions."""

from referral_kernel.db.base import Base, UTCDateTime, UUIDString
from referral_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
)

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "is_postgres",
    "Base",
    "UTCDateTime",
    "UUIDString",
]
