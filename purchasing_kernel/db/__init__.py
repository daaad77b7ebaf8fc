"""Database layer - engine, base classes and column types."""

from purchasing_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from purchasing_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "session_scope",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
]
