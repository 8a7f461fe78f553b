"""Database layer - engine, base classes, and column types."""

from tenancy_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from tenancy_kernel.db.engine import (
    build_engine,
    build_session_factory,
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    transaction_scope,
)

__all__ = [
    "build_engine",
    "build_session_factory",
    "init_engine_from_url",
    "get_session_factory",
    "reset_engine",
    "transaction_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
]
