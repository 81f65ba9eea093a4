"""Database layer - engine, declarative base, and audit immutability."""

from payroll_kernel.db.base import Base, ConfigurationBase, UTCDateTime, UUIDString
from payroll_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_settings,
    init_engine_from_url,
)

__all__ = [
    "Base",
    "ConfigurationBase",
    "UTCDateTime",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session_factory",
    "init_engine_from_settings",
    "init_engine_from_url",
]
