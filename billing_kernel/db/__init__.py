"""
Database infrastructure for the billing kernel.

Provides:
- Declarative base, audit-column mixin and UUID column type (base.py)
- Process-wide engine, session factory and unit-of-work scope (engine.py)
"""

from billing_kernel.db.base import Base, TrackedBase, UUIDString
from billing_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
]
