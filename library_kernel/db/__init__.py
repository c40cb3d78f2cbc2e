"""Database layer - engine, base classes, listeners."""

from library_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from library_kernel.db.consistency_guard import (
    SYSTEM_ACTOR_ID,
    register_consistency_guard,
    unregister_consistency_guard,
)
from library_kernel.db.engine import (
    classify_store_error,
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from library_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
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
    "classify_store_error",
    "register_immutability_listeners",
    "unregister_immutability_listeners",
    "register_consistency_guard",
    "unregister_consistency_guard",
    "install_kernel_listeners",
    "SYSTEM_ACTOR_ID",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]


def install_kernel_listeners(policy=None, clock=None) -> None:
    """Register immutability listeners and the consistency guard."""
    register_immutability_listeners()
    register_consistency_guard(policy, clock)
