"""Persistence for plans, schedule items, behavior profiles and the audit log.

Import ``study_scheduler.db.models`` before ``Base.metadata`` is used so every
table is registered.
"""

from .base import Base
from .session import (
    SessionScope,
    check_database,
    dispose_engine,
    get_engine,
    get_session_dependency,
    get_session_factory,
    session_scope,
)

__all__ = [
    "Base",
    "SessionScope",
    "check_database",
    "dispose_engine",
    "get_engine",
    "get_session_dependency",
    "get_session_factory",
    "session_scope",
]
