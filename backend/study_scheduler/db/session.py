"""Engine and session helpers shared by the repositories, routes and scripts.

Services take a ``SessionScope`` so tests and batch jobs can hand in their own
transaction boundaries; the default is :func:`session_scope` below.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, ContextManager, Dict, Generator, Optional, Protocol

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)

# behavior batch analysis writes profiles from several worker threads
SQLITE_BUSY_TIMEOUT_SECONDS = 30


class SessionScope(Protocol):
    """Callable returning a transactional session context (``session_scope``)."""

    def __call__(self, *, commit: bool = True) -> ContextManager[Session]:  # pragma: no cover - protocol definition
        ...


_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker[Session]] = None


def _engine_options(database_url: str, settings: Settings) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.database_echo, "pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        options["connect_args"] = {
            "check_same_thread": False,
            "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
        }
    else:
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
    return options


def get_engine() -> Engine:
    """Create the process-wide engine on first use."""
    global _engine, _session_factory
    if _engine is None:
        settings = get_settings()
        database_url = settings.database_url
        if not database_url:
            raise RuntimeError("SCHEDULER_DATABASE_URL must be configured before using the database.")
        _engine = create_engine(database_url, **_engine_options(database_url, settings))
        _session_factory = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
        logger.debug("Scheduler engine created for dialect %s", _engine.dialect.name)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    get_engine()
    if _session_factory is None:
        raise RuntimeError("Session factory was not initialised with the engine.")
    return _session_factory


@contextmanager
def session_scope(*, commit: bool = True) -> Generator[Session, None, None]:
    """One unit of scheduling work: commit on success, roll back on any error."""
    session = get_session_factory()()
    try:
        yield session
        if commit:
            session.commit()
    except Exception:  # noqa: BLE001
        logger.debug("Rolling back scheduler session", exc_info=True)
        session.rollback()
        raise
    finally:
        session.close()


def get_session_dependency() -> Generator[Session, None, None]:
    with session_scope() as session:
        yield session


def check_database() -> Dict[str, Any]:
    """Round-trip ``SELECT 1`` and report the dialect and pool state."""
    engine = get_engine()
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))
    return {"dialect": engine.dialect.name, "pool": engine.pool.status()}


def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


__all__ = [
    "SQLITE_BUSY_TIMEOUT_SECONDS",
    "SessionScope",
    "check_database",
    "dispose_engine",
    "get_engine",
    "get_session_dependency",
    "get_session_factory",
    "session_scope",
]
