from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from study_scheduler.config import Settings, get_settings
from study_scheduler.db.session import (
    SQLITE_BUSY_TIMEOUT_SECONDS,
    _engine_options,
    check_database,
    dispose_engine,
    get_engine,
    session_scope,
)
from study_scheduler.repositories.study_plans import study_plans
from study_scheduler.study_plan import StudyPlan

NOW = datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)


def test_sqlite_engine_waits_for_concurrent_writers() -> None:
    options = _engine_options("sqlite:///scheduler.sqlite", Settings())
    assert options["connect_args"] == {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS}
    assert "pool_size" not in options


def test_server_engine_uses_configured_pool() -> None:
    settings = Settings(SCHEDULER_DATABASE_POOL_SIZE=7, SCHEDULER_DATABASE_MAX_OVERFLOW=3)
    options = _engine_options("postgresql+psycopg://scheduler@localhost/scheduler", settings)
    assert options["pool_size"] == 7
    assert options["max_overflow"] == 3
    assert "connect_args" not in options


def test_missing_database_url_is_reported(monkeypatch) -> None:
    monkeypatch.delenv("SCHEDULER_DATABASE_URL", raising=False)
    get_settings.cache_clear()
    dispose_engine()
    try:
        with pytest.raises(RuntimeError, match="SCHEDULER_DATABASE_URL"):
            get_engine()
    finally:
        get_settings.cache_clear()


def test_failed_unit_of_work_is_rolled_back(database) -> None:
    plan = StudyPlan(
        id="plan-1",
        user_id="user-1",
        title="Finals",
        start_date=NOW,
        end_date=NOW + timedelta(days=10),
    )

    with pytest.raises(RuntimeError):
        with session_scope() as session:
            study_plans.create(session, plan)
            raise RuntimeError("placement failed")

    with session_scope(commit=False) as session:
        assert study_plans.list_user_ids(session) == []


def test_check_database_reports_dialect(database) -> None:
    details = check_database()
    assert details["dialect"] == "sqlite"
    assert "pool" in details
