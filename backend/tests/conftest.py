from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Callable, List

import pytest

from study_scheduler.behavior_profile import BehaviorProfile
from study_scheduler.config import get_settings
from study_scheduler.db import Base, dispose_engine, get_engine, models, session_scope  # noqa: F401
from study_scheduler.repositories.behavior_profiles import behavior_profiles
from study_scheduler.repositories.schedule_items import schedule_items
from study_scheduler.repositories.study_activity import study_activity
from study_scheduler.repositories.study_plans import study_plans
from study_scheduler.schedule_items import StudyEvent, StudyTask
from study_scheduler.study_plan import DailyStudyStats, FocusSession, StudyPlan
from study_scheduler.telemetry import TelemetryEvent, clear_listeners, register_listener

# Monday morning, before the first study window opens.
NOW = datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture(autouse=True)
def _isolated_listeners():
    clear_listeners()
    yield
    clear_listeners()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def database(tmp_path, monkeypatch):
    monkeypatch.setenv("SCHEDULER_DATABASE_URL", f"sqlite:///{tmp_path / 'scheduler.sqlite'}")
    get_settings.cache_clear()
    dispose_engine()
    Base.metadata.create_all(get_engine())
    yield
    dispose_engine()
    get_settings.cache_clear()


@pytest.fixture
def captured_events() -> List[TelemetryEvent]:
    events: List[TelemetryEvent] = []
    register_listener(events.append)
    return events


@pytest.fixture
def make_plan(database) -> Callable[..., StudyPlan]:
    def _make(**overrides) -> StudyPlan:
        payload = {
            "id": _new_id(),
            "user_id": "user-1",
            "title": "Organic chemistry",
            "start_date": NOW - timedelta(days=14),
            "end_date": NOW + timedelta(days=10),
            "created_at": NOW - timedelta(days=30),
        }
        payload.update(overrides)
        with session_scope() as session:
            return study_plans.create(session, StudyPlan(**payload))

    return _make


@pytest.fixture
def make_task(database) -> Callable[..., StudyTask]:
    def _make(plan: StudyPlan, **overrides) -> StudyTask:
        payload = {
            "id": _new_id(),
            "plan_id": plan.id,
            "user_id": plan.user_id,
            "title": "Read chapter",
            "scheduled_date": NOW - timedelta(days=1),
        }
        payload.update(overrides)
        with session_scope() as session:
            return schedule_items.add_task(session, StudyTask(**payload))

    return _make


@pytest.fixture
def make_event(database) -> Callable[..., StudyEvent]:
    def _make(plan: StudyPlan, **overrides) -> StudyEvent:
        start = overrides.pop("start_time", NOW + timedelta(days=1, hours=3))
        payload = {
            "id": _new_id(),
            "plan_id": plan.id,
            "user_id": plan.user_id,
            "title": "Lecture review",
            "start_time": start,
            "end_time": start + timedelta(minutes=60),
        }
        payload.update(overrides)
        with session_scope() as session:
            return schedule_items.add_event(session, StudyEvent(**payload))

    return _make


@pytest.fixture
def make_daily_stats(database) -> Callable[..., None]:
    def _make(user_id: str, day: date, **overrides) -> None:
        stats = DailyStudyStats(user_id=user_id, date=day, **overrides)
        with session_scope() as session:
            study_activity.add_daily_stats(session, stats)

    return _make


@pytest.fixture
def make_focus_session(database) -> Callable[..., None]:
    def _make(user_id: str, minutes: int, started_at: datetime = NOW - timedelta(days=1)) -> None:
        focus = FocusSession(
            id=_new_id(),
            user_id=user_id,
            actual_duration_minutes=minutes,
            started_at=started_at,
        )
        with session_scope() as session:
            study_activity.add_focus_session(session, focus)

    return _make


@pytest.fixture
def store_profile(database) -> Callable[..., BehaviorProfile]:
    def _store(profile: BehaviorProfile) -> BehaviorProfile:
        with session_scope() as session:
            return behavior_profiles.overwrite(session, profile)

    return _store
