from __future__ import annotations

from datetime import datetime, timezone

import pytest

from study_scheduler import telemetry_pipeline
from study_scheduler.adaptive_rescheduler import AdaptiveRescheduler, RedistributionOptions
from study_scheduler.db.session import session_scope
from study_scheduler.errors import PlanNotFoundError
from study_scheduler.mode_resolver import ModeResolver
from study_scheduler.repositories.study_activity import study_activity
from study_scheduler.telemetry import emit_event, register_listener

NOW = datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)


@pytest.fixture
def pipeline(database) -> None:
    register_listener(telemetry_pipeline._persist_event)


def _logs(user_id: str):
    with session_scope(commit=False) as session:
        return study_activity.list_scheduling_logs(session, user_id)


def test_redistribution_outcome_is_logged(pipeline, clock, make_plan, make_task) -> None:
    plan = make_plan()
    task = make_task(plan)
    rescheduler = AdaptiveRescheduler(now=clock, resolver=ModeResolver(now=clock))

    rescheduler.redistribute_missed_tasks(plan.user_id, plan.id, RedistributionOptions(mode="balanced"))

    (log,) = _logs(plan.user_id)
    assert log.action == "redistribute"
    assert log.plan_id == plan.id
    assert log.success is True
    assert log.error_message is None
    assert log.execution_time_ms is not None
    assert log.details["event"] == "tasks_rescheduled"
    assert log.details["task_ids"] == [task.id]
    assert log.details["mode"] == "balanced"
    assert "user_id" not in log.details


def test_failed_redistribution_is_logged(pipeline, clock, make_plan) -> None:
    plan = make_plan(user_id="owner")
    rescheduler = AdaptiveRescheduler(now=clock, resolver=ModeResolver(now=clock))

    with pytest.raises(PlanNotFoundError):
        rescheduler.redistribute_missed_tasks("intruder", plan.id, RedistributionOptions(mode="balanced"))

    (log,) = _logs("intruder")
    assert log.success is False
    assert "was not found" in log.error_message
    assert log.details["exception_type"] == "PlanNotFoundError"


def test_reliable_profile_event_is_logged(pipeline) -> None:
    emit_event(
        "behavior_profile_reliable",
        user_id="learner",
        data_quality_score=90,
        sample_size=25,
        optimal_slot="morning",
    )

    (log,) = _logs("learner")
    assert log.action == "behavior_analysis"
    assert log.plan_id is None
    assert log.details == {
        "event": "behavior_profile_reliable",
        "data_quality_score": 90,
        "sample_size": 25,
        "optimal_slot": "morning",
    }


def test_unmonitored_or_anonymous_events_are_ignored(pipeline) -> None:
    emit_event("behavior_analysis", user_id="learner", status="success")
    emit_event("tasks_rescheduled", user_id="  ", plan_id="plan-1")
    emit_event("tasks_rescheduled", plan_id="plan-1")

    assert _logs("learner") == []
    assert _logs("  ") == []


def test_persistence_failures_are_swallowed(pipeline, monkeypatch, caplog) -> None:
    def broken_scope(*_args, **_kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(telemetry_pipeline, "session_scope", broken_scope)

    emit_event("tasks_rescheduled", user_id="learner", plan_id="plan-1")

    assert "Failed to audit tasks_rescheduled" in caplog.text
