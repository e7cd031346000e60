from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest

from study_scheduler.adaptive_rescheduler import (
    AdaptiveRescheduler,
    RedistributionOptions,
    exam_proximity_score,
    redistribution_priority,
)
from study_scheduler.behavior_profile import BehaviorProfile
from study_scheduler.db.session import session_scope
from study_scheduler.errors import PlanNotFoundError, SchedulingValidationError
from study_scheduler.mode_resolver import ModeResolver
from study_scheduler.repositories.schedule_items import schedule_items
from study_scheduler.repositories.study_plans import study_plans
from study_scheduler.schedule_items import StudyTask
from study_scheduler.study_plan import StudyPlan

NOW = datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)  # a Monday
BALANCED = RedistributionOptions(mode="balanced")


@pytest.fixture
def rescheduler(clock) -> AdaptiveRescheduler:
    return AdaptiveRescheduler(now=clock, resolver=ModeResolver(now=clock))


def _overdue(make_task, plan: StudyPlan, count: int, **overrides):
    return [
        make_task(plan, scheduled_date=NOW - timedelta(days=1, minutes=index), **overrides)
        for index in range(count)
    ]


def _load_task(task_id: str) -> StudyTask:
    with session_scope(commit=False) as session:
        task = schedule_items.get_task(session, task_id)
    assert task is not None
    return task


def _load_plan(plan_id: str) -> StudyPlan:
    with session_scope(commit=False) as session:
        return study_plans.require(session, plan_id)


def test_exam_proximity_score() -> None:
    plan = StudyPlan(
        id="plan-1",
        user_id="user-1",
        title="Finals",
        start_date=NOW - timedelta(days=30),
        end_date=NOW + timedelta(days=30),
    )
    assert exam_proximity_score(plan, NOW) == 0
    assert exam_proximity_score(plan.model_copy(update={"exam_date": NOW + timedelta(days=15)}), NOW) == 50
    assert exam_proximity_score(plan.model_copy(update={"exam_date": NOW - timedelta(days=1)}), NOW) == 100
    assert exam_proximity_score(plan.model_copy(update={"exam_date": NOW + timedelta(days=60)}), NOW) == 0


def test_redistribution_priority_components() -> None:
    plan = StudyPlan(
        id="plan-1",
        user_id="user-1",
        title="Finals",
        start_date=NOW - timedelta(days=30),
        end_date=NOW + timedelta(days=30),
    )
    task = StudyTask(
        id="task-1",
        plan_id="plan-1",
        user_id="user-1",
        title="Proofs",
        scheduled_date=NOW - timedelta(days=3, hours=1),
        difficulty="hard",
        priority="urgent",
    )
    profile = BehaviorProfile(user_id="user-1")
    # neutral proximity 20 + hard 30 + 3 days overdue 6 + efficiency 10 + urgent 15
    assert redistribution_priority(task, plan, profile, NOW) == pytest.approx(81.0)


def test_backlog_is_placed_within_horizon_and_caps(rescheduler, make_plan, make_task) -> None:
    plan = make_plan(daily_study_hours=4)
    tasks = _overdue(make_task, plan, 45)

    result = rescheduler.redistribute_missed_tasks(plan.user_id, plan.id, BALANCED)

    assert result.rescheduled == 40
    assert len(result.unplaced) == 5
    assert "insufficient time to reschedule 5 tasks" in result.warnings
    per_day = Counter(allocation.new_start.date() for allocation in result.allocations)
    assert max(per_day.values()) <= 4
    assert len(per_day) == 10
    for allocation in result.allocations:
        assert allocation.new_start >= NOW
        assert allocation.new_end <= plan.end_date
    by_day = {}
    for allocation in result.allocations:
        by_day.setdefault(allocation.new_start.date(), []).append(allocation)
    for allocations in by_day.values():
        ordered = sorted(allocations, key=lambda allocation: allocation.new_start)
        for earlier, later in zip(ordered, ordered[1:]):
            assert earlier.new_end <= later.new_start

    moved = _load_task(result.allocations[0].task_id)
    original = next(task for task in tasks if task.id == moved.id)
    assert moved.status == "rescheduled"
    assert moved.rescheduled_count == 1
    assert moved.original_date == original.scheduled_date
    assert moved.rescheduled_reason == "missed_task"
    assert moved.time_slot_start == result.allocations[0].new_start
    assert moved.scheduled_time == "08:00"
    assert len(moved.rescheduling_history) == 1
    assert moved.rescheduling_history[0].old_slot_start == original.scheduled_date
    assert moved.version == original.version + 1

    unplaced = _load_task(result.unplaced[0])
    assert unplaced.status == "pending"
    assert unplaced.rescheduled_count == 0

    refreshed = _load_plan(plan.id)
    assert refreshed.adaptation_count == 1
    assert refreshed.last_adapted_at == NOW


def test_backlog_that_fits_is_fully_placed(rescheduler, make_plan, make_task) -> None:
    plan = make_plan(daily_study_hours=4)
    _overdue(make_task, plan, 25)

    result = rescheduler.redistribute_missed_tasks(plan.user_id, plan.id, BALANCED)

    assert result.rescheduled == 25
    assert result.unplaced == []
    assert result.warnings == []
    assert max(allocation.new_end for allocation in result.allocations) <= plan.end_date


def test_daily_minutes_bound_placement(rescheduler, make_plan, make_task) -> None:
    plan = make_plan(daily_study_hours=2)
    _overdue(make_task, plan, 4)

    result = rescheduler.redistribute_missed_tasks(plan.user_id, plan.id, BALANCED)

    per_day = Counter(allocation.new_start.date() for allocation in result.allocations)
    assert result.rescheduled == 4
    assert sorted(per_day.values()) == [2, 2]


def test_hard_tasks_are_capped_per_day(rescheduler, make_plan, make_task) -> None:
    plan = make_plan(daily_study_hours=8)
    _overdue(make_task, plan, 5, difficulty="hard")

    result = rescheduler.redistribute_missed_tasks(plan.user_id, plan.id, BALANCED)

    per_day = Counter(allocation.new_start.date() for allocation in result.allocations)
    assert result.rescheduled == 5
    assert sorted(per_day.values(), reverse=True) == [2, 2, 1]


def test_task_longer_than_a_window_spans_the_day(rescheduler, make_plan, make_task) -> None:
    plan = make_plan(daily_study_hours=8)
    (task,) = _overdue(make_task, plan, 1, duration=300)

    result = rescheduler.redistribute_missed_tasks(plan.user_id, plan.id, BALANCED)

    assert result.rescheduled == 1
    assert result.unplaced == []
    assert result.warnings == []
    (allocation,) = result.allocations
    assert allocation.task_id == task.id
    assert allocation.duration == 300
    assert allocation.new_start == datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
    assert allocation.new_end == datetime(2026, 3, 2, 13, 0, tzinfo=timezone.utc)


def test_busy_blocks_and_existing_items_are_avoided(rescheduler, make_plan, make_task, make_event) -> None:
    plan = make_plan(
        daily_study_hours=8,
        weekly_busy_blocks=[{"day_of_week": 0, "start_time": "08:00", "end_time": "10:00", "label": "Lab"}],
    )
    make_task(plan, time_slot_start=NOW.replace(hour=10), scheduled_date=NOW.replace(hour=10))
    make_event(plan, start_time=NOW.replace(hour=11), end_time=NOW.replace(hour=11, minute=30))
    (task,) = _overdue(make_task, plan, 1)

    result = rescheduler.redistribute_missed_tasks(plan.user_id, plan.id, BALANCED)

    assert result.allocations[0].task_id == task.id
    assert result.allocations[0].new_start == NOW.replace(hour=13)


def test_future_items_inside_new_busy_blocks_are_flagged(rescheduler, make_plan, make_task) -> None:
    plan = make_plan(
        weekly_busy_blocks=[{"day_of_week": 1, "start_time": "10:00", "end_time": "11:00"}],
    )
    tuesday = NOW + timedelta(days=1)
    clash = make_task(plan, time_slot_start=tuesday.replace(hour=10), scheduled_date=tuesday.replace(hour=10))

    result = rescheduler.redistribute_missed_tasks(plan.user_id, plan.id, BALANCED)
    assert result.conflicts_flagged == 1
    flagged = _load_task(clash.id)
    assert flagged.metadata.conflict_flag is True
    assert flagged.metadata.conflict_count == 1

    again = rescheduler.redistribute_missed_tasks(plan.user_id, plan.id, BALANCED)
    assert again.conflicts_flagged == 0


def test_rerun_does_not_move_tasks_twice(rescheduler, make_plan, make_task) -> None:
    plan = make_plan()
    _overdue(make_task, plan, 3)

    first = rescheduler.redistribute_missed_tasks(plan.user_id, plan.id, BALANCED)
    second = rescheduler.redistribute_missed_tasks(plan.user_id, plan.id, BALANCED)

    assert first.rescheduled == 3
    assert second.rescheduled == 0
    assert second.warnings == []
    assert _load_plan(plan.id).adaptation_count == 1
    for allocation in first.allocations:
        assert _load_task(allocation.task_id).rescheduled_count == 1


def test_stale_version_is_not_overwritten(make_plan, make_task) -> None:
    plan = make_plan()
    (task,) = _overdue(make_task, plan, 1)
    moved = task.model_copy(update={"status": "rescheduled", "time_slot_start": NOW + timedelta(hours=3)})

    with session_scope() as session:
        assert schedule_items.save_rescheduled_task(session, moved, task.version + 1) is False
        assert schedule_items.save_rescheduled_task(session, moved, task.version) is True
        assert schedule_items.save_rescheduled_task(session, moved, task.version) is False

    assert _load_task(task.id).version == task.version + 1


def test_completed_tasks_are_never_moved(rescheduler, make_plan, make_task) -> None:
    plan = make_plan()
    done = make_task(plan, status="completed", completed_at=NOW - timedelta(hours=20))

    result = rescheduler.redistribute_missed_tasks(plan.user_id, plan.id, BALANCED)

    assert result.rescheduled == 0
    assert _load_task(done.id).status == "completed"


def test_legacy_task_gains_metadata_on_move(rescheduler, make_plan, make_task) -> None:
    plan = make_plan()
    (task,) = _overdue(make_task, plan, 1, scheduling_metadata=None)
    assert task.scheduling_metadata is None

    rescheduler.redistribute_missed_tasks(plan.user_id, plan.id, BALANCED)

    moved = _load_task(task.id)
    assert moved.scheduling_metadata is not None
    assert moved.scheduling_metadata.is_rescheduled is True
    assert moved.scheduling_metadata.last_scheduled_at == NOW


def test_nearer_exam_claims_earlier_slots(rescheduler, make_plan, make_task) -> None:
    relaxed = make_plan(title="Art history", exam_date=NOW + timedelta(days=25), created_at=NOW - timedelta(days=40))
    urgent = make_plan(title="Chemistry", exam_date=NOW + timedelta(days=5))
    (relaxed_task,) = _overdue(make_task, relaxed, 1, priority="urgent", difficulty="hard")
    (urgent_task,) = _overdue(make_task, urgent, 1, priority="low")

    result = rescheduler.redistribute_user_backlog("user-1", BALANCED)

    assert set(result.plan_ids) == {relaxed.id, urgent.id}
    assert [allocation.task_id for allocation in result.allocations] == [urgent_task.id, relaxed_task.id]
    assert result.allocations[0].new_start < result.allocations[1].new_start
    assert _load_task(urgent_task.id).exam_proximity_score == 83


def test_emergency_mode_compresses_backlog(rescheduler, make_plan, make_task) -> None:
    plan = make_plan(exam_date=NOW + timedelta(days=5))
    filler = make_task(plan, priority="low", difficulty="easy", scheduled_date=NOW - timedelta(days=2))
    kept = _overdue(make_task, plan, 6)

    result = rescheduler.redistribute_missed_tasks(
        plan.user_id, plan.id, RedistributionOptions(mode="emergency")
    )

    assert result.mode == "emergency"
    assert result.skipped == [filler.id]
    assert _load_task(filler.id).status == "skipped"
    assert result.rescheduled == len(kept)
    assert {allocation.duration for allocation in result.allocations} == {48}
    per_day = Counter(allocation.new_start.date() for allocation in result.allocations)
    assert per_day[NOW.date()] == 5


def test_emergency_days_never_exceed_eight_hours(rescheduler, make_plan, make_task) -> None:
    plan = make_plan(daily_study_hours=6, exam_date=NOW + timedelta(days=8))
    _overdue(make_task, plan, 20, duration=120)

    result = rescheduler.redistribute_missed_tasks(
        plan.user_id, plan.id, RedistributionOptions(mode="emergency")
    )

    assert result.rescheduled == 20
    minutes_per_day = Counter()
    for allocation in result.allocations:
        minutes_per_day[allocation.new_start.date()] += allocation.duration
    assert max(minutes_per_day.values()) == 480
    assert all(minutes <= 480 for minutes in minutes_per_day.values())


def test_mode_defaults_to_recommendation(rescheduler, make_plan, make_task) -> None:
    plan = make_plan(exam_date=NOW + timedelta(days=5), total_tasks=10, completed_tasks=2)
    _overdue(make_task, plan, 1)

    result = rescheduler.redistribute_missed_tasks(plan.user_id, plan.id)

    assert result.mode == "emergency"


def test_reliable_profile_prefers_its_best_window(rescheduler, make_plan, make_task, store_profile) -> None:
    store_profile(
        BehaviorProfile(
            user_id="user-1",
            sample_size=30,
            data_quality_score=90,
            completion_rate_by_time_slot={"morning": 0.3, "afternoon": 0.4, "evening": 0.9, "night": 0.1},
        )
    )
    plan = make_plan()
    _overdue(make_task, plan, 1)

    result = rescheduler.redistribute_missed_tasks(plan.user_id, plan.id, BALANCED)

    assert result.allocations[0].new_start == NOW.replace(hour=18)


def test_max_tasks_defers_the_rest(rescheduler, make_plan, make_task) -> None:
    plan = make_plan(daily_study_hours=4)
    _overdue(make_task, plan, 5)

    result = rescheduler.redistribute_missed_tasks(
        plan.user_id, plan.id, RedistributionOptions(mode="balanced", max_tasks=3)
    )

    assert result.rescheduled == 3
    assert "2 tasks deferred to a later redistribution run" in result.warnings


def test_empty_backlog_is_a_no_op(rescheduler, make_plan, captured_events) -> None:
    plan = make_plan()

    result = rescheduler.redistribute_missed_tasks(plan.user_id, plan.id, BALANCED)

    assert result.rescheduled == 0
    assert result.warnings == []
    assert _load_plan(plan.id).adaptation_count == 0
    assert [event.name for event in captured_events] == ["tasks_rescheduled"]


def test_invalid_requests_are_rejected(rescheduler, make_plan, captured_events) -> None:
    plan = make_plan(user_id="owner")
    with pytest.raises(SchedulingValidationError):
        rescheduler.redistribute_missed_tasks("", plan.id, BALANCED)
    with pytest.raises(SchedulingValidationError):
        rescheduler.redistribute_missed_tasks("owner", "", BALANCED)
    with pytest.raises(PlanNotFoundError):
        rescheduler.redistribute_missed_tasks("intruder", plan.id, BALANCED)

    failure = next(event for event in captured_events if event.name == "redistribution_failed")
    assert failure.payload["exception_type"] == "PlanNotFoundError"


def test_user_without_plans_gets_empty_result(rescheduler, database) -> None:
    result = rescheduler.redistribute_user_backlog("nobody")
    assert result.rescheduled == 0
    assert result.plan_ids == []
