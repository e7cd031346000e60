"""Redistribution of missed study tasks into the remaining plan horizon.

Backlog tasks are ordered by the owning plan's exam date and a priority
score, then placed greedily into the earliest free 30-minute-aligned start
inside the preferred study windows. Every placement honours the daily task
cap, the hard-task cap, the daily minute ceiling, recurring busy blocks,
already-scheduled items, and the plan's end date. Whatever does not fit is
reported as a warning rather than pushed past the horizon.
"""

from __future__ import annotations

import logging
import math
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, cast

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .behavior_profile import BehaviorProfile, round_half_up
from .clock import Clock, format_hhmm, start_of_day, utcnow
from .config import Settings, get_settings
from .constants import CAPACITY_LIMITS
from .db.session import SessionScope, session_scope
from .errors import PlanNotFoundError, SchedulingValidationError
from .mode_resolver import ModeResolver, mode_resolver
from .repositories.behavior_profiles import BehaviorProfileRepository, behavior_profiles
from .repositories.schedule_items import ScheduleItemRepository, schedule_items
from .repositories.study_plans import StudyPlanRepository, study_plans
from .schedule_items import (
    RescheduleReason,
    ReschedulingRecord,
    StudyEvent,
    StudyTask,
    apply_status_transition,
)
from .study_plan import SchedulingMode, StudyPlan, WeeklyBusyBlock
from .telemetry import emit_event

logger = logging.getLogger(__name__)

_MODE_SEVERITY = {"balanced": 0, "adaptive": 1, "emergency": 2}
_DIFFICULTY_POINTS = {"easy": 10, "medium": 20, "hard": 30}
_NEUTRAL_PROXIMITY_POINTS = 20


class RedistributionOptions(BaseModel):
    reason: RescheduleReason = "missed_task"
    mode: Optional[SchedulingMode] = None
    max_tasks: Optional[int] = Field(default=None, ge=1)


class TaskAllocation(BaseModel):
    task_id: str
    plan_id: str
    previous_start: datetime
    new_start: datetime
    new_end: datetime
    duration: int
    priority_score: float


class RedistributionResult(BaseModel):
    user_id: str
    plan_ids: List[str] = Field(default_factory=list)
    mode: SchedulingMode = "balanced"
    rescheduled: int = 0
    allocations: List[TaskAllocation] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    unplaced: List[str] = Field(default_factory=list)
    conflicts_flagged: int = 0
    warnings: List[str] = Field(default_factory=list)


@dataclass
class _DayLoad:
    count: int = 0
    hard: int = 0
    minutes: int = 0
    intervals: List[Tuple[datetime, datetime]] = field(default_factory=list)

    def add(self, start: datetime, end: datetime, minutes: int, difficulty: str, timed: bool = True) -> None:
        self.count += 1
        self.minutes += minutes
        if difficulty == "hard":
            self.hard += 1
        if timed:
            self.intervals.append((start, end))

    def collides(self, start: datetime, end: datetime) -> bool:
        return any(busy_start < end and start < busy_end for busy_start, busy_end in self.intervals)


def _candidate_ranges(windows: Sequence[Tuple[str, int, int]], duration: int) -> List[Tuple[int, int]]:
    """Hour ranges a task may start in; work longer than any window spans the whole study day."""
    widest = max((last - first) * 60 for _, first, last in windows)
    if duration <= widest:
        return [(first, last) for _, first, last in windows]
    return [(min(first for _, first, _ in windows), max(last for _, _, last in windows))]


def exam_proximity_score(plan: StudyPlan, now: datetime) -> int:
    """0-100 weight that grows as the plan's exam approaches."""
    days = plan.days_to_exam(now)
    if days is None:
        return 0
    if days <= 0:
        return 100
    window = CAPACITY_LIMITS.exam_proximity_window_days
    return max(0, min(100, round_half_up(100 * (1 - days / window))))


def redistribution_priority(
    task: StudyTask, plan: StudyPlan, profile: BehaviorProfile, now: datetime
) -> float:
    if plan.exam_date is not None:
        score = exam_proximity_score(plan, now) * 0.4
    else:
        score = float(_NEUTRAL_PROXIMITY_POINTS)
    score += _DIFFICULTY_POINTS.get(task.difficulty, 15)
    days_overdue = max(0, math.floor((now - task.start).total_seconds() / 86400))
    score += min(days_overdue * 2, 20)
    score += profile.calculate_efficiency_factor(task.topic) * 10
    if task.priority == "urgent":
        score += 15
    elif task.priority == "high":
        score += 10
    return score


class AdaptiveRescheduler:
    """Moves backlog tasks forward without breaking daily load or horizon limits."""

    def __init__(
        self,
        *,
        plans: StudyPlanRepository = study_plans,
        items: ScheduleItemRepository = schedule_items,
        profiles: BehaviorProfileRepository = behavior_profiles,
        resolver: Optional[ModeResolver] = None,
        session_factory: SessionScope = session_scope,
        now: Clock = utcnow,
        settings_provider: Callable[[], Settings] = get_settings,
    ) -> None:
        self._plans = plans
        self._items = items
        self._profiles = profiles
        self._resolver = resolver or mode_resolver
        self._session_scope = session_factory
        self._now = now
        self._settings_provider = settings_provider

    def redistribute_missed_tasks(
        self,
        user_id: str,
        plan_id: str,
        options: Optional[RedistributionOptions] = None,
    ) -> RedistributionResult:
        if not user_id:
            raise SchedulingValidationError("A user id is required.")
        if not plan_id:
            raise SchedulingValidationError("A plan id is required.")
        options = options or RedistributionOptions()
        mode = options.mode or self._resolver.recommend_mode(user_id, plan_id).recommended_mode
        return self._run(user_id, [plan_id], mode, options, scope_plan_id=plan_id)

    def redistribute_user_backlog(
        self,
        user_id: str,
        options: Optional[RedistributionOptions] = None,
    ) -> RedistributionResult:
        """Pool the backlog of every active plan so nearer exams claim earlier slots."""
        if not user_id:
            raise SchedulingValidationError("A user id is required.")
        options = options or RedistributionOptions()
        with self._session_scope(commit=False) as session:
            plan_ids = [plan.id for plan in self._plans.list_active_for_user(session, user_id)]
        if not plan_ids:
            return RedistributionResult(user_id=user_id, mode=options.mode or "balanced")

        mode = options.mode or self._most_urgent_mode(user_id, plan_ids)
        return self._run(user_id, plan_ids, mode, options, scope_plan_id=None)

    def _most_urgent_mode(self, user_id: str, plan_ids: Iterable[str]) -> SchedulingMode:
        mode: SchedulingMode = "balanced"
        for plan_id in plan_ids:
            try:
                candidate = self._resolver.recommend_mode(user_id, plan_id).recommended_mode
            except Exception as exc:  # noqa: BLE001
                logger.warning("Mode lookup failed for plan %s: %s", plan_id, exc)
                continue
            if _MODE_SEVERITY[candidate] > _MODE_SEVERITY[mode]:
                mode = candidate
        return mode

    def _run(
        self,
        user_id: str,
        plan_ids: Sequence[str],
        mode: SchedulingMode,
        options: RedistributionOptions,
        *,
        scope_plan_id: Optional[str],
    ) -> RedistributionResult:
        start = time.perf_counter()
        now = self._now()
        try:
            with self._session_scope() as session:
                plans: List[StudyPlan] = []
                for plan_id in plan_ids:
                    plan = self._plans.require(session, plan_id)
                    if plan.user_id != user_id:
                        raise PlanNotFoundError(plan_id)
                    plans.append(plan)
                result = self._redistribute(session, user_id, plans, mode, options, now)
        except Exception as exc:  # noqa: BLE001
            emit_event(
                "redistribution_failed",
                user_id=user_id,
                plan_id=scope_plan_id,
                reason=options.reason,
                error=str(exc),
                exception_type=exc.__class__.__name__,
                execution_time_ms=round((time.perf_counter() - start) * 1000.0, 2),
            )
            logger.exception("Redistribution failed for user %s", user_id)
            raise

        duration_ms = (time.perf_counter() - start) * 1000.0
        logger.info(
            "Redistributed %d tasks for %s in %.1fms (mode=%s, skipped=%d, unplaced=%d)",
            result.rescheduled,
            user_id,
            duration_ms,
            mode,
            len(result.skipped),
            len(result.unplaced),
        )
        emit_event(
            "tasks_rescheduled",
            user_id=user_id,
            plan_id=scope_plan_id,
            plan_ids=list(result.plan_ids),
            task_ids=[allocation.task_id for allocation in result.allocations],
            reason=options.reason,
            mode=mode,
            skipped=len(result.skipped),
            unplaced=len(result.unplaced),
            warnings=list(result.warnings),
            execution_time_ms=round(duration_ms, 2),
        )
        return result

    def _redistribute(
        self,
        session: Session,
        user_id: str,
        plans: List[StudyPlan],
        mode: SchedulingMode,
        options: RedistributionOptions,
        now: datetime,
    ) -> RedistributionResult:
        plans_by_id = {plan.id: plan for plan in plans}
        result = RedistributionResult(user_id=user_id, plan_ids=list(plans_by_id), mode=mode)
        profile = self._profiles.get(session, user_id) or BehaviorProfile(user_id=user_id)

        backlog = self._items.list_backlog(session, list(plans_by_id), now)
        backlog_ids = {task.id for task in backlog}
        horizon_end = max(plan.end_date for plan in plans)
        loads, scheduled = self._load_occupancy(session, user_id, now, horizon_end, backlog_ids)
        result.conflicts_flagged = self._flag_conflicts(session, plans_by_id, scheduled, now)

        if not backlog:
            return result

        if mode == "emergency":
            backlog = self._compress(session, backlog, result)

        ranked = sorted(
            (
                (task, redistribution_priority(task, plans_by_id[task.plan_id], profile, now))
                for task in backlog
            ),
            key=lambda entry: self._order_key(entry[0], entry[1], plans_by_id[entry[0].plan_id], now),
        )

        max_tasks = options.max_tasks or self._settings_provider().redistribution_max_tasks
        if len(ranked) > max_tasks:
            deferred = len(ranked) - max_tasks
            ranked = ranked[:max_tasks]
            result.warnings.append(f"{deferred} tasks deferred to a later redistribution run")

        busy_blocks = [block for plan in plans for block in plan.weekly_busy_blocks]
        windows = self._window_order(profile)
        touched_plans: set[str] = set()

        for task, score in ranked:
            plan = plans_by_id[task.plan_id]
            duration = self._planned_duration(task, mode, profile)
            slot = self._find_slot(
                duration,
                task.difficulty,
                plan,
                loads,
                busy_blocks,
                windows,
                now,
                task_cap=self._task_cap(mode),
                minute_cap=self._minute_cap(plan, mode),
            )
            if slot is None:
                result.unplaced.append(task.id)
                continue

            slot_start, slot_end = slot
            moved = self._move(task, plan, slot_start, slot_end, duration, options.reason, now)
            if not self._items.save_rescheduled_task(session, moved, task.version):
                logger.info("Task %s changed concurrently; leaving it untouched", task.id)
                continue

            loads[slot_start.date()].add(slot_start, slot_end, duration, task.difficulty)
            touched_plans.add(plan.id)
            result.allocations.append(
                TaskAllocation(
                    task_id=task.id,
                    plan_id=plan.id,
                    previous_start=task.start,
                    new_start=slot_start,
                    new_end=slot_end,
                    duration=duration,
                    priority_score=round(score, 2),
                )
            )

        result.rescheduled = len(result.allocations)
        if result.unplaced:
            result.warnings.append(f"insufficient time to reschedule {len(result.unplaced)} tasks")
        for plan_id in sorted(touched_plans):
            self._plans.record_adaptation(session, plan_id, now)
        return result

    # -- ordering and capacity -------------------------------------------------

    @staticmethod
    def _order_key(task: StudyTask, score: float, plan: StudyPlan, now: datetime):
        days = plan.days_to_exam(now)
        return (days is None, days if days is not None else 0, -score, task.start, task.id)

    @staticmethod
    def _task_cap(mode: SchedulingMode) -> int:
        if mode == "emergency":
            return CAPACITY_LIMITS.emergency_max_tasks_per_day
        return CAPACITY_LIMITS.max_tasks_per_day

    @staticmethod
    def _minute_cap(plan: StudyPlan, mode: SchedulingMode) -> int:
        budget = plan.daily_study_hours * 60
        if mode == "emergency":
            budget *= CAPACITY_LIMITS.emergency_intensity_multiplier
        return min(CAPACITY_LIMITS.max_daily_minutes, int(budget))

    @staticmethod
    def _planned_duration(task: StudyTask, mode: SchedulingMode, profile: BehaviorProfile) -> int:
        duration = task.duration
        if mode == "adaptive":
            duration = profile.estimate_task_duration(task.topic, duration)
        elif mode == "emergency":
            duration = round_half_up(duration * CAPACITY_LIMITS.emergency_duration_factor)
        return max(CAPACITY_LIMITS.min_task_minutes, min(CAPACITY_LIMITS.max_task_minutes, duration))

    @staticmethod
    def _window_order(profile: BehaviorProfile) -> List[Tuple[str, int, int]]:
        windows = list(CAPACITY_LIMITS.slot_windows)
        if profile.is_reliable():
            optimal = profile.get_optimal_slot()
            windows.sort(key=lambda window: window[0] != optimal)
        return windows

    # -- occupancy -------------------------------------------------------------

    def _load_occupancy(
        self,
        session: Session,
        user_id: str,
        now: datetime,
        horizon_end: datetime,
        exclude: set[str],
    ) -> Tuple[Dict[date, _DayLoad], List[StudyTask]]:
        loads: Dict[date, _DayLoad] = defaultdict(_DayLoad)
        window_start = start_of_day(now)
        window_end = horizon_end + timedelta(days=1)

        tasks = [
            task
            for task in self._items.list_user_tasks_between(session, user_id, window_start, window_end)
            if task.id not in exclude
        ]
        for task in tasks:
            loads[task.start.date()].add(
                task.start, task.end, task.duration, task.difficulty, timed=task.time_slot_start is not None
            )

        events: List[StudyEvent] = self._items.list_user_events_between(session, user_id, window_start, window_end)
        for event in events:
            minutes = int((event.end_time - event.start_time).total_seconds() // 60)
            loads[event.start_time.date()].add(event.start_time, event.end_time, minutes, event.difficulty)

        return loads, tasks

    def _flag_conflicts(
        self,
        session: Session,
        plans_by_id: Dict[str, StudyPlan],
        tasks: List[StudyTask],
        now: datetime,
    ) -> int:
        """Flag already-placed future tasks that now collide with a busy block."""
        flagged = 0
        for task in tasks:
            plan = plans_by_id.get(task.plan_id)
            if plan is None or task.time_slot_start is None or task.status == "completed":
                continue
            if task.time_slot_start < now or not plan.overlaps_busy_block(task.start, task.end):
                continue
            metadata = task.metadata
            if metadata.conflict_flag:
                continue
            flagged_metadata = metadata.model_copy(
                update={"conflict_flag": True, "conflict_count": metadata.conflict_count + 1}
            )
            if self._items.flag_conflict(session, task.id, task.version, flagged_metadata):
                flagged += 1
        return flagged

    def _compress(
        self, session: Session, backlog: List[StudyTask], result: RedistributionResult
    ) -> List[StudyTask]:
        """Drop low-priority easy work so the remaining backlog fits before the exam."""
        remaining: List[StudyTask] = []
        for task in backlog:
            if task.priority == "low" and task.difficulty == "easy":
                if self._items.skip_task(session, task.id, task.version):
                    result.skipped.append(task.id)
                continue
            remaining.append(task)
        return remaining

    # -- placement -------------------------------------------------------------

    def _find_slot(
        self,
        duration: int,
        difficulty: str,
        plan: StudyPlan,
        loads: Dict[date, _DayLoad],
        busy_blocks: List[WeeklyBusyBlock],
        windows: List[Tuple[str, int, int]],
        now: datetime,
        *,
        task_cap: int,
        minute_cap: int,
    ) -> Optional[Tuple[datetime, datetime]]:
        step = CAPACITY_LIMITS.slot_granularity_minutes
        ranges = _candidate_ranges(windows, duration)
        day = now.date()
        last_day = plan.end_date.date()
        while day <= last_day:
            load = loads.get(day) or _DayLoad()
            if (
                load.count < task_cap
                and not (difficulty == "hard" and load.hard >= CAPACITY_LIMITS.max_hard_tasks_per_day)
                and load.minutes + duration <= minute_cap
            ):
                day_start = start_of_day(day)
                for first_hour, last_hour in ranges:
                    for offset in range(first_hour * 60, last_hour * 60 - duration + 1, step):
                        slot_start = day_start + timedelta(minutes=offset)
                        slot_end = slot_start + timedelta(minutes=duration)
                        if slot_start < now:
                            continue
                        if slot_end > plan.end_date:
                            break
                        if load.collides(slot_start, slot_end):
                            continue
                        if any(block.overlaps(slot_start, slot_end) for block in busy_blocks):
                            continue
                        return slot_start, slot_end
            day += timedelta(days=1)
        return None

    @staticmethod
    def _move(
        task: StudyTask,
        plan: StudyPlan,
        slot_start: datetime,
        slot_end: datetime,
        duration: int,
        reason: RescheduleReason,
        now: datetime,
    ) -> StudyTask:
        moved = cast(StudyTask, apply_status_transition(task, "rescheduled", now=now))
        record = ReschedulingRecord(
            timestamp=now,
            reason=reason,
            old_slot_start=task.time_slot_start or task.scheduled_date,
            old_slot_end=task.time_slot_end,
            new_slot_start=slot_start,
            new_slot_end=slot_end,
        )
        metadata = moved.metadata.model_copy(update={"is_rescheduled": True, "last_scheduled_at": now})
        return moved.model_copy(
            update={
                "scheduled_date": slot_start,
                "scheduled_time": format_hhmm(slot_start),
                "time_slot_start": slot_start,
                "time_slot_end": slot_end,
                "duration": duration,
                "rescheduled_reason": reason,
                "rescheduling_history": [*task.rescheduling_history, record],
                "scheduling_metadata": metadata,
                "exam_proximity_score": exam_proximity_score(plan, now),
            }
        )


adaptive_rescheduler = AdaptiveRescheduler()

__all__ = [
    "AdaptiveRescheduler",
    "RedistributionOptions",
    "RedistributionResult",
    "TaskAllocation",
    "adaptive_rescheduler",
    "exam_proximity_score",
    "redistribution_priority",
]
