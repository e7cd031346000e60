"""Projection and completion sync between legacy tasks and time-ranged events."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Literal, Optional, Union

from .clock import Clock, as_utc, format_hhmm, utcnow
from .config import Settings, get_settings
from .constants import DIFFICULTY_BONUS, DIFFICULTY_EFFORT, PRIORITY_BASE
from .db.session import SessionScope, session_scope
from .errors import EventNotFoundError, SchedulingValidationError, TaskNotFoundError
from .repositories.schedule_items import ScheduleItemRepository, schedule_items
from .repositories.study_plans import StudyPlanRepository, study_plans
from .schedule_items import (
    EnergyTag,
    EventProjection,
    EventType,
    ItemStatus,
    ScheduleItem,
    SchedulingMetadata,
    StudyEvent,
    StudyTask,
    TaskProjection,
)
from .telemetry import emit_event

logger = logging.getLogger(__name__)

PreferredModel = Literal["task", "event"]

DEFAULT_EVENT_MINUTES = 60
DEFAULT_EFFORT = 5


def priority_score(priority: str, difficulty: str, exam_proximity_score: int) -> float:
    base = PRIORITY_BASE.get(priority, PRIORITY_BASE["medium"])
    bonus = DIFFICULTY_BONUS.get(difficulty, 0)
    return max(0.0, min(100.0, base + bonus + exam_proximity_score * 0.2))


def energy_tag_for(duration: int) -> EnergyTag:
    if duration >= 90:
        return "deep_work"
    if duration >= 60:
        return "high"
    if duration >= 30:
        return "medium"
    return "low"


def event_type_for(duration: int, topic: Optional[str]) -> EventType:
    if duration >= 90:
        return "deep_work"
    lowered = (topic or "").lower()
    if "practice" in lowered:
        return "practice"
    if "review" in lowered:
        return "review"
    if "exam" in lowered:
        return "exam_prep"
    return "deep_work"


def estimated_effort(difficulty: str) -> int:
    return DIFFICULTY_EFFORT.get(difficulty, DEFAULT_EFFORT)


class ScheduleItemAdapter:
    """Keeps callers on either schedule model looking at one consistent schedule."""

    def __init__(
        self,
        *,
        items: ScheduleItemRepository = schedule_items,
        plans: StudyPlanRepository = study_plans,
        session_factory: SessionScope = session_scope,
        now: Clock = utcnow,
        settings_provider: Callable[[], Settings] = get_settings,
    ) -> None:
        self._items = items
        self._plans = plans
        self._session_scope = session_factory
        self._now = now
        self._settings_provider = settings_provider

    # -- pure projections ------------------------------------------------------

    def task_to_event_projection(self, task: Optional[StudyTask]) -> Optional[EventProjection]:
        if task is None:
            logger.warning("task_to_event_projection called without a task")
            return None
        try:
            start = task.time_slot_start or task.scheduled_date
            end = task.time_slot_end or (start + timedelta(minutes=task.duration) if task.duration else None)
            return EventProjection(
                id=task.id,
                source="task",
                task_id=task.id,
                plan_id=task.plan_id,
                user_id=task.user_id,
                title=task.title,
                description=task.description,
                topic=task.topic,
                start_time=start,
                end_time=end,
                priority=task.priority,
                difficulty=task.difficulty,
                status=task.status,
                completed_at=task.completed_at,
                priority_score=priority_score(task.priority, task.difficulty, task.exam_proximity_score),
                energy_tag=energy_tag_for(task.duration),
                type=event_type_for(task.duration, task.topic),
                estimated_effort=estimated_effort(task.difficulty),
                ai_generated=task.metadata.is_auto_scheduled,
                deep_work=task.duration >= 90,
                scheduled_date=task.scheduled_date,
                duration=task.duration,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to project task %s as an event: %s", task.id, exc)
            return None

    def event_to_task_projection(self, event: Optional[StudyEvent]) -> Optional[TaskProjection]:
        if event is None:
            logger.warning("event_to_task_projection called without an event")
            return None
        try:
            duration = DEFAULT_EVENT_MINUTES
            if event.start_time is not None and event.end_time is not None:
                duration = int((event.end_time - event.start_time).total_seconds() // 60)
            return TaskProjection(
                id=event.id,
                event_id=event.id,
                task_id=event.task_id,
                plan_id=event.plan_id,
                user_id=event.user_id,
                title=event.title,
                description=event.description,
                topic=event.topic,
                scheduled_date=event.start_time,
                scheduled_time=format_hhmm(event.start_time),
                time_slot_start=event.start_time,
                time_slot_end=event.end_time,
                duration=duration,
                priority=event.priority,
                difficulty=event.difficulty,
                status=event.status,
                completed_at=event.completed_at,
                scheduling_metadata=SchedulingMetadata(
                    is_auto_scheduled=event.ai_generated,
                    last_scheduled_at=event.created_at,
                ),
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to project event %s as a task: %s", event.id, exc)
            return None

    def project(self, item: ScheduleItem) -> Optional[EventProjection]:
        if isinstance(item, StudyTask):
            return self.task_to_event_projection(item)
        if isinstance(item, StudyEvent):
            return self._event_projection(item)
        raise TypeError(f"Unsupported schedule item: {type(item).__name__}")

    def _event_projection(self, event: StudyEvent) -> EventProjection:
        return EventProjection(
            id=event.id,
            source="event",
            task_id=event.task_id,
            plan_id=event.plan_id,
            user_id=event.user_id,
            title=event.title,
            description=event.description,
            topic=event.topic,
            start_time=event.start_time,
            end_time=event.end_time,
            priority=event.priority,
            difficulty=event.difficulty,
            status=event.status,
            completed_at=event.completed_at,
            priority_score=event.priority_score,
            energy_tag=event.energy_tag,
            type=event.type,
            estimated_effort=estimated_effort(event.difficulty),
            ai_generated=event.ai_generated,
            deep_work=event.type == "deep_work",
        )

    def load_task(self, task_id: str) -> StudyTask:
        with self._session_scope(commit=False) as session:
            task = self._items.get_task(session, task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def load_event(self, event_id: str) -> StudyEvent:
        with self._session_scope(commit=False) as session:
            event = self._items.get_event(session, event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    # -- completion sync -------------------------------------------------------

    def sync_event_completion_to_task(
        self,
        event: Union[StudyEvent, str],
        task: Optional[StudyTask] = None,
    ) -> Optional[StudyTask]:
        """Copy an event's completion onto its source task; ``None`` when nothing changed."""
        try:
            with self._session_scope() as session:
                if isinstance(event, str):
                    loaded = self._items.get_event(session, event)
                    if loaded is None:
                        logger.info("Event %s not found; skipping completion sync", event)
                        return None
                    event = loaded
                if event.status != "completed" or not event.task_id:
                    return None
                if task is None or task.id != event.task_id:
                    task = self._items.get_task(session, event.task_id)
                if task is None or task.status == "completed":
                    return None

                actual_duration = None
                if event.actual_start_time and event.actual_end_time:
                    elapsed = event.actual_end_time - event.actual_start_time
                    actual_duration = max(0, int(elapsed.total_seconds() // 60))

                updated = self._items.complete_task(
                    session,
                    task.id,
                    completed_at=event.completed_at or self._now(),
                    completion_notes=event.completion_notes,
                    actual_duration=actual_duration,
                )
                if not updated:
                    return None
                synced = self._items.get_task(session, task.id)
        except Exception as exc:  # noqa: BLE001
            logger.error("Event completion sync failed: %s", exc)
            return None

        emit_event(
            "schedule_completion_synced",
            direction="event_to_task",
            event_id=event.id,
            task_ids=[task.id],
        )
        return synced

    def sync_task_completion_to_events(self, task: Union[StudyTask, str]) -> List[StudyEvent]:
        """Mark every open event derived from a completed task as completed."""
        try:
            with self._session_scope() as session:
                if isinstance(task, str):
                    loaded = self._items.get_task(session, task)
                    if loaded is None:
                        return []
                    task = loaded
                if task.status != "completed":
                    return []

                completed_at = task.completed_at or self._now()
                synced: List[StudyEvent] = []
                for event in self._items.list_events_for_task(session, task.id):
                    if event.status == "completed":
                        continue
                    if self._items.complete_event(
                        session,
                        event.id,
                        completed_at=completed_at,
                        completion_notes=task.completion_notes,
                    ):
                        refreshed = self._items.get_event(session, event.id)
                        if refreshed is not None:
                            synced.append(refreshed)
        except Exception as exc:  # noqa: BLE001
            logger.error("Task completion sync failed: %s", exc)
            return []

        if synced:
            emit_event(
                "schedule_completion_synced",
                direction="task_to_event",
                task_id=task.id,
                event_ids=[event.id for event in synced],
            )
        return synced

    # -- plan level ------------------------------------------------------------

    def get_preferred_model(self, plan_id: str) -> PreferredModel:
        try:
            with self._session_scope(commit=False) as session:
                plan = self._plans.get(session, plan_id)
            if plan is None:
                return "event"
            if plan.use_legacy_task_model:
                return "task"
            cutoff = self._settings_provider().legacy_model_cutoff
            if plan.created_at is not None and cutoff is not None and plan.created_at < cutoff:
                return "task"
            return "event"
        except Exception as exc:  # noqa: BLE001
            logger.warning("Preferred model lookup failed for plan %s: %s", plan_id, exc)
            return "event"

    def get_unified_schedule(
        self,
        plan_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        status: Optional[ItemStatus] = None,
    ) -> List[EventProjection]:
        start_date = as_utc(start_date)
        end_date = as_utc(end_date)
        if start_date is not None and end_date is not None and end_date < start_date:
            raise SchedulingValidationError("end_date must not precede start_date.")

        with self._session_scope(commit=False) as session:
            self._plans.require(session, plan_id)
            tasks = self._items.list_tasks_for_plan(session, plan_id)
            events = self._items.list_events_for_plan(session, plan_id)

        entries: List[EventProjection] = []
        for item in [*tasks, *events]:
            if isinstance(item, StudyTask) and item.time_slot_start is None:
                continue
            if isinstance(item, StudyEvent) and item.task_id is not None:
                continue
            projection = self.project(item)
            if projection is not None:
                entries.append(projection)

        if start_date is not None:
            entries = [entry for entry in entries if entry.start_time >= start_date]
        if end_date is not None:
            entries = [entry for entry in entries if entry.start_time <= end_date]
        if status is not None:
            entries = [entry for entry in entries if entry.status == status]

        entries.sort(key=lambda entry: (entry.start_time, entry.id))
        return entries


schedule_adapter = ScheduleItemAdapter()

__all__ = [
    "PreferredModel",
    "ScheduleItemAdapter",
    "energy_tag_for",
    "estimated_effort",
    "event_type_for",
    "priority_score",
    "schedule_adapter",
]
