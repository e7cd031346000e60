"""Database-backed repository for both schedule item variants."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..clock import as_utc
from ..db.models import StudyEventModel, StudyTaskModel
from ..schedule_items import BACKLOG_STATUSES, SchedulingMetadata, StudyEvent, StudyTask

_TASK_FIELDS = (
    "id",
    "plan_id",
    "user_id",
    "title",
    "description",
    "topic",
    "scheduled_date",
    "scheduled_time",
    "time_slot_start",
    "time_slot_end",
    "duration",
    "priority",
    "difficulty",
    "status",
    "completed_at",
    "actual_duration",
    "completion_notes",
    "scheduling_metadata",
    "original_date",
    "rescheduled_count",
    "rescheduled_reason",
    "rescheduling_history",
    "exam_proximity_score",
    "linked_notebook_id",
    "linked_artifact",
    "is_deleted",
    "version",
)

_EVENT_FIELDS = (
    "id",
    "plan_id",
    "user_id",
    "task_id",
    "title",
    "description",
    "topic",
    "start_time",
    "end_time",
    "priority_score",
    "energy_tag",
    "type",
    "difficulty",
    "priority",
    "status",
    "completed_at",
    "actual_start_time",
    "actual_end_time",
    "completion_notes",
    "ai_generated",
    "reschedule_count",
    "is_locked",
    "created_at",
)

# Columns a redistribution move is allowed to rewrite.
_RESCHEDULE_FIELDS = (
    "scheduled_date",
    "scheduled_time",
    "time_slot_start",
    "time_slot_end",
    "duration",
    "status",
    "original_date",
    "rescheduled_count",
    "rescheduled_reason",
    "rescheduling_history",
    "scheduling_metadata",
    "exam_proximity_score",
)


class ScheduleItemRepository:
    """Queries and conditional updates over ``study_tasks`` and ``study_events``."""

    # -- tasks -----------------------------------------------------------------

    def get_task(self, session: Session, task_id: str) -> StudyTask | None:
        model = session.get(StudyTaskModel, task_id)
        return self._task_to_domain(model) if model is not None else None

    def add_task(self, session: Session, task: StudyTask) -> StudyTask:
        model = StudyTaskModel(**self._task_values(task, _TASK_FIELDS))
        session.add(model)
        session.flush()
        return self._task_to_domain(model)

    def list_tasks_for_plan(self, session: Session, plan_id: str) -> List[StudyTask]:
        stmt = (
            select(StudyTaskModel)
            .where(StudyTaskModel.plan_id == plan_id, StudyTaskModel.is_deleted.is_(False))
            .order_by(StudyTaskModel.scheduled_date.asc(), StudyTaskModel.id.asc())
        )
        return [self._task_to_domain(model) for model in session.execute(stmt).scalars().all()]

    def list_backlog(self, session: Session, plan_ids: Sequence[str], now: datetime) -> List[StudyTask]:
        """Pending or rescheduled tasks whose start already passed."""
        if not plan_ids:
            return []
        stmt = (
            select(StudyTaskModel)
            .where(
                StudyTaskModel.plan_id.in_(list(plan_ids)),
                StudyTaskModel.status.in_(sorted(BACKLOG_STATUSES)),
                StudyTaskModel.is_deleted.is_(False),
            )
            .order_by(StudyTaskModel.scheduled_date.asc(), StudyTaskModel.id.asc())
        )
        tasks = [self._task_to_domain(model) for model in session.execute(stmt).scalars().all()]
        return [task for task in tasks if task.start < now]

    def count_backlog(self, session: Session, plan_id: str, now: datetime) -> int:
        return len(self.list_backlog(session, [plan_id], now))

    def count_upcoming(self, session: Session, plan_id: str, now: datetime, days: int) -> int:
        horizon = now + timedelta(days=days)
        stmt = select(StudyTaskModel).where(
            StudyTaskModel.plan_id == plan_id,
            StudyTaskModel.status == "pending",
            StudyTaskModel.is_deleted.is_(False),
        )
        tasks = [self._task_to_domain(model) for model in session.execute(stmt).scalars().all()]
        return sum(1 for task in tasks if now <= task.start <= horizon)

    def list_user_tasks_between(
        self, session: Session, user_id: str, start: datetime, end: datetime
    ) -> List[StudyTask]:
        """Non-skipped, non-deleted tasks of a user starting inside ``[start, end)``."""
        stmt = select(StudyTaskModel).where(
            StudyTaskModel.user_id == user_id,
            StudyTaskModel.is_deleted.is_(False),
            StudyTaskModel.status != "skipped",
        )
        tasks = [self._task_to_domain(model) for model in session.execute(stmt).scalars().all()]
        return [task for task in tasks if start <= task.start < end]

    def list_completed_tasks(self, session: Session, user_id: str) -> List[StudyTask]:
        stmt = (
            select(StudyTaskModel)
            .where(
                StudyTaskModel.user_id == user_id,
                StudyTaskModel.status == "completed",
                StudyTaskModel.completed_at.is_not(None),
            )
            .order_by(StudyTaskModel.completed_at.asc())
        )
        return [self._task_to_domain(model) for model in session.execute(stmt).scalars().all()]

    def list_slotted_tasks(self, session: Session, user_id: str) -> List[StudyTask]:
        stmt = select(StudyTaskModel).where(
            StudyTaskModel.user_id == user_id,
            StudyTaskModel.time_slot_start.is_not(None),
        )
        return [self._task_to_domain(model) for model in session.execute(stmt).scalars().all()]

    def count_tasks(self, session: Session, user_id: str, status: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(StudyTaskModel).where(StudyTaskModel.user_id == user_id)
        if status is not None:
            stmt = stmt.where(StudyTaskModel.status == status)
        return int(session.execute(stmt).scalar_one())

    def save_rescheduled_task(self, session: Session, task: StudyTask, expected_version: int) -> bool:
        """Persist a move only if nobody touched the task since it was read."""
        values = self._task_values(task, _RESCHEDULE_FIELDS)
        values["version"] = expected_version + 1
        result = session.execute(
            update(StudyTaskModel)
            .where(
                StudyTaskModel.id == task.id,
                StudyTaskModel.version == expected_version,
                StudyTaskModel.status.in_(sorted(BACKLOG_STATUSES)),
                StudyTaskModel.is_deleted.is_(False),
            )
            .values(**values)
        )
        return result.rowcount == 1

    def skip_task(self, session: Session, task_id: str, expected_version: int) -> bool:
        result = session.execute(
            update(StudyTaskModel)
            .where(
                StudyTaskModel.id == task_id,
                StudyTaskModel.version == expected_version,
                StudyTaskModel.status.in_(sorted(BACKLOG_STATUSES)),
            )
            .values(status="skipped", version=expected_version + 1)
        )
        return result.rowcount == 1

    def flag_conflict(
        self, session: Session, task_id: str, expected_version: int, metadata: SchedulingMetadata
    ) -> bool:
        result = session.execute(
            update(StudyTaskModel)
            .where(StudyTaskModel.id == task_id, StudyTaskModel.version == expected_version)
            .values(scheduling_metadata=metadata.model_dump(mode="json"), version=expected_version + 1)
        )
        return result.rowcount == 1

    def complete_task(
        self,
        session: Session,
        task_id: str,
        *,
        completed_at: datetime,
        completion_notes: Optional[str] = None,
        actual_duration: Optional[int] = None,
    ) -> bool:
        values: Dict[str, Any] = {
            "status": "completed",
            "completed_at": completed_at,
            "version": StudyTaskModel.version + 1,
        }
        if completion_notes is not None:
            values["completion_notes"] = completion_notes
        if actual_duration is not None:
            values["actual_duration"] = actual_duration
        result = session.execute(
            update(StudyTaskModel)
            .where(StudyTaskModel.id == task_id, StudyTaskModel.status != "completed")
            .values(**values)
        )
        return result.rowcount == 1

    # -- events ----------------------------------------------------------------

    def get_event(self, session: Session, event_id: str) -> StudyEvent | None:
        model = session.get(StudyEventModel, event_id)
        return self._event_to_domain(model) if model is not None else None

    def add_event(self, session: Session, event: StudyEvent) -> StudyEvent:
        values = {field: getattr(event, field) for field in _EVENT_FIELDS if field != "created_at"}
        model = StudyEventModel(**values)
        if event.created_at is not None:
            model.created_at = event.created_at
        session.add(model)
        session.flush()
        return self._event_to_domain(model)

    def list_events_for_plan(self, session: Session, plan_id: str) -> List[StudyEvent]:
        stmt = (
            select(StudyEventModel)
            .where(StudyEventModel.plan_id == plan_id)
            .order_by(StudyEventModel.start_time.asc(), StudyEventModel.id.asc())
        )
        return [self._event_to_domain(model) for model in session.execute(stmt).scalars().all()]

    def list_events_for_task(self, session: Session, task_id: str) -> List[StudyEvent]:
        stmt = select(StudyEventModel).where(StudyEventModel.task_id == task_id)
        return [self._event_to_domain(model) for model in session.execute(stmt).scalars().all()]

    def list_user_events_between(
        self, session: Session, user_id: str, start: datetime, end: datetime
    ) -> List[StudyEvent]:
        """Standalone events (no source task) of a user starting inside ``[start, end)``."""
        stmt = select(StudyEventModel).where(
            StudyEventModel.user_id == user_id,
            StudyEventModel.task_id.is_(None),
            StudyEventModel.status != "skipped",
        )
        events = [self._event_to_domain(model) for model in session.execute(stmt).scalars().all()]
        return [event for event in events if start <= event.start_time < end]

    def complete_event(
        self,
        session: Session,
        event_id: str,
        *,
        completed_at: datetime,
        completion_notes: Optional[str] = None,
    ) -> bool:
        values: Dict[str, Any] = {"status": "completed", "completed_at": completed_at}
        if completion_notes is not None:
            values["completion_notes"] = completion_notes
        result = session.execute(
            update(StudyEventModel)
            .where(StudyEventModel.id == event_id, StudyEventModel.status != "completed")
            .values(**values)
        )
        return result.rowcount == 1

    # -- mapping ---------------------------------------------------------------

    def _task_values(self, task: StudyTask, fields: Iterable[str]) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for field in fields:
            if field == "scheduling_metadata":
                metadata = task.scheduling_metadata
                values[field] = metadata.model_dump(mode="json") if metadata is not None else None
            elif field == "rescheduling_history":
                values[field] = [record.model_dump(mode="json") for record in task.rescheduling_history]
            else:
                values[field] = getattr(task, field)
        return values

    def _task_to_domain(self, model: StudyTaskModel) -> StudyTask:
        payload = {field: getattr(model, field) for field in _TASK_FIELDS}
        payload["rescheduling_history"] = payload["rescheduling_history"] or []
        return StudyTask.model_validate(payload)

    def _event_to_domain(self, model: StudyEventModel) -> StudyEvent:
        payload = {field: getattr(model, field) for field in _EVENT_FIELDS}
        payload["start_time"] = as_utc(model.start_time)
        payload["end_time"] = as_utc(model.end_time)
        return StudyEvent.model_validate(payload)


schedule_items = ScheduleItemRepository()

__all__ = ["ScheduleItemRepository", "schedule_items"]
