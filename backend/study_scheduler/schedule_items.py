"""Schedule item variants (legacy tasks and time-ranged events) and their status machine."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Annotated, Dict, FrozenSet, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .clock import as_utc
from .errors import InvalidStatusTransition

Priority = Literal["low", "medium", "high", "urgent"]
Difficulty = Literal["easy", "medium", "hard"]
ItemStatus = Literal["pending", "in-progress", "completed", "skipped", "rescheduled"]
RescheduleReason = Literal["user_manual", "missed_task", "conflict", "adaptive_engine"]
EnergyTag = Literal["low", "medium", "high", "deep_work"]
EventType = Literal["deep_work", "practice", "review", "exam_prep", "lecture", "break", "other"]

BACKLOG_STATUSES: FrozenSet[str] = frozenset({"pending", "rescheduled"})

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"in-progress", "completed", "skipped", "rescheduled"}),
    "in-progress": frozenset({"completed", "skipped", "rescheduled"}),
    "rescheduled": frozenset({"pending", "in-progress", "completed", "skipped", "rescheduled"}),
    "skipped": frozenset({"rescheduled"}),
    "completed": frozenset(),
}


class SchedulingMetadata(BaseModel):
    is_auto_scheduled: bool = False
    is_rescheduled: bool = False
    conflict_flag: bool = False
    conflict_count: int = Field(default=0, ge=0)
    last_scheduled_at: Optional[datetime] = None


class ReschedulingRecord(BaseModel):
    """One entry in a task's move history."""

    timestamp: datetime
    reason: RescheduleReason
    old_slot_start: Optional[datetime] = None
    old_slot_end: Optional[datetime] = None
    new_slot_start: Optional[datetime] = None
    new_slot_end: Optional[datetime] = None
    triggered_by: str = "system"


class StudyTask(BaseModel):
    """Legacy time-anchored task; ``time_slot_*`` is filled once it gets a precise slot."""

    kind: Literal["task"] = "task"
    id: str
    plan_id: str
    user_id: str
    title: str
    description: Optional[str] = None
    topic: Optional[str] = None
    scheduled_date: datetime
    scheduled_time: Optional[str] = None
    time_slot_start: Optional[datetime] = None
    time_slot_end: Optional[datetime] = None
    duration: int = Field(default=60, ge=15, le=480)
    priority: Priority = "medium"
    difficulty: Difficulty = "medium"
    status: ItemStatus = "pending"
    completed_at: Optional[datetime] = None
    actual_duration: Optional[int] = Field(default=None, ge=0)
    completion_notes: Optional[str] = None
    scheduling_metadata: Optional[SchedulingMetadata] = None
    original_date: Optional[datetime] = None
    rescheduled_count: int = Field(default=0, ge=0)
    rescheduled_reason: Optional[RescheduleReason] = None
    rescheduling_history: List[ReschedulingRecord] = Field(default_factory=list)
    exam_proximity_score: int = Field(default=0, ge=0, le=100)
    linked_notebook_id: Optional[str] = None
    linked_artifact: Optional[str] = None
    is_deleted: bool = False
    version: int = Field(default=0, ge=0)

    @field_validator(
        "scheduled_date", "time_slot_start", "time_slot_end", "completed_at", "original_date"
    )
    @classmethod
    def _tag_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @model_validator(mode="after")
    def _derive_slot_end(self) -> "StudyTask":
        if self.time_slot_start is not None:
            self.time_slot_end = self.time_slot_start + timedelta(minutes=self.duration)
        return self

    @property
    def start(self) -> datetime:
        return self.time_slot_start or self.scheduled_date

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration)

    @property
    def metadata(self) -> SchedulingMetadata:
        """Scheduling metadata, defaulted for records created before it existed."""
        return self.scheduling_metadata or SchedulingMetadata()


class StudyEvent(BaseModel):
    """Modern time-ranged schedule entry."""

    kind: Literal["event"] = "event"
    id: str
    plan_id: str
    user_id: str
    task_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    topic: Optional[str] = None
    start_time: datetime
    end_time: datetime
    priority_score: float = Field(default=0.0, ge=0, le=100)
    energy_tag: EnergyTag = "medium"
    type: EventType = "deep_work"
    difficulty: Difficulty = "medium"
    priority: Priority = "medium"
    status: ItemStatus = "pending"
    completed_at: Optional[datetime] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    completion_notes: Optional[str] = None
    ai_generated: bool = False
    reschedule_count: int = Field(default=0, ge=0)
    is_locked: bool = False
    created_at: Optional[datetime] = None

    @field_validator(
        "start_time",
        "end_time",
        "completed_at",
        "actual_start_time",
        "actual_end_time",
        "created_at",
    )
    @classmethod
    def _tag_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @model_validator(mode="after")
    def _validate_range(self) -> "StudyEvent":
        if self.end_time < self.start_time:
            raise ValueError("Event end_time must not precede start_time.")
        return self


ScheduleItem = Annotated[Union[StudyTask, StudyEvent], Field(discriminator="kind")]


class EventProjection(BaseModel):
    """Event-shaped view of either variant, used by the unified schedule."""

    id: str
    source: Literal["task", "event"]
    task_id: Optional[str] = None
    plan_id: str
    user_id: str
    title: str
    description: Optional[str] = None
    topic: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    priority: Priority
    difficulty: Difficulty
    status: ItemStatus
    completed_at: Optional[datetime] = None
    priority_score: float
    energy_tag: EnergyTag
    type: EventType
    estimated_effort: int
    ai_generated: bool = False
    deep_work: bool = False
    scheduled_date: Optional[datetime] = None
    duration: Optional[int] = None


class TaskProjection(BaseModel):
    """Task-shaped view of an event for callers still on the legacy model."""

    id: str
    event_id: str
    task_id: Optional[str] = None
    plan_id: str
    user_id: str
    title: str
    description: Optional[str] = None
    topic: Optional[str] = None
    scheduled_date: datetime
    scheduled_time: Optional[str] = None
    time_slot_start: Optional[datetime] = None
    time_slot_end: Optional[datetime] = None
    duration: int
    priority: Priority
    difficulty: Difficulty
    status: ItemStatus
    completed_at: Optional[datetime] = None
    scheduling_metadata: SchedulingMetadata = Field(default_factory=SchedulingMetadata)


def can_transition(current: str, target: str) -> bool:
    if current == target == "completed":
        return True
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def apply_status_transition(item: ScheduleItem, target: ItemStatus, *, now: datetime) -> ScheduleItem:
    """Return a copy of ``item`` moved to ``target``.

    Completing an already-completed item returns it unchanged. Rescheduling a
    task keeps the first ``original_date`` and bumps ``rescheduled_count``.
    """
    if item.status == "completed" and target == "completed":
        return item
    if not can_transition(item.status, target):
        raise InvalidStatusTransition(item.status, target)

    update: Dict[str, object] = {"status": target}
    if target == "completed":
        update["completed_at"] = now

    if isinstance(item, StudyTask):
        if target == "rescheduled":
            update["rescheduled_count"] = item.rescheduled_count + 1
            if item.original_date is None:
                update["original_date"] = item.scheduled_date
            metadata = item.metadata.model_copy(update={"is_rescheduled": True})
            update["scheduling_metadata"] = metadata
    elif isinstance(item, StudyEvent):
        if target == "rescheduled":
            update["reschedule_count"] = item.reschedule_count + 1
    else:  # pragma: no cover - exhaustive over ScheduleItem
        raise TypeError(f"Unsupported schedule item: {type(item).__name__}")

    return item.model_copy(update=update)


__all__ = [
    "ALLOWED_TRANSITIONS",
    "BACKLOG_STATUSES",
    "Difficulty",
    "EnergyTag",
    "EventProjection",
    "EventType",
    "ItemStatus",
    "Priority",
    "ReschedulingRecord",
    "RescheduleReason",
    "ScheduleItem",
    "SchedulingMetadata",
    "StudyEvent",
    "StudyTask",
    "TaskProjection",
    "apply_status_transition",
    "can_transition",
]
