"""Study plan models and the read-only activity records the scheduler consumes."""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .clock import as_utc, parse_hhmm, start_of_day

SchedulingMode = Literal["balanced", "adaptive", "emergency"]
PlanStatus = Literal["active", "completed", "paused", "cancelled"]


class WeeklyBusyBlock(BaseModel):
    """Recurring external commitment, e.g. a lecture every Monday 10:00-12:00."""

    day_of_week: int = Field(ge=0, le=6)  # 0 = Monday
    start_time: str
    end_time: str
    label: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _validate_clock(cls, value: str) -> str:
        minutes = parse_hhmm(value)
        return f"{minutes // 60:02d}:{minutes % 60:02d}"

    @model_validator(mode="after")
    def _validate_range(self) -> "WeeklyBusyBlock":
        if parse_hhmm(self.end_time) <= parse_hhmm(self.start_time):
            raise ValueError("Busy block must end after it starts.")
        return self

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """True when ``[start, end)`` intersects this block on any matching weekday."""
        start = as_utc(start)
        end = as_utc(end)
        if end <= start:
            return False
        block_start = parse_hhmm(self.start_time)
        block_end = parse_hhmm(self.end_time)
        day = start_of_day(start)
        while day < end:
            if day.weekday() == self.day_of_week:
                window_start = day + timedelta(minutes=block_start)
                window_end = day + timedelta(minutes=block_end)
                if start < window_end and window_start < end:
                    return True
            day += timedelta(days=1)
        return False


class StudyPlan(BaseModel):
    id: str
    user_id: str
    title: str
    topics: List[str] = Field(default_factory=list)
    start_date: datetime
    end_date: datetime
    exam_date: Optional[datetime] = None
    exam_mode: bool = False
    daily_study_hours: float = Field(default=2.0, gt=0, le=24)
    weekly_busy_blocks: List[WeeklyBusyBlock] = Field(default_factory=list)
    status: PlanStatus = "active"
    is_archived: bool = False
    total_tasks: int = Field(default=0, ge=0)
    completed_tasks: int = Field(default=0, ge=0)
    completion_percentage: int = Field(default=0, ge=0, le=100)
    current_streak: int = Field(default=0, ge=0)
    adaptation_count: int = Field(default=0, ge=0)
    last_adapted_at: Optional[datetime] = None
    current_mode: Optional[SchedulingMode] = None
    use_legacy_task_model: bool = False
    created_at: Optional[datetime] = None

    @field_validator("start_date", "end_date", "exam_date", "last_adapted_at", "created_at")
    @classmethod
    def _tag_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    def completion_rate(self) -> float:
        if self.total_tasks <= 0:
            return 0.0
        return self.completed_tasks / self.total_tasks * 100

    def days_to_exam(self, now: datetime) -> Optional[int]:
        if self.exam_date is None:
            return None
        remaining = (self.exam_date - as_utc(now)).total_seconds() / 86400
        return math.ceil(remaining)

    def overlaps_busy_block(self, start: datetime, end: datetime) -> bool:
        return any(block.overlaps(start, end) for block in self.weekly_busy_blocks)


class DailyStudyStats(BaseModel):
    user_id: str
    date: date
    total_study_minutes: int = Field(default=0, ge=0)
    tasks_completed: int = Field(default=0, ge=0)
    tasks_missed: int = Field(default=0, ge=0)
    is_streak_day: bool = False

    def completion_rate(self) -> float:
        """Percentage of the day's tasks that were completed (0-100)."""
        total = self.tasks_completed + self.tasks_missed
        if total == 0:
            return 0.0
        return self.tasks_completed / total * 100


class FocusSession(BaseModel):
    id: str
    user_id: str
    session_status: str = "completed"
    actual_duration_minutes: int = Field(default=0, ge=0)
    started_at: datetime

    @field_validator("started_at")
    @classmethod
    def _tag_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


__all__ = [
    "DailyStudyStats",
    "FocusSession",
    "PlanStatus",
    "SchedulingMode",
    "StudyPlan",
    "WeeklyBusyBlock",
]
