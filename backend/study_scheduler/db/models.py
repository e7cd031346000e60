"""ORM models backing the scheduling persistence layer."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


def _uuid() -> str:
    return str(uuid.uuid4())


class StudyPlanModel(TimestampMixin, Base):
    __tablename__ = "study_plans"
    __table_args__ = (
        Index("ix_study_plans_user_status", "user_id", "status"),
        Index("ix_study_plans_user_exam", "user_id", "exam_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    topics: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    exam_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    exam_mode: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    daily_study_hours: Mapped[float] = mapped_column(Float, default=2.0, nullable=False)
    weekly_busy_blocks: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="active", nullable=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    total_tasks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_tasks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completion_percentage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    adaptation_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_adapted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    current_mode: Mapped[str | None] = mapped_column(String(16), nullable=True)
    use_legacy_task_model: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    tasks: Mapped[list["StudyTaskModel"]] = relationship(
        back_populates="plan", cascade="all, delete-orphan"
    )
    events: Mapped[list["StudyEventModel"]] = relationship(
        back_populates="plan", cascade="all, delete-orphan"
    )


class StudyTaskModel(TimestampMixin, Base):
    __tablename__ = "study_tasks"
    __table_args__ = (
        Index("ix_study_tasks_plan_status", "plan_id", "status"),
        Index("ix_study_tasks_user_slot", "user_id", "time_slot_start", "time_slot_end"),
        Index("ix_study_tasks_user_status_completed", "user_id", "status", "completed_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    plan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("study_plans.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    topic: Mapped[str | None] = mapped_column(String(200))
    scheduled_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    scheduled_time: Mapped[str | None] = mapped_column(String(5))
    time_slot_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    time_slot_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    priority: Mapped[str] = mapped_column(String(16), default="medium", nullable=False)
    difficulty: Mapped[str] = mapped_column(String(16), default="medium", nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completion_notes: Mapped[str | None] = mapped_column(Text)
    scheduling_metadata: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    original_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rescheduled_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rescheduled_reason: Mapped[str | None] = mapped_column(String(32))
    rescheduling_history: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)
    exam_proximity_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    linked_notebook_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    linked_artifact: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    plan: Mapped[StudyPlanModel] = relationship(back_populates="tasks")


class StudyEventModel(TimestampMixin, Base):
    __tablename__ = "study_events"
    __table_args__ = (
        Index("ix_study_events_plan_start", "plan_id", "start_time"),
        Index("ix_study_events_user_start", "user_id", "start_time"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    plan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("study_plans.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    task_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("study_tasks.id", ondelete="SET NULL"), nullable=True, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    topic: Mapped[str | None] = mapped_column(String(200))
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    priority_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    energy_tag: Mapped[str] = mapped_column(String(16), default="medium", nullable=False)
    type: Mapped[str] = mapped_column(String(16), default="deep_work", nullable=False)
    difficulty: Mapped[str] = mapped_column(String(16), default="medium", nullable=False)
    priority: Mapped[str] = mapped_column(String(16), default="medium", nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completion_notes: Mapped[str | None] = mapped_column(Text)
    ai_generated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reschedule_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    plan: Mapped[StudyPlanModel] = relationship(back_populates="events")


class BehaviorProfileModel(TimestampMixin, Base):
    __tablename__ = "behavior_profiles"
    __table_args__ = (Index("ix_behavior_profiles_user", "user_id", unique=True),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    productivity_peak_hours: Mapped[list[int]] = mapped_column(JSONType, default=list, nullable=False)
    completion_rate_by_time_slot: Mapped[dict[str, float]] = mapped_column(
        JSONType, default=dict, nullable=False
    )
    avg_study_session_minutes: Mapped[int] = mapped_column(Integer, default=45, nullable=False)
    optimal_tasks_per_day: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    consistency_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    topic_duration_map: Mapped[dict[str, dict]] = mapped_column(JSONType, default=dict, nullable=False)
    data_quality_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sample_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_analyzed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class DailyStudyStatsModel(Base):
    __tablename__ = "daily_study_stats"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_daily_stats_user_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    total_study_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tasks_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tasks_missed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_streak_day: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class FocusSessionModel(Base):
    __tablename__ = "focus_sessions"
    __table_args__ = (Index("ix_focus_sessions_user_status", "user_id", "session_status"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    session_status: Mapped[str] = mapped_column(String(16), default="completed", nullable=False)
    actual_duration_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )


class SchedulingLogModel(Base):
    __tablename__ = "scheduling_logs"
    __table_args__ = (Index("ix_scheduling_logs_user_created", "user_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    plan_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    details: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text)
    execution_time_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    triggered_by: Mapped[str] = mapped_column(String(32), default="system", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )


__all__ = [
    "BehaviorProfileModel",
    "DailyStudyStatsModel",
    "FocusSessionModel",
    "SchedulingLogModel",
    "StudyEventModel",
    "StudyPlanModel",
    "StudyTaskModel",
]
