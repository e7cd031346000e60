"""Initial adaptive scheduling schema."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20260301_01_initial_scheduling_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "study_plans",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("topics", sa.JSON(), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("exam_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("exam_mode", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("daily_study_hours", sa.Float(), nullable=False, server_default="2"),
        sa.Column("weekly_busy_blocks", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("total_tasks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_tasks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completion_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("adaptation_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_adapted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_mode", sa.String(length=16), nullable=True),
        sa.Column("use_legacy_task_model", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_study_plans_user_id", "study_plans", ["user_id"])
    op.create_index("ix_study_plans_user_status", "study_plans", ["user_id", "status"])
    op.create_index("ix_study_plans_user_exam", "study_plans", ["user_id", "exam_date"])

    op.create_table(
        "study_tasks",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("plan_id", sa.String(length=36), sa.ForeignKey("study_plans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("topic", sa.String(length=200), nullable=True),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_time", sa.String(length=5), nullable=True),
        sa.Column("time_slot_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("time_slot_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default="medium"),
        sa.Column("difficulty", sa.String(length=16), nullable=False, server_default="medium"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_duration", sa.Integer(), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("scheduling_metadata", sa.JSON(), nullable=True),
        sa.Column("original_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rescheduled_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rescheduled_reason", sa.String(length=32), nullable=True),
        sa.Column("rescheduling_history", sa.JSON(), nullable=False),
        sa.Column("exam_proximity_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("linked_notebook_id", sa.String(length=64), nullable=True),
        sa.Column("linked_artifact", sa.String(length=200), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_study_tasks_user_id", "study_tasks", ["user_id"])
    op.create_index("ix_study_tasks_plan_status", "study_tasks", ["plan_id", "status"])
    op.create_index("ix_study_tasks_user_slot", "study_tasks", ["user_id", "time_slot_start", "time_slot_end"])
    op.create_index("ix_study_tasks_user_status_completed", "study_tasks", ["user_id", "status", "completed_at"])

    op.create_table(
        "study_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("plan_id", sa.String(length=36), sa.ForeignKey("study_plans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("task_id", sa.String(length=36), sa.ForeignKey("study_tasks.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("topic", sa.String(length=200), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("priority_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("energy_tag", sa.String(length=16), nullable=False, server_default="medium"),
        sa.Column("type", sa.String(length=16), nullable=False, server_default="deep_work"),
        sa.Column("difficulty", sa.String(length=16), nullable=False, server_default="medium"),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default="medium"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("ai_generated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reschedule_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_study_events_task_id", "study_events", ["task_id"])
    op.create_index("ix_study_events_plan_start", "study_events", ["plan_id", "start_time"])
    op.create_index("ix_study_events_user_start", "study_events", ["user_id", "start_time"])

    op.create_table(
        "behavior_profiles",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("productivity_peak_hours", sa.JSON(), nullable=False),
        sa.Column("completion_rate_by_time_slot", sa.JSON(), nullable=False),
        sa.Column("avg_study_session_minutes", sa.Integer(), nullable=False, server_default="45"),
        sa.Column("optimal_tasks_per_day", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("consistency_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("topic_duration_map", sa.JSON(), nullable=False),
        sa.Column("data_quality_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sample_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_analyzed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_behavior_profiles_user", "behavior_profiles", ["user_id"], unique=True)

    op.create_table(
        "daily_study_stats",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("total_study_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tasks_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tasks_missed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_streak_day", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("user_id", "date", name="uq_daily_stats_user_date"),
    )
    op.create_index("ix_daily_study_stats_user_id", "daily_study_stats", ["user_id"])

    op.create_table(
        "focus_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("session_status", sa.String(length=16), nullable=False, server_default="completed"),
        sa.Column("actual_duration_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_focus_sessions_user_status", "focus_sessions", ["user_id", "session_status"])

    op.create_table(
        "scheduling_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("plan_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("execution_time_ms", sa.Float(), nullable=True),
        sa.Column("triggered_by", sa.String(length=32), nullable=False, server_default="system"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_scheduling_logs_user_created", "scheduling_logs", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_scheduling_logs_user_created", table_name="scheduling_logs")
    op.drop_table("scheduling_logs")
    op.drop_index("ix_focus_sessions_user_status", table_name="focus_sessions")
    op.drop_table("focus_sessions")
    op.drop_index("ix_daily_study_stats_user_id", table_name="daily_study_stats")
    op.drop_table("daily_study_stats")
    op.drop_index("ix_behavior_profiles_user", table_name="behavior_profiles")
    op.drop_table("behavior_profiles")
    op.drop_index("ix_study_events_user_start", table_name="study_events")
    op.drop_index("ix_study_events_plan_start", table_name="study_events")
    op.drop_index("ix_study_events_task_id", table_name="study_events")
    op.drop_table("study_events")
    op.drop_index("ix_study_tasks_user_status_completed", table_name="study_tasks")
    op.drop_index("ix_study_tasks_user_slot", table_name="study_tasks")
    op.drop_index("ix_study_tasks_plan_status", table_name="study_tasks")
    op.drop_index("ix_study_tasks_user_id", table_name="study_tasks")
    op.drop_table("study_tasks")
    op.drop_index("ix_study_plans_user_exam", table_name="study_plans")
    op.drop_index("ix_study_plans_user_status", table_name="study_plans")
    op.drop_index("ix_study_plans_user_id", table_name="study_plans")
    op.drop_table("study_plans")
