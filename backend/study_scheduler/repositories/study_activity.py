"""Read access to daily stats and focus sessions, plus the scheduling audit log."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..db.models import DailyStudyStatsModel, FocusSessionModel, SchedulingLogModel
from ..study_plan import DailyStudyStats, FocusSession


class StudyActivityRepository:
    def list_daily_stats(self, session: Session, user_id: str, since: date) -> List[DailyStudyStats]:
        stmt = (
            select(DailyStudyStatsModel)
            .where(DailyStudyStatsModel.user_id == user_id, DailyStudyStatsModel.date >= since)
            .order_by(DailyStudyStatsModel.date.asc())
        )
        return [
            DailyStudyStats.model_validate(
                {
                    "user_id": model.user_id,
                    "date": model.date,
                    "total_study_minutes": model.total_study_minutes,
                    "tasks_completed": model.tasks_completed,
                    "tasks_missed": model.tasks_missed,
                    "is_streak_day": model.is_streak_day,
                }
            )
            for model in session.execute(stmt).scalars().all()
        ]

    def current_streak(self, session: Session, user_id: str, today: date) -> int:
        """Consecutive streak days ending today."""
        stmt = (
            select(DailyStudyStatsModel.date)
            .where(
                DailyStudyStatsModel.user_id == user_id,
                DailyStudyStatsModel.is_streak_day.is_(True),
                DailyStudyStatsModel.date <= today,
            )
            .order_by(DailyStudyStatsModel.date.desc())
        )
        streak = 0
        expected = today
        for streak_day in session.execute(stmt).scalars():
            if streak_day != expected:
                break
            streak += 1
            expected = expected - timedelta(days=1)
        return streak

    def add_daily_stats(self, session: Session, stats: DailyStudyStats) -> None:
        session.add(DailyStudyStatsModel(**stats.model_dump()))
        session.flush()

    def list_recent_focus_durations(self, session: Session, user_id: str, limit: int) -> List[int]:
        stmt = (
            select(FocusSessionModel.actual_duration_minutes)
            .where(
                FocusSessionModel.user_id == user_id,
                FocusSessionModel.session_status == "completed",
                FocusSessionModel.actual_duration_minutes > 0,
            )
            .order_by(FocusSessionModel.started_at.desc())
            .limit(limit)
        )
        return list(session.execute(stmt).scalars().all())

    def count_focus_sessions(self, session: Session, user_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(FocusSessionModel)
            .where(FocusSessionModel.user_id == user_id, FocusSessionModel.session_status == "completed")
        )
        return int(session.execute(stmt).scalar_one())

    def add_focus_session(self, session: Session, focus_session: FocusSession) -> None:
        session.add(FocusSessionModel(**focus_session.model_dump()))
        session.flush()

    def record_scheduling_log(
        self,
        session: Session,
        *,
        user_id: str,
        action: str,
        plan_id: Optional[str] = None,
        success: bool = True,
        details: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
        execution_time_ms: Optional[float] = None,
        triggered_by: str = "system",
    ) -> None:
        session.add(
            SchedulingLogModel(
                user_id=user_id,
                plan_id=plan_id,
                action=action,
                success=success,
                details=details or {},
                error_message=error_message,
                execution_time_ms=execution_time_ms,
                triggered_by=triggered_by,
            )
        )

    def list_scheduling_logs(self, session: Session, user_id: str) -> List[SchedulingLogModel]:
        stmt = (
            select(SchedulingLogModel)
            .where(SchedulingLogModel.user_id == user_id)
            .order_by(SchedulingLogModel.created_at.asc())
        )
        return list(session.execute(stmt).scalars().all())


study_activity = StudyActivityRepository()

__all__ = ["StudyActivityRepository", "study_activity"]
