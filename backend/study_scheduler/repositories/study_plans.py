"""Database-backed study plan repository."""

from __future__ import annotations

from datetime import datetime
from typing import List

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..db.models import StudyPlanModel
from ..errors import PlanNotFoundError, SchedulingValidationError
from ..study_plan import StudyPlan


class StudyPlanRepository:
    """Reads plans and writes only the counters the scheduler owns."""

    def get(self, session: Session, plan_id: str) -> StudyPlan | None:
        model = session.get(StudyPlanModel, plan_id)
        if model is None:
            return None
        return self._to_domain(model)

    def require(self, session: Session, plan_id: str) -> StudyPlan:
        if not plan_id:
            raise SchedulingValidationError("A plan id is required.")
        plan = self.get(session, plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    def list_active_for_user(self, session: Session, user_id: str) -> List[StudyPlan]:
        stmt = (
            select(StudyPlanModel)
            .where(
                StudyPlanModel.user_id == user_id,
                StudyPlanModel.status == "active",
                StudyPlanModel.is_archived.is_(False),
            )
            .order_by(StudyPlanModel.created_at.asc(), StudyPlanModel.id.asc())
        )
        return [self._to_domain(model) for model in session.execute(stmt).scalars().all()]

    def list_user_ids(self, session: Session) -> List[str]:
        stmt = select(StudyPlanModel.user_id).distinct().order_by(StudyPlanModel.user_id.asc())
        return list(session.execute(stmt).scalars().all())

    def create(self, session: Session, plan: StudyPlan) -> StudyPlan:
        payload = plan.model_dump(exclude={"created_at"})
        payload["weekly_busy_blocks"] = [block.model_dump(mode="json") for block in plan.weekly_busy_blocks]
        model = StudyPlanModel(**payload)
        if plan.created_at is not None:
            model.created_at = plan.created_at
        session.add(model)
        session.flush()
        return self._to_domain(model)

    def record_adaptation(self, session: Session, plan_id: str, adapted_at: datetime) -> None:
        session.execute(
            update(StudyPlanModel)
            .where(StudyPlanModel.id == plan_id)
            .values(
                adaptation_count=StudyPlanModel.adaptation_count + 1,
                last_adapted_at=adapted_at,
            )
        )

    def _to_domain(self, model: StudyPlanModel) -> StudyPlan:
        return StudyPlan.model_validate(
            {
                "id": model.id,
                "user_id": model.user_id,
                "title": model.title,
                "topics": model.topics or [],
                "start_date": model.start_date,
                "end_date": model.end_date,
                "exam_date": model.exam_date,
                "exam_mode": model.exam_mode,
                "daily_study_hours": model.daily_study_hours,
                "weekly_busy_blocks": model.weekly_busy_blocks or [],
                "status": model.status,
                "is_archived": model.is_archived,
                "total_tasks": model.total_tasks,
                "completed_tasks": model.completed_tasks,
                "completion_percentage": model.completion_percentage,
                "current_streak": model.current_streak,
                "adaptation_count": model.adaptation_count,
                "last_adapted_at": model.last_adapted_at,
                "current_mode": model.current_mode,
                "use_legacy_task_model": model.use_legacy_task_model,
                "created_at": model.created_at,
            }
        )


study_plans = StudyPlanRepository()

__all__ = ["StudyPlanRepository", "study_plans"]
