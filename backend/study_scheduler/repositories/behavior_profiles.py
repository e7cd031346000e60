"""Database-backed behavior profile store."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..behavior_profile import BehaviorProfile
from ..db.models import BehaviorProfileModel
from ..errors import SchedulingValidationError


def _normalize_user_id(user_id: str) -> str:
    normalized = (user_id or "").strip()
    if not normalized:
        raise SchedulingValidationError("A user id is required.")
    return normalized


class BehaviorProfileRepository:
    """One profile per user, created lazily and overwritten wholesale."""

    def get(self, session: Session, user_id: str) -> BehaviorProfile | None:
        model = self._get_model(session, _normalize_user_id(user_id))
        if model is None:
            return None
        return self._to_domain(model)

    def get_or_create(self, session: Session, user_id: str) -> BehaviorProfile:
        normalized = _normalize_user_id(user_id)
        model = self._get_model(session, normalized)
        if model is not None:
            return self._to_domain(model)

        defaults = BehaviorProfile(user_id=normalized)
        model = BehaviorProfileModel(user_id=normalized)
        self._apply_profile(model, defaults)
        try:
            with session.begin_nested():
                session.add(model)
        except IntegrityError:
            # A concurrent analysis created the row first.
            model = self._get_model(session, normalized)
            if model is None:
                raise
        return self._to_domain(model)

    def overwrite(self, session: Session, profile: BehaviorProfile) -> BehaviorProfile:
        normalized = _normalize_user_id(profile.user_id)
        model = self._get_model(session, normalized)
        if model is None:
            model = BehaviorProfileModel(user_id=normalized)
            session.add(model)
        self._apply_profile(model, profile)
        session.flush()
        return self._to_domain(model)

    def list_stale_user_ids(self, session: Session, now: datetime, hours: int = 24) -> List[str]:
        """Users whose profile was never analyzed or is older than ``hours``."""
        threshold = now - timedelta(hours=hours)
        stmt = (
            select(BehaviorProfileModel.user_id)
            .where(
                or_(
                    BehaviorProfileModel.last_analyzed_at.is_(None),
                    BehaviorProfileModel.last_analyzed_at < threshold,
                )
            )
            .order_by(BehaviorProfileModel.user_id.asc())
        )
        return list(session.execute(stmt).scalars().all())

    def _get_model(self, session: Session, user_id: str) -> BehaviorProfileModel | None:
        stmt = select(BehaviorProfileModel).where(BehaviorProfileModel.user_id == user_id)
        return session.execute(stmt).scalar_one_or_none()

    def _apply_profile(self, model: BehaviorProfileModel, profile: BehaviorProfile) -> None:
        model.productivity_peak_hours = list(profile.productivity_peak_hours)
        model.completion_rate_by_time_slot = dict(profile.completion_rate_by_time_slot)
        model.avg_study_session_minutes = profile.avg_study_session_minutes
        model.optimal_tasks_per_day = profile.optimal_tasks_per_day
        model.consistency_score = profile.consistency_score
        model.topic_duration_map = {
            topic: stat.model_dump(mode="json") for topic, stat in profile.topic_duration_map.items()
        }
        model.data_quality_score = profile.data_quality_score
        model.sample_size = profile.sample_size
        model.last_analyzed_at = profile.last_analyzed_at

    def _to_domain(self, model: BehaviorProfileModel) -> BehaviorProfile:
        return BehaviorProfile.model_validate(
            {
                "user_id": model.user_id,
                "productivity_peak_hours": model.productivity_peak_hours or [],
                "completion_rate_by_time_slot": model.completion_rate_by_time_slot or {},
                "avg_study_session_minutes": model.avg_study_session_minutes,
                "optimal_tasks_per_day": model.optimal_tasks_per_day,
                "consistency_score": model.consistency_score,
                "topic_duration_map": model.topic_duration_map or {},
                "data_quality_score": model.data_quality_score,
                "sample_size": model.sample_size,
                "last_analyzed_at": model.last_analyzed_at,
            }
        )


behavior_profiles = BehaviorProfileRepository()

__all__ = ["BehaviorProfileRepository", "behavior_profiles"]
