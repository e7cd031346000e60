"""Scheduling mode recommendation from plan metrics and learned behavior."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import BaseModel, Field

from .behavior_profile import round_half_up
from .clock import Clock, utcnow
from .constants import CONFIDENCE_WEIGHTS, MODE_THRESHOLDS
from .db.session import SessionScope, session_scope
from .errors import PlanNotFoundError, SchedulingValidationError
from .repositories.behavior_profiles import BehaviorProfileRepository, behavior_profiles
from .repositories.schedule_items import ScheduleItemRepository, schedule_items
from .repositories.study_activity import StudyActivityRepository, study_activity
from .repositories.study_plans import StudyPlanRepository, study_plans
from .study_plan import SchedulingMode, StudyPlan
from .telemetry import emit_event

logger = logging.getLogger(__name__)


class ModeMetrics(BaseModel):
    plan_id: str
    user_id: str
    total_tasks: int = 0
    completed_tasks: int = 0
    completion_rate: int = 0
    backlog: int = 0
    upcoming_tasks: int = 0
    exam_date: Optional[datetime] = None
    days_to_exam: Optional[int] = None
    exam_mode: bool = False
    consistency_score: int = 0
    has_reliable_data: bool = False
    avg_daily_minutes: int = 0
    avg_completion_rate: int = 0
    current_streak: int = 0
    adaptation_count: int = 0


class ModeDecision(BaseModel):
    mode: SchedulingMode
    reasoning: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ModeRecommendation(BaseModel):
    recommended_mode: SchedulingMode
    current_mode: SchedulingMode
    should_switch: bool
    confidence: int = Field(ge=0, le=100)
    reasoning: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    metrics: ModeMetrics
    generated_at: datetime


class PlanModeRecommendation(BaseModel):
    plan_id: str
    plan_title: str
    recommendation: Optional[ModeRecommendation] = None
    error: Optional[str] = None


def decide_mode(metrics: ModeMetrics) -> ModeDecision:
    """Walk the decision tree top to bottom; the first matching rule wins."""
    t = MODE_THRESHOLDS
    days = metrics.days_to_exam
    rate = metrics.completion_rate

    if days is not None:
        if days <= t.emergency_days_critical and rate < t.emergency_completion_critical:
            return ModeDecision(
                mode="emergency",
                reasoning=[
                    f"Exam in {days} days with only {rate}% of tasks completed",
                    "Emergency mode compresses the syllabus and uses longer study blocks",
                ],
                warnings=["Intensive schedule ahead: expect up to 8 tasks per day"],
            )
        if days <= t.emergency_days_window and rate < t.emergency_completion_window:
            return ModeDecision(
                mode="emergency",
                reasoning=[
                    f"Exam in {days} days with only {rate}% of tasks completed",
                    "Emergency mode is needed to cover the remaining material in time",
                ],
                warnings=["High-intensity schedule required to cover remaining material"],
            )
        if days <= t.emergency_days_window and metrics.backlog > t.emergency_backlog:
            return ModeDecision(
                mode="emergency",
                reasoning=[
                    f"{metrics.backlog} overdue tasks with the exam in {days} days",
                    "Emergency redistribution required",
                ],
                warnings=["Significant backlog: some low-priority topics may be skipped"],
            )

    if metrics.exam_mode and days is not None and days <= t.adaptive_exam_days:
        reasoning = [
            f"Exam in {days} days: adaptive mode applies exam-driven prioritisation",
            f"Current completion: {rate}%",
        ]
        if metrics.backlog > t.adaptive_backlog:
            reasoning.append(f"{metrics.backlog} overdue tasks will be redistributed")
        return ModeDecision(mode="adaptive", reasoning=reasoning)

    if metrics.backlog > t.adaptive_backlog and rate < t.adaptive_backlog_completion:
        return ModeDecision(
            mode="adaptive",
            reasoning=[
                f"High backlog ({metrics.backlog} tasks) with a completion rate of {rate}%",
                "Adaptive mode applies priority scoring and daily load caps",
            ],
            warnings=["Focus on catching up with overdue tasks"],
        )

    if metrics.has_reliable_data and metrics.consistency_score < t.adaptive_consistency:
        return ModeDecision(
            mode="adaptive",
            reasoning=[
                f"Low consistency score ({metrics.consistency_score}/100)",
                "Adaptive mode uses learned behavior to shape the schedule",
            ],
        )

    if 0 < metrics.avg_completion_rate < t.adaptive_recent_completion:
        return ModeDecision(
            mode="adaptive",
            reasoning=[
                f"Recent daily completion rate ({metrics.avg_completion_rate}%) indicates scheduling issues",
                "Adaptive mode will rebalance task distribution",
            ],
        )

    reasoning = [
        "Plan metrics indicate standard scheduling is appropriate",
        f"Completion rate: {rate}%, backlog: {metrics.backlog} tasks",
    ]
    if metrics.current_streak > t.balanced_strong_streak:
        reasoning.append(f"Strong consistency ({metrics.current_streak}-day streak): keep the current pace")
    return ModeDecision(mode="balanced", reasoning=reasoning)


def score_confidence(metrics: ModeMetrics, mode: SchedulingMode) -> int:
    w = CONFIDENCE_WEIGHTS
    days = metrics.days_to_exam
    confidence = w.base

    if mode == "emergency":
        if days is not None and days <= MODE_THRESHOLDS.emergency_days_critical:
            confidence += w.emergency_imminent_exam
        if metrics.completion_rate < w.emergency_low_completion_threshold:
            confidence += w.emergency_low_completion
    elif mode == "adaptive":
        if metrics.exam_mode and days is not None and days <= MODE_THRESHOLDS.adaptive_exam_days:
            confidence += w.adaptive_exam_mode
        if metrics.backlog > MODE_THRESHOLDS.adaptive_backlog:
            confidence += w.adaptive_backlog
        if metrics.has_reliable_data:
            confidence += w.adaptive_reliable_data
    elif mode == "balanced":
        if metrics.completion_rate > w.balanced_high_completion_threshold:
            confidence += w.balanced_high_completion
        if metrics.backlog < w.balanced_low_backlog_threshold:
            confidence += w.balanced_low_backlog
        if metrics.current_streak > MODE_THRESHOLDS.balanced_strong_streak:
            confidence += w.balanced_streak
    else:  # pragma: no cover - exhaustive over SchedulingMode
        raise TypeError(f"Unknown scheduling mode: {mode}")

    return max(0, min(100, confidence))


def infer_current_mode(plan: StudyPlan, backlog: int, now: datetime) -> SchedulingMode:
    if plan.current_mode:
        return plan.current_mode
    if plan.exam_mode and plan.exam_date is not None:
        days = plan.days_to_exam(now)
        if (
            days is not None
            and days <= MODE_THRESHOLDS.emergency_days_critical
            and plan.completion_percentage < MODE_THRESHOLDS.emergency_completion_critical
        ):
            return "emergency"
        return "adaptive"
    if backlog > MODE_THRESHOLDS.adaptive_backlog:
        return "adaptive"
    return "balanced"


class ModeResolver:
    """Recommends balanced, adaptive, or emergency scheduling for a plan.

    Nothing is persisted: each call recomputes metrics from stored state and
    hands them to the pure ``decide_mode`` / ``score_confidence`` pair.
    """

    def __init__(
        self,
        *,
        plans: StudyPlanRepository = study_plans,
        items: ScheduleItemRepository = schedule_items,
        profiles: BehaviorProfileRepository = behavior_profiles,
        activity: StudyActivityRepository = study_activity,
        session_factory: SessionScope = session_scope,
        now: Clock = utcnow,
    ) -> None:
        self._plans = plans
        self._items = items
        self._profiles = profiles
        self._activity = activity
        self._session_scope = session_factory
        self._now = now

    def recommend_mode(self, user_id: str, plan_id: str) -> ModeRecommendation:
        if not user_id:
            raise SchedulingValidationError("A user id is required.")
        now = self._now()
        with self._session_scope(commit=False) as session:
            plan = self._plans.require(session, plan_id)
            if plan.user_id != user_id:
                raise PlanNotFoundError(plan_id)
            metrics = self._collect_metrics(session, user_id, plan, now)
        return self.recommend_from_metrics(plan, metrics, now)

    def recommend_from_metrics(self, plan: StudyPlan, metrics: ModeMetrics, now: datetime) -> ModeRecommendation:
        decision = decide_mode(metrics)
        confidence = score_confidence(metrics, decision.mode)
        current = infer_current_mode(plan, metrics.backlog, now)
        recommendation = ModeRecommendation(
            recommended_mode=decision.mode,
            current_mode=current,
            should_switch=decision.mode != current,
            confidence=confidence,
            reasoning=decision.reasoning,
            warnings=decision.warnings,
            metrics=metrics,
            generated_at=now,
        )
        emit_event(
            "mode_recommendation",
            user_id=metrics.user_id,
            plan_id=plan.id,
            recommended_mode=decision.mode,
            current_mode=current,
            confidence=confidence,
        )
        return recommendation

    def recommend_for_all_plans(self, user_id: str) -> List[PlanModeRecommendation]:
        with self._session_scope(commit=False) as session:
            plans = self._plans.list_active_for_user(session, user_id)

        results: List[PlanModeRecommendation] = []
        for plan in plans:
            try:
                recommendation = self.recommend_mode(user_id, plan.id)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Mode recommendation failed for plan %s: %s", plan.id, exc)
                results.append(PlanModeRecommendation(plan_id=plan.id, plan_title=plan.title, error=str(exc)))
                continue
            results.append(
                PlanModeRecommendation(plan_id=plan.id, plan_title=plan.title, recommendation=recommendation)
            )
        return results

    def _collect_metrics(self, session, user_id: str, plan: StudyPlan, now: datetime) -> ModeMetrics:
        profile = self._profiles.get(session, user_id)
        window_start = (now - timedelta(days=MODE_THRESHOLDS.stats_window_days)).date()
        recent = self._activity.list_daily_stats(session, user_id, window_start)

        avg_daily_minutes = 0.0
        avg_completion_rate = 0.0
        if recent:
            avg_daily_minutes = sum(day.total_study_minutes for day in recent) / len(recent)
            avg_completion_rate = sum(day.completion_rate() for day in recent) / len(recent)

        return ModeMetrics(
            plan_id=plan.id,
            user_id=user_id,
            total_tasks=plan.total_tasks,
            completed_tasks=plan.completed_tasks,
            completion_rate=round_half_up(plan.completion_rate()),
            backlog=self._items.count_backlog(session, plan.id, now),
            upcoming_tasks=self._items.count_upcoming(
                session, plan.id, now, MODE_THRESHOLDS.upcoming_window_days
            ),
            exam_date=plan.exam_date,
            days_to_exam=plan.days_to_exam(now),
            exam_mode=plan.exam_mode,
            consistency_score=profile.consistency_score if profile else 0,
            has_reliable_data=profile.is_reliable() if profile else False,
            avg_daily_minutes=round_half_up(avg_daily_minutes),
            avg_completion_rate=round_half_up(avg_completion_rate),
            current_streak=plan.current_streak,
            adaptation_count=plan.adaptation_count,
        )


mode_resolver = ModeResolver()

__all__ = [
    "ModeDecision",
    "ModeMetrics",
    "ModeRecommendation",
    "ModeResolver",
    "PlanModeRecommendation",
    "decide_mode",
    "infer_current_mode",
    "mode_resolver",
    "score_confidence",
]
