"""Batch analysis that rewrites each user's behavior profile from study history."""

from __future__ import annotations

import logging
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from .behavior_profile import (
    AnalysisResult,
    BatchAnalysisSummary,
    BehaviorProfile,
    DataQualityAssessment,
    OptimalSlot,
    TimeSlot,
    TopicDurationStat,
    classify_hour,
    normalize_topic,
    round_half_up,
)
from .clock import Clock, as_utc, utcnow
from .config import get_settings
from .constants import BEHAVIOR_DEFAULTS, TIME_SLOT_ORDER
from .db.session import SessionScope, session_scope
from .repositories.behavior_profiles import BehaviorProfileRepository, behavior_profiles
from .repositories.schedule_items import ScheduleItemRepository, schedule_items
from .repositories.study_activity import StudyActivityRepository, study_activity
from .repositories.study_plans import StudyPlanRepository, study_plans
from .telemetry import emit_event

logger = logging.getLogger(__name__)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class BehaviorLearningService:
    """Derives learned scheduling parameters from completed work.

    Every run recomputes each field from scratch and overwrites the stored
    profile, so re-running an analysis converges instead of drifting.
    """

    def __init__(
        self,
        *,
        profiles: BehaviorProfileRepository = behavior_profiles,
        items: ScheduleItemRepository = schedule_items,
        activity: StudyActivityRepository = study_activity,
        plans: StudyPlanRepository = study_plans,
        session_factory: SessionScope = session_scope,
        now: Clock = utcnow,
        batch_size: Optional[int] = None,
    ) -> None:
        self._profiles = profiles
        self._items = items
        self._activity = activity
        self._plans = plans
        self._session_scope = session_factory
        self._now = now
        self._batch_size = batch_size

    def analyze_user_behavior(self, user_id: str) -> AnalysisResult:
        start = time.perf_counter()
        logger.info("Starting behavior analysis for %s", user_id)
        try:
            with self._session_scope() as session:
                previous = self._profiles.get_or_create(session, user_id)
                now = self._now()
                peak_hours = self._analyze_peak_hours(session, user_id)
                completion_rates = self._analyze_completion_rates(session, user_id)
                session_minutes = self._analyze_session_minutes(session, user_id)
                topic_durations = self._analyze_topic_durations(session, user_id)
                consistency = self._calculate_consistency(session, user_id)
                tasks_per_day = self._calculate_tasks_per_day(session, user_id)
                quality = self._assess_data_quality(session, user_id)

                updated = BehaviorProfile(
                    user_id=previous.user_id,
                    productivity_peak_hours=peak_hours,
                    completion_rate_by_time_slot=completion_rates,
                    avg_study_session_minutes=session_minutes,
                    optimal_tasks_per_day=tasks_per_day,
                    consistency_score=consistency,
                    topic_duration_map=topic_durations,
                    data_quality_score=quality.score,
                    sample_size=quality.total_tasks,
                    last_analyzed_at=now,
                )
                stored = self._profiles.overwrite(session, updated)
        except Exception as exc:  # noqa: BLE001
            duration_ms = (time.perf_counter() - start) * 1000.0
            emit_event(
                "behavior_analysis",
                user_id=user_id,
                status="error",
                duration_ms=round(duration_ms, 2),
                error=str(exc),
                exception_type=exc.__class__.__name__,
            )
            logger.exception("Behavior analysis failed for %s", user_id)
            raise

        duration_ms = (time.perf_counter() - start) * 1000.0
        became_reliable = stored.is_reliable() and not previous.is_reliable()
        logger.info(
            "Behavior analysis for %s complete in %.1fms: quality=%d consistency=%d",
            user_id,
            duration_ms,
            quality.score,
            consistency,
        )
        emit_event(
            "behavior_analysis",
            user_id=user_id,
            status="success",
            duration_ms=round(duration_ms, 2),
            data_quality_score=quality.score,
            sample_size=stored.sample_size,
            consistency_score=consistency,
            topic_count=len(topic_durations),
        )
        if became_reliable:
            emit_event(
                "behavior_profile_reliable",
                user_id=user_id,
                data_quality_score=stored.data_quality_score,
                sample_size=stored.sample_size,
                optimal_slot=stored.get_optimal_slot(),
            )

        return AnalysisResult(
            user_id=user_id,
            peak_hours=peak_hours,
            completion_rates=completion_rates,
            avg_session_minutes=session_minutes,
            topic_count=len(topic_durations),
            consistency_score=consistency,
            optimal_tasks_per_day=tasks_per_day,
            data_quality=quality,
            became_reliable=became_reliable,
            execution_time_ms=round(duration_ms, 2),
        )

    def get_profile(self, user_id: str) -> BehaviorProfile:
        with self._session_scope() as session:
            return self._profiles.get_or_create(session, user_id)

    def estimate_task_duration(self, user_id: str, topic: Optional[str], estimated_minutes: int) -> int:
        return self._load_profile(user_id).estimate_task_duration(topic, estimated_minutes)

    def get_optimal_slot(self, user_id: str) -> OptimalSlot:
        profile = self._load_profile(user_id)
        if not profile.is_reliable():
            return OptimalSlot()
        slot = profile.get_optimal_slot()
        return OptimalSlot(time_slot=slot, confidence=profile.completion_rate_by_time_slot.get(slot, 0.0))

    def calculate_efficiency_factor(self, user_id: str, topic: Optional[str]) -> float:
        return self._load_profile(user_id).calculate_efficiency_factor(topic)

    def batch_analyze(self, user_ids: Optional[Iterable[str]] = None) -> BatchAnalysisSummary:
        """Analyze users in fixed-size concurrent groups; one failure never stops the run."""
        start = time.perf_counter()
        if user_ids is not None:
            targets = list(dict.fromkeys(user_ids))
            if not targets:
                return BatchAnalysisSummary()
        else:
            with self._session_scope(commit=False) as session:
                targets = self._plans.list_user_ids(session)

        batch_size = self._batch_size or get_settings().behavior_batch_size
        summary = BatchAnalysisSummary(total=len(targets))
        logger.info("Starting batch behavior analysis for %d users", len(targets))

        with ThreadPoolExecutor(max_workers=batch_size, thread_name_prefix="behavior") as executor:
            for offset in range(0, len(targets), batch_size):
                batch = targets[offset : offset + batch_size]
                futures = {executor.submit(self.analyze_user_behavior, user_id): user_id for user_id in batch}
                for future in as_completed(futures):
                    user_id = futures[future]
                    try:
                        result = future.result()
                    except Exception as exc:  # noqa: BLE001
                        summary.errors += 1
                        logger.warning("Batch analysis failed for %s: %s", user_id, exc)
                        continue
                    summary.analyzed += 1
                    if result.data_quality.is_reliable:
                        summary.reliable += 1

        duration_ms = (time.perf_counter() - start) * 1000.0
        logger.info(
            "Batch analysis complete in %.1fms: %d/%d analyzed, %d reliable, %d errors",
            duration_ms,
            summary.analyzed,
            summary.total,
            summary.reliable,
            summary.errors,
        )
        emit_event("behavior_batch_analysis", duration_ms=round(duration_ms, 2), **summary.model_dump())
        return summary

    def analyze_stale_profiles(self, hours: int = 24) -> BatchAnalysisSummary:
        with self._session_scope(commit=False) as session:
            stale = self._profiles.list_stale_user_ids(session, self._now(), hours=hours)
        if not stale:
            return BatchAnalysisSummary()
        return self.batch_analyze(stale)

    def _load_profile(self, user_id: str) -> BehaviorProfile:
        with self._session_scope(commit=False) as session:
            profile = self._profiles.get(session, user_id)
        return profile or BehaviorProfile(user_id=user_id)

    def _analyze_peak_hours(self, session: Session, user_id: str) -> List[int]:
        completed = self._items.list_completed_tasks(session, user_id)
        if len(completed) < BEHAVIOR_DEFAULTS.min_samples:
            return list(BEHAVIOR_DEFAULTS.default_peak_hours)
        counts = Counter(as_utc(task.completed_at).hour for task in completed if task.completed_at)
        ranked = sorted(counts.items(), key=lambda entry: (-entry[1], entry[0]))[:3]
        return sorted(hour for hour, _ in ranked)

    def _analyze_completion_rates(self, session: Session, user_id: str) -> Dict[TimeSlot, float]:
        tasks = self._items.list_slotted_tasks(session, user_id)
        if len(tasks) < BEHAVIOR_DEFAULTS.min_samples:
            return dict(BEHAVIOR_DEFAULTS.default_slot_rates)  # type: ignore[arg-type]
        totals: Counter[str] = Counter()
        completed: Counter[str] = Counter()
        for task in tasks:
            slot = classify_hour(task.time_slot_start.hour)  # type: ignore[union-attr]
            totals[slot] += 1
            if task.status == "completed":
                completed[slot] += 1
        rates: Dict[TimeSlot, float] = {}
        for slot in TIME_SLOT_ORDER:
            total = totals[slot]
            rates[slot] = completed[slot] / total if total else BEHAVIOR_DEFAULTS.empty_slot_rate  # type: ignore[index]
        return rates

    def _analyze_session_minutes(self, session: Session, user_id: str) -> int:
        durations = self._activity.list_recent_focus_durations(
            session, user_id, BEHAVIOR_DEFAULTS.recent_session_limit
        )
        if not durations:
            return BEHAVIOR_DEFAULTS.default_session_minutes
        average = round_half_up(sum(durations) / len(durations))
        return _clamp(average, BEHAVIOR_DEFAULTS.session_minutes_floor, BEHAVIOR_DEFAULTS.session_minutes_ceiling)

    def _analyze_topic_durations(self, session: Session, user_id: str) -> Dict[str, TopicDurationStat]:
        totals: Dict[str, int] = {}
        counts: Counter[str] = Counter()
        for task in self._items.list_completed_tasks(session, user_id):
            topic = normalize_topic(task.topic)
            if not topic:
                continue
            totals[topic] = totals.get(topic, 0) + task.duration
            counts[topic] += 1
        return {
            topic: TopicDurationStat(
                average_minutes=round_half_up(totals[topic] / count),
                sample_count=count,
            )
            for topic, count in counts.items()
            if count >= BEHAVIOR_DEFAULTS.min_topic_samples
        }

    def _calculate_consistency(self, session: Session, user_id: str) -> int:
        today = self._now().date()
        since = today - timedelta(days=BEHAVIOR_DEFAULTS.consistency_window_days)
        stats = self._activity.list_daily_stats(session, user_id, since)
        if len(stats) < BEHAVIOR_DEFAULTS.consistency_min_days:
            return 0
        studied = sum(1 for day in stats if day.total_study_minutes > 0)
        score = studied / len(stats) * BEHAVIOR_DEFAULTS.consistency_study_weight
        streak = self._activity.current_streak(session, user_id, today)
        score += min(
            BEHAVIOR_DEFAULTS.consistency_streak_cap,
            streak * BEHAVIOR_DEFAULTS.consistency_streak_multiplier,
        )
        return _clamp(round_half_up(score), 0, 100)

    def _calculate_tasks_per_day(self, session: Session, user_id: str) -> int:
        today = self._now().date()
        since = today - timedelta(days=BEHAVIOR_DEFAULTS.consistency_window_days)
        studied = [
            day for day in self._activity.list_daily_stats(session, user_id, since) if day.total_study_minutes > 0
        ]
        if not studied:
            return BEHAVIOR_DEFAULTS.default_tasks_per_day
        average = round_half_up(sum(day.tasks_completed for day in studied) / len(studied))
        return _clamp(average, 1, BEHAVIOR_DEFAULTS.max_tasks_per_day)

    def _assess_data_quality(self, session: Session, user_id: str) -> DataQualityAssessment:
        total_tasks = self._items.count_tasks(session, user_id)
        completed_tasks = self._items.count_tasks(session, user_id, status="completed")
        focus_sessions = self._activity.count_focus_sessions(session, user_id)

        score = (
            BEHAVIOR_DEFAULTS.quality_task_weight * min(1.0, total_tasks / BEHAVIOR_DEFAULTS.quality_task_target)
            + BEHAVIOR_DEFAULTS.quality_completed_weight
            * min(1.0, completed_tasks / BEHAVIOR_DEFAULTS.quality_completed_target)
            + BEHAVIOR_DEFAULTS.quality_focus_weight
            * min(1.0, focus_sessions / BEHAVIOR_DEFAULTS.quality_focus_target)
        )
        return DataQualityAssessment(
            score=_clamp(round_half_up(score), 0, 100),
            total_tasks=total_tasks,
            completed_tasks=completed_tasks,
            focus_sessions=focus_sessions,
        )


behavior_learning = BehaviorLearningService()

__all__ = ["BehaviorLearningService", "behavior_learning"]
