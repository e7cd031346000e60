"""Learned per-user scheduling parameters and the pure operations derived from them."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .clock import as_utc
from .constants import BEHAVIOR_DEFAULTS, TIME_SLOT_ORDER

TimeSlot = Literal["morning", "afternoon", "evening", "night"]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_topic(topic: Optional[str]) -> str:
    return (topic or "").strip().lower()


def classify_hour(hour: int) -> TimeSlot:
    if 8 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "night"


class TopicDurationStat(BaseModel):
    average_minutes: float = Field(gt=0)
    sample_count: int = Field(ge=BEHAVIOR_DEFAULTS.min_topic_samples)


class BehaviorProfile(BaseModel):
    """Learned scheduling preferences for one user.

    Profiles are created lazily with defaults and overwritten wholesale by
    each analysis run, so every field here is a snapshot rather than a
    running aggregate.
    """

    user_id: str
    productivity_peak_hours: List[int] = Field(
        default_factory=lambda: list(BEHAVIOR_DEFAULTS.default_peak_hours)
    )
    completion_rate_by_time_slot: Dict[TimeSlot, float] = Field(
        default_factory=lambda: dict(BEHAVIOR_DEFAULTS.default_slot_rates)
    )
    avg_study_session_minutes: int = Field(
        default=BEHAVIOR_DEFAULTS.default_session_minutes,
        ge=BEHAVIOR_DEFAULTS.session_minutes_floor,
        le=BEHAVIOR_DEFAULTS.session_minutes_ceiling,
    )
    optimal_tasks_per_day: int = Field(default=BEHAVIOR_DEFAULTS.default_tasks_per_day, ge=1)
    consistency_score: int = Field(default=0, ge=0, le=100)
    topic_duration_map: Dict[str, TopicDurationStat] = Field(default_factory=dict)
    data_quality_score: int = Field(default=0, ge=0, le=100)
    sample_size: int = Field(default=0, ge=0)
    last_analyzed_at: Optional[datetime] = None

    @field_validator("productivity_peak_hours")
    @classmethod
    def _validate_hours(cls, value: List[int]) -> List[int]:
        for hour in value:
            if not 0 <= hour <= 23:
                raise ValueError(f"Peak hour out of range: {hour}")
        return value

    @field_validator("completion_rate_by_time_slot")
    @classmethod
    def _validate_rates(cls, value: Dict[str, float]) -> Dict[str, float]:
        for slot, rate in value.items():
            if not 0.0 <= rate <= 1.0:
                raise ValueError(f"Completion rate for {slot} must be within [0, 1].")
        return value

    @field_validator("topic_duration_map")
    @classmethod
    def _normalize_topics(cls, value: Dict[str, TopicDurationStat]) -> Dict[str, TopicDurationStat]:
        return {normalize_topic(topic): stat for topic, stat in value.items() if normalize_topic(topic)}

    @field_validator("last_analyzed_at")
    @classmethod
    def _tag_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    def is_reliable(self) -> bool:
        return (
            self.sample_size >= BEHAVIOR_DEFAULTS.min_samples
            and self.data_quality_score > BEHAVIOR_DEFAULTS.reliable_quality_score
        )

    def is_consistent(self) -> bool:
        return (
            self.consistency_score >= BEHAVIOR_DEFAULTS.consistent_score
            and self.sample_size >= BEHAVIOR_DEFAULTS.consistent_samples
        )

    def get_optimal_slot(self) -> TimeSlot:
        """Slot with the highest completion rate; earlier slots win ties."""
        best: TimeSlot = "morning"
        best_rate = -1.0
        for slot in TIME_SLOT_ORDER:
            rate = self.completion_rate_by_time_slot.get(slot)  # type: ignore[call-overload]
            if rate is not None and rate > best_rate:
                best, best_rate = slot, rate  # type: ignore[assignment]
        return best

    def get_topic_duration(self, topic: Optional[str]) -> Optional[TopicDurationStat]:
        return self.topic_duration_map.get(normalize_topic(topic))

    def estimate_task_duration(self, topic: Optional[str], estimate: int) -> int:
        if not self.is_reliable():
            return estimate
        stat = self.get_topic_duration(topic)
        if stat is not None and stat.sample_count >= BEHAVIOR_DEFAULTS.min_topic_samples_for_estimate:
            blend = BEHAVIOR_DEFAULTS.historical_blend
            return round_half_up(stat.average_minutes * blend + estimate * (1 - blend))
        return self.avg_study_session_minutes

    def calculate_efficiency_factor(self, topic: Optional[str]) -> float:
        if not self.is_reliable():
            return 1.0
        stat = self.get_topic_duration(topic)
        if stat is None:
            return 1.0
        factor = self.avg_study_session_minutes / stat.average_minutes
        return max(BEHAVIOR_DEFAULTS.efficiency_floor, min(BEHAVIOR_DEFAULTS.efficiency_ceiling, factor))


class OptimalSlot(BaseModel):
    time_slot: TimeSlot = "morning"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class DataQualityAssessment(BaseModel):
    score: int = Field(ge=0, le=100)
    total_tasks: int = 0
    completed_tasks: int = 0
    focus_sessions: int = 0

    @property
    def is_reliable(self) -> bool:
        return self.score >= BEHAVIOR_DEFAULTS.reliable_assessment_score


class AnalysisResult(BaseModel):
    user_id: str
    peak_hours: List[int]
    completion_rates: Dict[TimeSlot, float]
    avg_session_minutes: int
    topic_count: int
    consistency_score: int
    optimal_tasks_per_day: int
    data_quality: DataQualityAssessment
    became_reliable: bool = False
    execution_time_ms: float = 0.0


class BatchAnalysisSummary(BaseModel):
    total: int = 0
    analyzed: int = 0
    reliable: int = 0
    errors: int = 0


__all__ = [
    "AnalysisResult",
    "BatchAnalysisSummary",
    "BehaviorProfile",
    "DataQualityAssessment",
    "OptimalSlot",
    "TimeSlot",
    "TopicDurationStat",
    "classify_hour",
    "normalize_topic",
    "round_half_up",
]
