"""Policy thresholds for mode selection, capacity, and behavior learning.

Every number the decision procedures compare against lives here so the
policy can be audited and tested without reading the control flow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple


@dataclass(frozen=True)
class ModeThresholds:
    emergency_days_critical: int = 7
    emergency_completion_critical: int = 60
    emergency_days_window: int = 14
    emergency_completion_window: int = 40
    emergency_backlog: int = 20
    adaptive_exam_days: int = 30
    adaptive_backlog: int = 10
    adaptive_backlog_completion: int = 70
    adaptive_consistency: int = 60
    adaptive_recent_completion: int = 50
    balanced_strong_streak: int = 7
    upcoming_window_days: int = 7
    stats_window_days: int = 7


@dataclass(frozen=True)
class ConfidenceWeights:
    base: int = 50
    emergency_imminent_exam: int = 40
    emergency_low_completion: int = 10
    emergency_low_completion_threshold: int = 50
    adaptive_exam_mode: int = 30
    adaptive_backlog: int = 10
    adaptive_reliable_data: int = 10
    balanced_high_completion: int = 20
    balanced_high_completion_threshold: int = 70
    balanced_low_backlog: int = 15
    balanced_low_backlog_threshold: int = 5
    balanced_streak: int = 15


@dataclass(frozen=True)
class CapacityLimits:
    max_tasks_per_day: int = 4
    emergency_max_tasks_per_day: int = 8
    max_hard_tasks_per_day: int = 2
    max_daily_minutes: int = 480
    emergency_intensity_multiplier: float = 2.0
    emergency_duration_factor: float = 0.8
    min_task_minutes: int = 15
    max_task_minutes: int = 480
    slot_granularity_minutes: int = 30
    slot_windows: Tuple[Tuple[str, int, int], ...] = (
        ("morning", 8, 12),
        ("afternoon", 13, 17),
        ("evening", 18, 22),
    )
    exam_proximity_window_days: int = 30


@dataclass(frozen=True)
class BehaviorDefaults:
    min_samples: int = 20
    min_topic_samples: int = 5
    min_topic_samples_for_estimate: int = 3
    reliable_quality_score: int = 60
    reliable_assessment_score: int = 75
    consistent_score: int = 70
    consistent_samples: int = 30
    default_peak_hours: Tuple[int, ...] = (9, 10, 11)
    default_slot_rates: Dict[str, float] = field(
        default_factory=lambda: {"morning": 0.7, "afternoon": 0.65, "evening": 0.6, "night": 0.5}
    )
    empty_slot_rate: float = 0.5
    default_session_minutes: int = 45
    session_minutes_floor: int = 15
    session_minutes_ceiling: int = 180
    recent_session_limit: int = 100
    consistency_window_days: int = 30
    consistency_min_days: int = 7
    consistency_study_weight: int = 70
    consistency_streak_cap: int = 30
    consistency_streak_multiplier: int = 2
    quality_task_weight: int = 40
    quality_task_target: int = 20
    quality_completed_weight: int = 30
    quality_completed_target: int = 10
    quality_focus_weight: int = 30
    quality_focus_target: int = 10
    historical_blend: float = 0.7
    efficiency_floor: float = 0.5
    efficiency_ceiling: float = 1.5
    default_tasks_per_day: int = 4
    max_tasks_per_day: int = 10


MODE_THRESHOLDS = ModeThresholds()
CONFIDENCE_WEIGHTS = ConfidenceWeights()
CAPACITY_LIMITS = CapacityLimits()
BEHAVIOR_DEFAULTS = BehaviorDefaults()

# Ordered by tie-break preference when completion rates are equal.
TIME_SLOT_ORDER: Tuple[str, ...] = ("morning", "afternoon", "evening", "night")

PRIORITY_BASE = {"low": 25, "medium": 50, "high": 75, "urgent": 100}
DIFFICULTY_BONUS = {"easy": 0, "medium": 10, "hard": 20}
DIFFICULTY_EFFORT = {"easy": 3, "medium": 6, "hard": 9}

__all__ = [
    "BEHAVIOR_DEFAULTS",
    "BehaviorDefaults",
    "CAPACITY_LIMITS",
    "CONFIDENCE_WEIGHTS",
    "CapacityLimits",
    "ConfidenceWeights",
    "DIFFICULTY_BONUS",
    "DIFFICULTY_EFFORT",
    "MODE_THRESHOLDS",
    "ModeThresholds",
    "PRIORITY_BASE",
    "TIME_SLOT_ORDER",
]
