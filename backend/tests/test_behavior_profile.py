from __future__ import annotations

import pytest
from pydantic import ValidationError

from study_scheduler.behavior_profile import (
    BehaviorProfile,
    TopicDurationStat,
    classify_hour,
    round_half_up,
)


def _reliable(**overrides) -> BehaviorProfile:
    payload = {
        "user_id": "user-1",
        "sample_size": 25,
        "data_quality_score": 80,
        "avg_study_session_minutes": 45,
        "topic_duration_map": {
            "calculus": {"average_minutes": 90, "sample_count": 6},
            "statistics": {"average_minutes": 20, "sample_count": 5},
        },
    }
    payload.update(overrides)
    return BehaviorProfile(**payload)


def test_round_half_up_matches_school_rounding() -> None:
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(2.49) == 2


@pytest.mark.parametrize(
    ("hour", "slot"),
    [(8, "morning"), (11, "morning"), (12, "afternoon"), (17, "evening"), (21, "evening"), (22, "night"), (3, "night")],
)
def test_classify_hour(hour: int, slot: str) -> None:
    assert classify_hour(hour) == slot


def test_topic_stat_requires_minimum_samples() -> None:
    with pytest.raises(ValidationError):
        TopicDurationStat(average_minutes=30, sample_count=4)


def test_topic_keys_are_normalized() -> None:
    profile = BehaviorProfile(
        user_id="user-1",
        topic_duration_map={"  Calculus ": {"average_minutes": 50, "sample_count": 5}},
    )
    assert list(profile.topic_duration_map) == ["calculus"]
    assert profile.get_topic_duration("CALCULUS") is not None


def test_defaults_are_not_reliable() -> None:
    profile = BehaviorProfile(user_id="user-1")
    assert not profile.is_reliable()
    assert profile.productivity_peak_hours == [9, 10, 11]
    assert profile.avg_study_session_minutes == 45


def test_reliability_thresholds() -> None:
    assert _reliable(sample_size=20, data_quality_score=61).is_reliable()
    assert not _reliable(sample_size=20, data_quality_score=60).is_reliable()
    assert not _reliable(sample_size=19, data_quality_score=90).is_reliable()


def test_consistency_thresholds() -> None:
    assert _reliable(consistency_score=70, sample_size=30).is_consistent()
    assert not _reliable(consistency_score=69, sample_size=30).is_consistent()
    assert not _reliable(consistency_score=90, sample_size=29).is_consistent()


def test_optimal_slot_prefers_earlier_slot_on_ties() -> None:
    profile = _reliable(
        completion_rate_by_time_slot={"morning": 0.6, "afternoon": 0.8, "evening": 0.8, "night": 0.1}
    )
    assert profile.get_optimal_slot() == "afternoon"


def test_estimate_blends_history_when_reliable() -> None:
    profile = _reliable()
    assert profile.estimate_task_duration("Calculus", 60) == 81
    assert profile.estimate_task_duration("unknown", 60) == 45


def test_estimate_returns_input_when_unreliable() -> None:
    profile = _reliable(sample_size=3)
    assert profile.estimate_task_duration("calculus", 60) == 60


def test_efficiency_factor_is_clamped() -> None:
    profile = _reliable()
    assert profile.calculate_efficiency_factor("calculus") == pytest.approx(0.5)
    assert profile.calculate_efficiency_factor("statistics") == pytest.approx(1.5)
    assert profile.calculate_efficiency_factor("geometry") == 1.0
    assert _reliable(data_quality_score=10).calculate_efficiency_factor("calculus") == 1.0


def test_rates_must_be_fractions() -> None:
    with pytest.raises(ValidationError):
        BehaviorProfile(user_id="user-1", completion_rate_by_time_slot={"morning": 1.5})
