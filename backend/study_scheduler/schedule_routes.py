"""REST endpoints wrapping the scheduling services."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Literal, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from .adaptive_rescheduler import (
    AdaptiveRescheduler,
    RedistributionOptions,
    RedistributionResult,
    adaptive_rescheduler,
)
from .behavior_learning import BehaviorLearningService, behavior_learning
from .behavior_profile import AnalysisResult, BatchAnalysisSummary, BehaviorProfile, OptimalSlot
from .config import Settings, get_settings
from .db.session import get_session_dependency
from .errors import NotFoundError, SchedulingValidationError
from .mode_resolver import ModeRecommendation, ModeResolver, PlanModeRecommendation, mode_resolver
from .repositories.study_activity import study_activity
from .schedule_adapter import ScheduleItemAdapter, schedule_adapter
from .schedule_items import EventProjection, ItemStatus, StudyEvent, StudyTask, TaskProjection

router = APIRouter(prefix="/api/planner", tags=["planner"])
logger = logging.getLogger(__name__)


def get_mode_resolver() -> ModeResolver:
    return mode_resolver


def get_behavior_learning() -> BehaviorLearningService:
    return behavior_learning


def get_rescheduler() -> AdaptiveRescheduler:
    return adaptive_rescheduler


def get_schedule_adapter() -> ScheduleItemAdapter:
    return schedule_adapter


class BatchAnalysisRequest(BaseModel):
    user_ids: Optional[List[str]] = None


class DurationEstimate(BaseModel):
    topic: Optional[str] = None
    estimated_minutes: int
    adjusted_minutes: int


class EfficiencyFactor(BaseModel):
    topic: Optional[str] = None
    efficiency_factor: float


class PreferredModelPayload(BaseModel):
    plan_id: str
    model: Literal["task", "event"]


class TaskSyncPayload(BaseModel):
    synced: bool
    task: Optional[StudyTask] = None


class EventSyncPayload(BaseModel):
    synced: int = 0
    events: List[StudyEvent] = Field(default_factory=list)


class SchedulingLogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    plan_id: Optional[str] = None
    action: str
    success: bool
    details: dict
    error_message: Optional[str] = None
    execution_time_ms: Optional[float] = None
    triggered_by: str
    created_at: datetime


@contextmanager
def _domain_errors() -> Iterator[None]:
    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except SchedulingValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get(
    "/users/{user_id}/plans/{plan_id}/mode",
    response_model=ModeRecommendation,
    status_code=status.HTTP_200_OK,
)
def recommend_mode(
    user_id: str,
    plan_id: str,
    resolver: ModeResolver = Depends(get_mode_resolver),
) -> ModeRecommendation:
    with _domain_errors():
        return resolver.recommend_mode(user_id, plan_id)


@router.get("/users/{user_id}/modes", response_model=List[PlanModeRecommendation])
def recommend_for_all_plans(
    user_id: str,
    resolver: ModeResolver = Depends(get_mode_resolver),
) -> List[PlanModeRecommendation]:
    with _domain_errors():
        return resolver.recommend_for_all_plans(user_id)


@router.post("/users/{user_id}/behavior/analyze", response_model=AnalysisResult)
def analyze_user_behavior(
    user_id: str,
    service: BehaviorLearningService = Depends(get_behavior_learning),
) -> AnalysisResult:
    with _domain_errors():
        return service.analyze_user_behavior(user_id)


@router.post("/behavior/batch", response_model=BatchAnalysisSummary)
def batch_analyze(
    payload: BatchAnalysisRequest = Body(default_factory=BatchAnalysisRequest),
    service: BehaviorLearningService = Depends(get_behavior_learning),
) -> BatchAnalysisSummary:
    return service.batch_analyze(payload.user_ids)


@router.get("/users/{user_id}/behavior", response_model=BehaviorProfile)
def get_behavior_profile(
    user_id: str,
    service: BehaviorLearningService = Depends(get_behavior_learning),
) -> BehaviorProfile:
    with _domain_errors():
        return service.get_profile(user_id)


@router.get("/users/{user_id}/behavior/optimal-slot", response_model=OptimalSlot)
def get_optimal_slot(
    user_id: str,
    service: BehaviorLearningService = Depends(get_behavior_learning),
) -> OptimalSlot:
    return service.get_optimal_slot(user_id)


@router.get("/users/{user_id}/behavior/duration-estimate", response_model=DurationEstimate)
def estimate_task_duration(
    user_id: str,
    estimated_minutes: int = Query(..., ge=1, le=480),
    topic: Optional[str] = Query(default=None, max_length=200),
    service: BehaviorLearningService = Depends(get_behavior_learning),
) -> DurationEstimate:
    adjusted = service.estimate_task_duration(user_id, topic, estimated_minutes)
    return DurationEstimate(topic=topic, estimated_minutes=estimated_minutes, adjusted_minutes=adjusted)


@router.get("/users/{user_id}/behavior/efficiency", response_model=EfficiencyFactor)
def calculate_efficiency_factor(
    user_id: str,
    topic: Optional[str] = Query(default=None, max_length=200),
    service: BehaviorLearningService = Depends(get_behavior_learning),
) -> EfficiencyFactor:
    return EfficiencyFactor(topic=topic, efficiency_factor=service.calculate_efficiency_factor(user_id, topic))


@router.post("/users/{user_id}/plans/{plan_id}/redistribute", response_model=RedistributionResult)
def redistribute_missed_tasks(
    user_id: str,
    plan_id: str,
    options: RedistributionOptions = Body(default_factory=RedistributionOptions),
    rescheduler: AdaptiveRescheduler = Depends(get_rescheduler),
) -> RedistributionResult:
    with _domain_errors():
        return rescheduler.redistribute_missed_tasks(user_id, plan_id, options)


@router.post("/users/{user_id}/redistribute", response_model=RedistributionResult)
def redistribute_user_backlog(
    user_id: str,
    options: RedistributionOptions = Body(default_factory=RedistributionOptions),
    rescheduler: AdaptiveRescheduler = Depends(get_rescheduler),
) -> RedistributionResult:
    with _domain_errors():
        return rescheduler.redistribute_user_backlog(user_id, options)


@router.get("/plans/{plan_id}/schedule", response_model=List[EventProjection])
def get_unified_schedule(
    plan_id: str,
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    item_status: Optional[ItemStatus] = Query(default=None, alias="status"),
    adapter: ScheduleItemAdapter = Depends(get_schedule_adapter),
) -> List[EventProjection]:
    with _domain_errors():
        return adapter.get_unified_schedule(
            plan_id,
            start_date=start_date,
            end_date=end_date,
            status=item_status,
        )


@router.get("/plans/{plan_id}/preferred-model", response_model=PreferredModelPayload)
def get_preferred_model(
    plan_id: str,
    adapter: ScheduleItemAdapter = Depends(get_schedule_adapter),
) -> PreferredModelPayload:
    return PreferredModelPayload(plan_id=plan_id, model=adapter.get_preferred_model(plan_id))


@router.get("/tasks/{task_id}/event-projection", response_model=EventProjection)
def task_to_event_projection(
    task_id: str,
    adapter: ScheduleItemAdapter = Depends(get_schedule_adapter),
) -> EventProjection:
    with _domain_errors():
        projection = adapter.task_to_event_projection(adapter.load_task(task_id))
    if projection is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Study task '{task_id}' could not be projected.",
        )
    return projection


@router.get("/events/{event_id}/task-projection", response_model=TaskProjection)
def event_to_task_projection(
    event_id: str,
    adapter: ScheduleItemAdapter = Depends(get_schedule_adapter),
) -> TaskProjection:
    with _domain_errors():
        projection = adapter.event_to_task_projection(adapter.load_event(event_id))
    if projection is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Study event '{event_id}' could not be projected.",
        )
    return projection


@router.post("/events/{event_id}/sync-completion", response_model=TaskSyncPayload)
def sync_event_completion_to_task(
    event_id: str,
    adapter: ScheduleItemAdapter = Depends(get_schedule_adapter),
) -> TaskSyncPayload:
    task = adapter.sync_event_completion_to_task(event_id)
    return TaskSyncPayload(synced=task is not None, task=task)


@router.post("/tasks/{task_id}/sync-completion", response_model=EventSyncPayload)
def sync_task_completion_to_events(
    task_id: str,
    adapter: ScheduleItemAdapter = Depends(get_schedule_adapter),
) -> EventSyncPayload:
    events = adapter.sync_task_completion_to_events(task_id)
    return EventSyncPayload(synced=len(events), events=events)


@router.get("/debug/users/{user_id}/scheduling-logs", response_model=List[SchedulingLogEntry])
def list_scheduling_logs(
    user_id: str,
    session: Session = Depends(get_session_dependency),
    settings: Settings = Depends(get_settings),
) -> List[SchedulingLogEntry]:
    if not settings.debug_endpoints:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    logs = study_activity.list_scheduling_logs(session, user_id)
    return [SchedulingLogEntry.model_validate(log) for log in logs]


__all__ = ["router"]
