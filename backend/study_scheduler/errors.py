"""Typed failures raised by the scheduling core."""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for every failure surfaced by the scheduling core."""


class NotFoundError(SchedulingError, LookupError):
    """A plan, task, event, or profile the caller referenced does not exist."""


class PlanNotFoundError(NotFoundError):
    def __init__(self, plan_id: str) -> None:
        super().__init__(f"Study plan '{plan_id}' was not found.")
        self.plan_id = plan_id


class TaskNotFoundError(NotFoundError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Study task '{task_id}' was not found.")
        self.task_id = task_id


class EventNotFoundError(NotFoundError):
    def __init__(self, event_id: str) -> None:
        super().__init__(f"Study event '{event_id}' was not found.")
        self.event_id = event_id


class SchedulingValidationError(SchedulingError, ValueError):
    """Caller supplied missing identifiers or invalid options."""


class InvalidStatusTransition(SchedulingValidationError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move a schedule item from '{current}' to '{target}'.")
        self.current = current
        self.target = target


__all__ = [
    "EventNotFoundError",
    "InvalidStatusTransition",
    "NotFoundError",
    "PlanNotFoundError",
    "SchedulingError",
    "SchedulingValidationError",
    "TaskNotFoundError",
]
