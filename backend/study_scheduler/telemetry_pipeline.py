"""Listener that persists scheduling outcomes into the ``scheduling_logs`` audit table."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from .db.session import session_scope
from .repositories.study_activity import study_activity
from .telemetry import EventName, TelemetryEvent, register_listener

logger = logging.getLogger(__name__)

# audited event -> scheduling_logs.action
AUDITED_EVENTS: Mapping[EventName, str] = {
    "tasks_rescheduled": "redistribute",
    "redistribution_failed": "redistribute",
    "behavior_profile_reliable": "behavior_analysis",
}

_FAILURE_EVENTS = {"redistribution_failed"}
_COLUMN_KEYS = {"user_id", "plan_id", "error", "execution_time_ms"}


def _details(event: TelemetryEvent) -> Dict[str, Any]:
    extra = {key: value for key, value in event.payload.items() if key not in _COLUMN_KEYS}
    return {"event": event.name, **extra}


def _persist_event(event: TelemetryEvent) -> None:
    action = AUDITED_EVENTS.get(event.name)
    user_id = event.user_id
    if action is None or user_id is None:
        return
    execution_time = event.payload.get("execution_time_ms")
    try:
        with session_scope() as session:
            study_activity.record_scheduling_log(
                session,
                user_id=user_id,
                plan_id=event.payload.get("plan_id"),
                action=action,
                success=event.name not in _FAILURE_EVENTS,
                details=_details(event),
                error_message=event.payload.get("error"),
                execution_time_ms=float(execution_time) if execution_time is not None else None,
            )
    except Exception:  # noqa: BLE001
        logger.exception("Failed to audit %s for user_id=%s", event.name, user_id)


register_listener(_persist_event)

__all__ = ["AUDITED_EVENTS"]
