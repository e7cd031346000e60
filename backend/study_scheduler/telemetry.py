"""Domain event bus for the scheduling core.

Services announce what they did (a behavior analysis, a mode recommendation,
a redistribution run) by name. Each event is written to the structured log and
handed to registered listeners; the audit log in ``telemetry_pipeline`` is one
such listener.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from threading import RLock
from typing import Any, Callable, Dict, FrozenSet, List, Literal, Optional, get_args

logger = logging.getLogger(__name__)

EventName = Literal[
    "behavior_analysis",
    "behavior_profile_reliable",
    "behavior_batch_analysis",
    "mode_recommendation",
    "tasks_rescheduled",
    "redistribution_failed",
    "schedule_completion_synced",
]

DOMAIN_EVENTS: FrozenSet[str] = frozenset(get_args(EventName))


@dataclass(frozen=True)
class TelemetryEvent:
    name: EventName
    payload: Dict[str, Any]

    @property
    def user_id(self) -> Optional[str]:
        value = self.payload.get("user_id")
        if isinstance(value, str) and value.strip():
            return value
        return None


EventListener = Callable[[TelemetryEvent], None]

_listeners: List[EventListener] = []
_lock = RLock()


def register_listener(listener: EventListener) -> None:
    """Subscribe a callable to every domain event; registering twice is a no-op."""
    with _lock:
        if listener not in _listeners:
            _listeners.append(listener)


def clear_listeners() -> None:
    with _lock:
        _listeners.clear()


def emit_event(name: EventName, **fields: Any) -> None:
    """Log a domain event and fan it out to listeners.

    Timestamps in ``fields`` are rendered as ISO strings so listeners can store
    the payload as JSON. A failing listener is logged and skipped.
    """
    if name not in DOMAIN_EVENTS:
        raise ValueError(f"Unknown scheduling event '{name}'.")
    event = TelemetryEvent(name=name, payload=_to_json_safe(fields))

    with _lock:
        listeners = list(_listeners)

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Listener failed for scheduling event %s", name)

    logger.info("EVENT %s", json.dumps({"event": name, **event.payload}, default=str))


def _to_json_safe(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value.isoformat() if isinstance(value, (datetime, date)) else value
        for key, value in fields.items()
    }


__all__ = [
    "DOMAIN_EVENTS",
    "EventListener",
    "EventName",
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "register_listener",
]
