"""UTC time helpers shared by services and repositories."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive values (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(value: date | datetime) -> datetime:
    day = value.date() if isinstance(value, datetime) else value
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def format_hhmm(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return f"{value.hour:02d}:{value.minute:02d}"


def parse_hhmm(value: str) -> int:
    """Return minutes after midnight for an ``HH:MM`` string."""
    hours, _, minutes = value.strip().partition(":")
    total = int(hours) * 60 + int(minutes or 0)
    if not 0 <= total <= 24 * 60:
        raise ValueError(f"Time of day out of range: {value}")
    return total


__all__ = ["Clock", "as_utc", "format_hhmm", "parse_hhmm", "start_of_day", "utcnow"]
