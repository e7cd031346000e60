"""Process logging for the API and the maintenance scripts."""

import logging
import os
from logging.config import dictConfig
from typing import Optional

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
EVENT_LOGGER = "study_scheduler.telemetry"


def _flag(name: str) -> bool:
    return os.getenv(name, "0").lower() in {"1", "true", "yes"}


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging; ``level`` overrides ``SCHEDULER_LOG_LEVEL``.

    ``SCHEDULER_QUIET_EVENTS=1`` drops the per-event ``EVENT`` lines while
    keeping warnings from failing listeners. ``SCHEDULER_DEBUG_SQL=1`` turns
    on SQLAlchemy statement logging.
    """
    root_level = (level or os.getenv("SCHEDULER_LOG_LEVEL", "INFO")).upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": DEFAULT_LOG_FORMAT}},
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                EVENT_LOGGER: {"level": "WARNING" if _flag("SCHEDULER_QUIET_EVENTS") else "NOTSET"},
                "sqlalchemy.engine": {"level": "INFO" if _flag("SCHEDULER_DEBUG_SQL") else "WARNING"},
            },
            "root": {"handlers": ["default"], "level": root_level},
        }
    )
