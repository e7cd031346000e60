from __future__ import annotations

import logging

import pytest

from study_scheduler.logging_config import EVENT_LOGGER, configure_logging


@pytest.fixture(autouse=True)
def _restore_logging():
    yield
    configure_logging("INFO")


def test_explicit_level_overrides_environment(monkeypatch) -> None:
    monkeypatch.setenv("SCHEDULER_LOG_LEVEL", "ERROR")
    configure_logging("debug")
    assert logging.getLogger().level == logging.DEBUG


def test_environment_level_is_default(monkeypatch) -> None:
    monkeypatch.setenv("SCHEDULER_LOG_LEVEL", "warning")
    configure_logging()
    assert logging.getLogger().level == logging.WARNING


def test_event_lines_can_be_silenced(monkeypatch) -> None:
    monkeypatch.setenv("SCHEDULER_QUIET_EVENTS", "1")
    configure_logging()
    assert logging.getLogger(EVENT_LOGGER).level == logging.WARNING

    monkeypatch.delenv("SCHEDULER_QUIET_EVENTS")
    configure_logging()
    assert logging.getLogger(EVENT_LOGGER).level == logging.NOTSET


def test_sql_statements_are_opt_in(monkeypatch) -> None:
    monkeypatch.delenv("SCHEDULER_DEBUG_SQL", raising=False)
    configure_logging()
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    monkeypatch.setenv("SCHEDULER_DEBUG_SQL", "1")
    configure_logging()
    assert logging.getLogger("sqlalchemy.engine").level == logging.INFO
