from __future__ import annotations

import types

import pytest
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from scripts import run_migrations as runner
from study_scheduler.config import get_settings


def _placeholder_config() -> Config:
    config = Config()
    config.set_main_option("sqlalchemy.url", "%%(SCHEDULER_DATABASE_URL)s")
    config.set_main_option("script_location", str(runner.BACKEND_ROOT / "alembic"))
    return config


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_resolve_database_url_prefers_env(monkeypatch) -> None:
    monkeypatch.setenv("SCHEDULER_DATABASE_URL", "sqlite://")
    config = _placeholder_config()

    assert runner.resolve_database_url(config) == "sqlite://"
    assert config.get_main_option("sqlalchemy.url") == "sqlite://"


def test_resolve_database_url_keeps_explicit_url(monkeypatch) -> None:
    monkeypatch.setenv("SCHEDULER_DATABASE_URL", "sqlite://")
    config = Config()
    config.set_main_option("sqlalchemy.url", "postgresql://scheduler@db/scheduler")

    assert runner.resolve_database_url(config) == "postgresql://scheduler@db/scheduler"


def test_resolve_database_url_requires_configuration(monkeypatch) -> None:
    monkeypatch.delenv("SCHEDULER_DATABASE_URL", raising=False)
    monkeypatch.setattr(runner, "get_settings", lambda: types.SimpleNamespace(database_url=None))

    with pytest.raises(RuntimeError):
        runner.resolve_database_url(_placeholder_config())


def test_wait_for_database_succeeds_with_sqlite(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'ready.sqlite'}"
    runner.wait_for_database(url, timeout=2, poll_interval=0.1)


def test_wait_for_database_times_out(monkeypatch) -> None:
    class DummyEngine:
        def connect(self) -> types.SimpleNamespace:
            raise runner.OperationalError("SELECT 1", {}, Exception("boom"))

        def dispose(self) -> None:
            pass

    monkeypatch.setattr(runner, "create_engine", lambda *_, **__: DummyEngine())
    with pytest.raises(RuntimeError):
        runner.wait_for_database("postgresql://example", timeout=0, poll_interval=0)


def test_run_migrations_invokes_upgrade(monkeypatch) -> None:
    monkeypatch.setenv("SCHEDULER_DATABASE_URL", "sqlite://")
    recorded: dict[str, object] = {}

    def fake_wait(url: str, *, timeout: int, poll_interval: float) -> None:
        recorded["wait"] = (url, timeout, poll_interval)

    def fake_upgrade(cfg, revision: str, **kwargs) -> None:
        recorded["revision"] = revision
        recorded["kwargs"] = kwargs

    monkeypatch.setattr(runner, "wait_for_database", fake_wait)
    monkeypatch.setattr(runner.command, "upgrade", fake_upgrade)

    runner.run_migrations("head", timeout=5, poll_interval=0.1, config=_placeholder_config())

    assert recorded["revision"] == "head"
    assert recorded["wait"] == ("sqlite://", 5, 0.1)
    assert recorded["kwargs"] == {}


def test_offline_run_skips_readiness_check(monkeypatch) -> None:
    monkeypatch.setenv("SCHEDULER_DATABASE_URL", "sqlite://")
    recorded: dict[str, object] = {}

    def unexpected_wait(*_args, **_kwargs) -> None:
        raise AssertionError("offline runs must not wait for the database")

    def fake_upgrade(cfg, revision: str, **kwargs) -> None:
        recorded["kwargs"] = kwargs

    monkeypatch.setattr(runner, "wait_for_database", unexpected_wait)
    monkeypatch.setattr(runner.command, "upgrade", fake_upgrade)

    runner.run_migrations("head", timeout=5, poll_interval=0.1, config=_placeholder_config(), offline=True)

    assert recorded["kwargs"] == {"sql": True}


def test_upgrade_creates_scheduling_tables(tmp_path, monkeypatch) -> None:
    url = f"sqlite:///{tmp_path / 'migrated.sqlite'}"
    monkeypatch.setenv("SCHEDULER_DATABASE_URL", url)

    runner.run_migrations("head", timeout=2, poll_interval=0.1, config=_placeholder_config())

    engine = create_engine(url)
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert {
        "study_plans",
        "study_tasks",
        "study_events",
        "behavior_profiles",
        "daily_study_stats",
        "focus_sessions",
        "scheduling_logs",
        "alembic_version",
    } <= tables


def test_main_reports_failures(monkeypatch) -> None:
    def broken(*_args, **_kwargs) -> None:
        raise RuntimeError("database unreachable")

    monkeypatch.setattr(runner, "run_migrations", broken)
    assert runner.main(["--timeout", "0"]) == 1
