from __future__ import annotations

import json

from scripts import analyze_behavior
from study_scheduler.behavior_profile import BatchAnalysisSummary


class FakeService:
    def __init__(self, summary: BatchAnalysisSummary | None = None, error: Exception | None = None) -> None:
        self.summary = summary or BatchAnalysisSummary(total=1, analyzed=1)
        self.error = error
        self.calls: list[tuple[str, object]] = []

    def batch_analyze(self, user_ids=None) -> BatchAnalysisSummary:
        self.calls.append(("batch", user_ids))
        if self.error:
            raise self.error
        return self.summary

    def analyze_stale_profiles(self, hours: int = 24) -> BatchAnalysisSummary:
        self.calls.append(("stale", hours))
        return self.summary


def test_selected_users_are_analyzed(capsys) -> None:
    service = FakeService(BatchAnalysisSummary(total=2, analyzed=2, reliable=1))

    code = analyze_behavior.main(["--user", "alice", "--user", "bob"], service=service)

    assert code == 0
    assert service.calls == [("batch", ["alice", "bob"])]
    payload = json.loads(capsys.readouterr().out)
    assert payload["summary"] == {"total": 2, "analyzed": 2, "reliable": 1, "errors": 0}
    assert "timestamp" in payload


def test_default_run_covers_everyone(capsys) -> None:
    service = FakeService()
    assert analyze_behavior.main([], service=service) == 0
    assert service.calls == [("batch", None)]


def test_stale_run_passes_threshold(capsys) -> None:
    service = FakeService()
    assert analyze_behavior.main(["--stale", "--hours", "6"], service=service) == 0
    assert service.calls == [("stale", 6)]


def test_partial_failures_exit_with_two(capsys) -> None:
    service = FakeService(BatchAnalysisSummary(total=3, analyzed=2, errors=1))
    assert analyze_behavior.main([], service=service) == 2


def test_crash_exits_with_one(capsys) -> None:
    service = FakeService(error=RuntimeError("database unavailable"))
    assert analyze_behavior.main([], service=service) == 1
    assert capsys.readouterr().out == ""


def test_log_level_flag_reaches_logging_setup(monkeypatch, capsys) -> None:
    levels: list[object] = []
    monkeypatch.setattr(analyze_behavior, "configure_logging", levels.append)

    assert analyze_behavior.main(["--log-level", "debug"], service=FakeService()) == 0
    assert levels == ["debug"]
