"""Tests for scheduled automations."""

from datetime import date, datetime, timezone
from types import SimpleNamespace

import pytest

from classes.agent_models import CommandResponse, OperationResult
from classes.automations import AutomationRunner, should_run_today, sunday_based_weekday
from classes.entities import AiAutomation
from classes.errors import EntityNotFoundError

SUNDAY = date(2025, 1, 5)
MONDAY = date(2025, 1, 6)


class FakePipeline:
    def __init__(self, fail_on=()):
        self.requests = []
        self.fail_on = set(fail_on)

    def execute_command(self, request, caller_id=None):
        self.requests.append(request)
        if request.instruction in self.fail_on:
            raise RuntimeError("database unavailable")
        return CommandResponse(
            success=True,
            message="Completed 1 operation(s) successfully.",
            operations=[OperationResult(tool="create_project", status="success", result={})],
            execution_time_ms=12,
            log_id=f"log-{len(self.requests)}",
        )


def _add(session_factory, **fields) -> str:
    fields.setdefault("name", fields.get("prompt", "automation"))
    session = session_factory()
    try:
        row = AiAutomation(**fields)
        session.add(row)
        session.commit()
        return row.id
    finally:
        session.close()


def _get(session_factory, automation_id) -> AiAutomation:
    session = session_factory()
    try:
        return session.get(AiAutomation, automation_id)
    finally:
        session.close()


class TestSchedule:
    def test_weekday_numbering_starts_on_sunday(self):
        assert sunday_based_weekday(SUNDAY) == 0
        assert sunday_based_weekday(MONDAY) == 1

    @pytest.mark.parametrize(
        "schedule, day_of_week, day_of_month, today, expected",
        [
            ("daily", None, None, MONDAY, True),
            ("weekly", 1, None, MONDAY, True),
            ("weekly", 1, None, SUNDAY, False),
            ("weekly", None, None, SUNDAY, True),
            ("monthly", 15, None, date(2025, 1, 15), False),
            ("monthly", None, 15, date(2025, 1, 15), True),
            ("monthly", None, None, date(2025, 2, 1), True),
            ("monthly", None, None, date(2025, 2, 2), False),
            ("hourly", None, None, MONDAY, False),
        ],
    )
    def test_should_run_today(self, schedule, day_of_week, day_of_month, today, expected):
        automation = SimpleNamespace(schedule=schedule, day_of_week=day_of_week, day_of_month=day_of_month)
        assert should_run_today(automation, today) is expected


class TestRunDue:
    def test_skips_runs_and_isolates_failures(self, session_factory):
        due = _add(session_factory, prompt="create weekly sync", rules="Only engineers", schedule="weekly", day_of_week=1)
        not_due = _add(session_factory, prompt="monthly review", schedule="monthly", day_of_month=20)
        broken = _add(session_factory, prompt="explode", schedule="daily")
        _add(session_factory, prompt="disabled", schedule="daily", enabled=False)

        pipeline = FakePipeline(fail_on={"explode"})
        runner = AutomationRunner(session_factory, pipeline, pause_seconds=0)
        now = datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc)

        report = runner.run_due(now)

        assert report["processedCount"] == 3
        assert report["serverDay"] == {"dayOfWeek": 1, "dayOfMonth": 6, "dayName": "Monday"}
        actions = {r["automationId"]: r["action"] for r in report["results"]}
        assert actions == {due: "executed", not_due: "skipped", broken: "error"}

        [sent] = [r for r in pipeline.requests if r.instruction == "create weekly sync"]
        assert sent.instruction == "create weekly sync"
        assert sent.extra_rules == "Only engineers"
        assert sent.automation_id == due
        assert sent.preview_only is False

        ran = _get(session_factory, due)
        assert ran.last_run_status == "success"
        assert ran.last_run_log_id.startswith("log-")
        assert ran.last_run_at is not None

        failed = _get(session_factory, broken)
        assert failed.last_run_status == "error"
        assert failed.last_run_summary == "Execution failed: database unavailable"
        assert failed.last_run_log_id is None

        assert _get(session_factory, not_due).last_run_at is None

    def test_nothing_enabled(self, session_factory):
        report = AutomationRunner(session_factory, FakePipeline(), pause_seconds=0).run_due()
        assert report["success"] is True
        assert report["processedCount"] == 0
        assert report["results"] == []


class TestRunOne:
    def test_runs_regardless_of_schedule(self, session_factory):
        automation_id = _add(session_factory, name="Quarterly", prompt="quarterly review", schedule="monthly", day_of_month=31, enabled=False)
        result = AutomationRunner(session_factory, FakePipeline(), pause_seconds=0).run_one(automation_id)

        assert result["success"] is True
        assert result["name"] == "Quarterly"
        assert result["operationsCount"] == 1
        assert result["logId"] == "log-1"
        assert result["operations"][0]["tool"] == "create_project"
        assert _get(session_factory, automation_id).last_run_status == "success"

    def test_missing(self, session_factory):
        with pytest.raises(EntityNotFoundError, match="AI automation not found"):
            AutomationRunner(session_factory, FakePipeline()).run_one("nope")
