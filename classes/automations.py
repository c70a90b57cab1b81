# classes/automations.py
"""
Stored natural-language automations ("every Monday, create the weekly sync
task for each engineer"), run through the agent pipeline on their schedule.
"""
import logging
import time
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from classes.agent_models import CommandRequest, CommandResponse
from classes.entities import AiAutomation
from classes.errors import EntityNotFoundError

logger = logging.getLogger("opsync_agent")

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def sunday_based_weekday(day: date) -> int:
    # 0 = Sunday ... 6 = Saturday, the convention day_of_week is stored in
    return (day.weekday() + 1) % 7


def should_run_today(automation, today: date) -> bool:
    schedule = getattr(automation, "schedule", None)
    if schedule == "daily":
        return True
    if schedule == "weekly":
        return automation.day_of_week is None or automation.day_of_week == sunday_based_weekday(today)
    if schedule == "monthly":
        if automation.day_of_month is None:
            return today.day == 1
        return automation.day_of_month == today.day
    return False


class AutomationRunner:
    def __init__(self, session_factory: sessionmaker, pipeline, pause_seconds: float = 1.0):
        self.SessionFactory = session_factory
        self.pipeline = pipeline
        # spacing between automations keeps a daily batch under the backend's rate limit
        self.pause_seconds = pause_seconds

    def _run_pipeline(self, automation: AiAutomation) -> CommandResponse:
        request = CommandRequest(
            instruction=automation.prompt,
            preview_only=False,
            extra_rules=automation.rules or None,
            automation_id=automation.id,
        )
        return self.pipeline.execute_command(request)

    def _record_run(
        self,
        automation_id: str,
        now: datetime,
        status: str,
        summary: str,
        log_id: Optional[str] = None,
        update_log_id: bool = True,
    ) -> None:
        session = self.SessionFactory()
        try:
            row = session.get(AiAutomation, automation_id)
            if row is None:
                return
            row.last_run_at = now
            row.last_run_status = status
            row.last_run_summary = summary
            if update_log_id:
                row.last_run_log_id = log_id
            row.updated_at = now
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _load(self, automation_id: str | None = None) -> List[AiAutomation]:
        session = self.SessionFactory()
        try:
            query = session.query(AiAutomation)
            if automation_id is not None:
                query = query.filter(AiAutomation.id == automation_id)
            else:
                query = query.filter(AiAutomation.enabled.is_(True)).order_by(AiAutomation.created_at)
            return query.all()
        finally:
            session.close()

    def run_one(self, automation_id: str) -> dict:
        """
        Run a single automation now, whatever its schedule or enabled flag.
        """
        found = self._load(automation_id)
        if not found:
            raise EntityNotFoundError("AI automation not found")
        automation = found[0]

        response = self._run_pipeline(automation)
        now = datetime.now(timezone.utc)
        self._record_run(
            automation.id, now,
            "success" if response.success else "error",
            response.message,
            response.log_id,
        )

        return {
            "success": response.success,
            "automationId": automation.id,
            "name": automation.name,
            "message": response.message,
            "operationsCount": len(response.operations),
            "executionTimeMs": response.execution_time_ms,
            "logId": response.log_id,
            "operations": [op.model_dump(by_alias=True, exclude_none=True, mode="json") for op in response.operations],
        }

    def run_due(self, now: datetime | None = None) -> dict:
        """
        Run every enabled automation scheduled for today. A failing automation
        is recorded and the rest still run.
        """
        now = now or datetime.now(timezone.utc)
        today = now.date()
        automations = self._load()
        results = []

        for i, automation in enumerate(automations):
            if not should_run_today(automation, today):
                results.append({
                    "automationId": automation.id,
                    "name": automation.name,
                    "action": "skipped",
                    "reason": (
                        f"Not scheduled for today (schedule: {automation.schedule}, "
                        f"dayOfWeek: {automation.day_of_week}, dayOfMonth: {automation.day_of_month})"
                    ),
                })
                continue

            try:
                response = self._run_pipeline(automation)
                self._record_run(
                    automation.id, now,
                    "success" if response.success else "error",
                    response.message,
                    response.log_id,
                )
                results.append({
                    "automationId": automation.id,
                    "name": automation.name,
                    "action": "executed",
                    "success": response.success,
                    "message": response.message,
                    "operationsCount": len(response.operations),
                    "executionTimeMs": response.execution_time_ms,
                    "logId": response.log_id,
                })
            except Exception as e:
                logger.exception(f"Automation {automation.id} ({automation.name}) failed")
                self._record_run(automation.id, now, "error", f"Execution failed: {e}", update_log_id=False)
                results.append({
                    "automationId": automation.id,
                    "name": automation.name,
                    "action": "error",
                    "error": str(e),
                })

            if self.pause_seconds and i < len(automations) - 1:
                time.sleep(self.pause_seconds)

        weekday = sunday_based_weekday(today)
        return {
            "success": True,
            "timestamp": now.isoformat(),
            "serverDay": {
                "dayOfWeek": weekday,
                "dayOfMonth": today.day,
                "dayName": DAY_NAMES[weekday],
            },
            "processedCount": len(automations),
            "results": results,
        }
