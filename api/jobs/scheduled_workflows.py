"""
Run schedule-triggered workflows whose schedule matches the current minute.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from apscheduler.triggers.cron import CronTrigger

from workflows import engine
from workflows import repository as workflows_repository
from workflows import service as workflows_service

logger = logging.getLogger(__name__)


def _floor_minute(now: datetime) -> datetime:
    return now.replace(second=0, microsecond=0)


def _int_or(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def should_execute(trigger: dict[str, Any], now: datetime) -> bool:
    cron = trigger.get("cron")
    if cron:
        minute = _floor_minute(now)
        try:
            cron_trigger = CronTrigger.from_crontab(str(cron), timezone=minute.tzinfo or timezone.utc)
        except ValueError:
            logger.warning("invalid_cron_expression cron=%s", cron)
            return False
        reference = minute if minute.tzinfo else minute.replace(tzinfo=timezone.utc)
        next_fire = cron_trigger.get_next_fire_time(None, reference - timedelta(microseconds=1))
        return next_fire is not None and next_fire == reference

    schedule = trigger.get("schedule") or {}
    if schedule.get("frequency") == "daily":
        return now.hour == _int_or(schedule.get("hour"), 9) and now.minute == _int_or(schedule.get("minute"), 0)

    return False


async def run_scheduled_workflows(now: datetime | None = None) -> int:
    """
    Returns the number of workflow executions started.
    """
    now = now or datetime.now(timezone.utc)
    rows = await workflows_repository.list_active_by_trigger("schedule")
    due = [row for row in rows if should_execute(row.get("trigger") or {}, now)]
    if not due:
        return 0

    for workflow in await workflows_service.attach_steps(due):
        await engine.execute_workflow(workflow, {})
        logger.info("scheduled_workflow_executed workflow_id=%s name=%s", workflow["id"], workflow["name"])
    return len(due)
