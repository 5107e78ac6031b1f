"""
Background jobs on one in-process AsyncIOScheduler.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from . import cleanup, email_triggers, scheduled_workflows

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(timezone="UTC")


def start_jobs() -> None:
    if scheduler.running:
        logger.warning("scheduler_already_running")
        return None

    scheduler.add_job(
        cleanup.run_cleanup,
        CronTrigger(hour=2, minute=0),
        id="cleanup",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        email_triggers.run_email_triggers,
        CronTrigger(minute="*/5"),
        id="email_triggers",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        scheduled_workflows.run_scheduled_workflows,
        CronTrigger(minute="*"),
        id="scheduled_workflows",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("scheduler_started jobs=%s", [job.id for job in scheduler.get_jobs()])


def stop_jobs() -> None:
    if not scheduler.running:
        return None
    scheduler.shutdown(wait=False)
    logger.info("scheduler_stopped")
