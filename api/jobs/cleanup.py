"""
Nightly retention cleanup.

Three independent deletes run concurrently; one failing does not stop the others.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from chat import repository as chat_repository
from core import settings
from integrations import repository as integrations_repository
from workflows import repository as workflows_repository

logger = logging.getLogger(__name__)


@dataclass
class CleanupStats:
    deleted_executions: int = 0
    deleted_messages: int = 0
    deleted_logs: int = 0
    errors: dict[str, str] = field(default_factory=dict)


def execution_retention_days() -> int:
    return settings.env_int("CLEANUP_EXECUTION_RETENTION_DAYS", 30)


def messages_per_session() -> int:
    return settings.env_int("CLEANUP_MESSAGES_PER_SESSION", 100)


def log_retention_days() -> int:
    return settings.env_int("CLEANUP_LOG_RETENTION_DAYS", 7)


async def run_cleanup(now: datetime | None = None) -> CleanupStats:
    now = now or datetime.now(timezone.utc)

    outcomes = await asyncio.gather(
        workflows_repository.delete_completed_executions_before(now - timedelta(days=execution_retention_days())),
        chat_repository.trim_messages(messages_per_session()),
        integrations_repository.delete_logs_before(now - timedelta(days=log_retention_days())),
        return_exceptions=True,
    )

    stats = CleanupStats()
    for name, outcome in zip(("deleted_executions", "deleted_messages", "deleted_logs"), outcomes):
        if isinstance(outcome, BaseException):
            logger.error("cleanup_step_failed step=%s error=%r", name, outcome)
            stats.errors[name] = type(outcome).__name__
            continue
        setattr(stats, name, int(outcome))

    logger.info(
        "cleanup_completed deleted_executions=%s deleted_messages=%s deleted_logs=%s",
        stats.deleted_executions,
        stats.deleted_messages,
        stats.deleted_logs,
    )
    return stats
