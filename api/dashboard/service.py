"""
Dashboard aggregation: task counts, integration status, inbox and calendar snapshots.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any

from integrations import clients
from integrations import repository as integrations_repository
from integrations import service as integrations_service
from integrations.base import IntegrationError
from tasks import repository as tasks_repository
from workflows import repository as workflows_repository

logger = logging.getLogger(__name__)

RECENT_ITEMS = 5


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _event_day(start: Any) -> date | None:
    if not isinstance(start, str) or not start:
        return None
    try:
        # All-day events carry a bare date; timed events an ISO datetime.
        return datetime.fromisoformat(start).date() if "T" in start else date.fromisoformat(start)
    except ValueError:
        return None


def count_today_events(events: list[dict[str, Any]], *, today: date) -> int:
    return sum(1 for event in events if _event_day(event.get("start")) == today)


async def _task_stats(user_id: int) -> dict[str, int]:
    counts = await tasks_repository.status_counts(user_id)
    return {
        "total": sum(counts.values()),
        "pending": counts.get("PENDING", 0),
        "in_progress": counts.get("IN_PROGRESS", 0),
        "completed": counts.get("COMPLETED", 0),
        "overdue": await tasks_repository.count_overdue(user_id),
    }


async def _recent_data(row: dict) -> list[dict[str, Any]] | None:
    try:
        return await integrations_service.client_for(row).get_recent_data()
    except IntegrationError as exc:
        logger.warning("dashboard_data_failed integration_id=%s type=%s error=%s", row["id"], row["type"], exc)
        return None


async def get_dashboard(*, user_id: int, now: datetime | None = None) -> dict[str, Any]:
    now = now or _utc_now()
    connected = await integrations_repository.list_connected(user_id)

    emails: dict[str, Any] = {"unread": 0, "recent": []}
    calendar: dict[str, Any] = {"upcoming_events": [], "today_events": 0}

    for row in connected:
        if row["type"] == "GMAIL":
            data = await _recent_data(row)
            if data is not None:
                emails = {"unread": len(data), "recent": data[:RECENT_ITEMS]}
        elif row["type"] == "GOOGLE_CALENDAR":
            data = await _recent_data(row)
            if data is not None:
                calendar = {
                    "upcoming_events": data[:RECENT_ITEMS],
                    "today_events": count_today_events(data, today=now.date()),
                }

    return {
        "tasks": await _task_stats(user_id),
        "integrations": {
            "connected": len(connected),
            "total": len(clients.CATALOG),
            "status": [
                {
                    "type": row["type"],
                    "name": row["name"],
                    "is_connected": bool(row["is_connected"]),
                    "last_sync": row.get("last_sync"),
                }
                for row in connected
            ],
        },
        "emails": emails,
        "calendar": calendar,
    }


def timeframe_days(timeframe: str | None) -> int:
    return 30 if timeframe == "30d" else 7


async def get_analytics(*, user_id: int, timeframe: str | None, now: datetime | None = None) -> dict[str, Any]:
    days = timeframe_days(timeframe)
    since = (now or _utc_now()) - timedelta(days=days)

    task_rows = await tasks_repository.completion_trend(user_id, since=since)
    workflow_rows = await workflows_repository.execution_trend(user_id, since=since)
    return {
        "task_trends": [{"day": str(r["day"]), "count": int(r["count"])} for r in task_rows],
        "workflow_trends": [{"day": str(r["day"]), "count": int(r["count"])} for r in workflow_rows],
        "timeframe": timeframe or "7d",
        "period": f"{days} days",
    }
