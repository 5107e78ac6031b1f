"""
Task business logic.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import HTTPException, status

from core.validators import sanitize_input, sanitize_optional

from . import repository, schemas

PRIORITIES = {"LOW", "MEDIUM", "HIGH", "URGENT"}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def create_task(
    *,
    user_id: int,
    title: str,
    description: str | None = None,
    priority: str | None = None,
    due_date: datetime | None = None,
) -> dict:
    title = sanitize_input(title).strip()
    if not title:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Task title is empty.")

    normalized_priority = (priority or "MEDIUM").strip().upper()
    if normalized_priority not in PRIORITIES:
        normalized_priority = "MEDIUM"

    return await repository.create_task(
        user_id=user_id,
        title=title[:200],
        description=sanitize_optional(description),
        priority=normalized_priority,
        due_date=due_date,
    )


async def list_tasks(*, user_id: int, status_filter: str | None, limit: int, offset: int) -> dict[str, Any]:
    rows = await repository.list_tasks(
        user_id=user_id,
        status=status_filter,
        limit=max(1, min(limit, 200)),
        offset=max(0, offset),
    )
    return {"tasks": rows, "limit": limit, "offset": offset, "count": len(rows)}


async def get_task(task_id: int, *, user_id: int) -> dict:
    row = await repository.get_task(task_id, user_id=user_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return row


async def update_task(task_id: int, payload: schemas.UpdateTaskRequest, *, user_id: int) -> dict:
    changes: dict[str, Any] = payload.model_dump(exclude_unset=True)

    if "title" in changes:
        if changes["title"] is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Task title is empty.")
        changes["title"] = sanitize_input(changes["title"]).strip()
        if not changes["title"]:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Task title is empty.")
    if "description" in changes:
        changes["description"] = sanitize_optional(changes["description"])
    if changes.get("status") is not None:
        changes["completed_at"] = _utc_now() if changes["status"] == "COMPLETED" else None
    elif "status" in changes:
        changes.pop("status")
    if "priority" in changes and changes["priority"] is None:
        changes.pop("priority")

    row = await repository.update_task(task_id, user_id=user_id, changes=changes)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return row


async def delete_task(task_id: int, *, user_id: int) -> dict[str, Any]:
    if not await repository.delete_task(task_id, user_id=user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return {"ok": True, "task_id": task_id}
