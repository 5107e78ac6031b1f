"""
Task persistence (raw SQL).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from core import db

COLUMNS = "id, user_id, title, description, status, priority, due_date, completed_at, created_at, updated_at"

# Columns a PATCH may touch; keeps the dynamic SET clause to a fixed allowlist.
UPDATABLE = ("title", "description", "status", "priority", "due_date", "completed_at")


async def create_task(
    *,
    user_id: int,
    title: str,
    description: str | None,
    priority: str,
    due_date: datetime | None,
) -> dict:
    row = await db.fetch_one(
        f"""
        INSERT INTO tasks (user_id, title, description, priority, due_date)
        VALUES ($1, $2, $3, $4, $5)
        RETURNING {COLUMNS}
        """,
        user_id,
        title,
        description,
        priority,
        due_date,
    )
    if row is None:
        raise RuntimeError("Failed to create task.")
    return row


async def list_tasks(
    *,
    user_id: int,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT {COLUMNS}
        FROM tasks
        WHERE user_id = $1
          AND ($2::text IS NULL OR status = $2)
        ORDER BY created_at DESC, id DESC
        LIMIT $3
        OFFSET $4
        """,
        user_id,
        status,
        limit,
        offset,
    )


async def list_open_tasks(user_id: int, *, limit: int = 5) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT {COLUMNS}
        FROM tasks
        WHERE user_id = $1
          AND status IN ('PENDING', 'IN_PROGRESS')
        ORDER BY created_at DESC, id DESC
        LIMIT $2
        """,
        user_id,
        limit,
    )


async def get_task(task_id: int, *, user_id: int) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {COLUMNS}
        FROM tasks
        WHERE id = $1
          AND user_id = $2
        """,
        task_id,
        user_id,
    )


async def update_task(task_id: int, *, user_id: int, changes: dict[str, Any]) -> dict | None:
    fields = [name for name in UPDATABLE if name in changes]
    if not fields:
        return await get_task(task_id, user_id=user_id)

    assignments = ", ".join(f"{name} = ${index}" for index, name in enumerate(fields, start=3))
    return await db.fetch_one(
        f"""
        UPDATE tasks
        SET {assignments},
            updated_at = now()
        WHERE id = $1
          AND user_id = $2
        RETURNING {COLUMNS}
        """,
        task_id,
        user_id,
        *[changes[name] for name in fields],
    )


async def delete_task(task_id: int, *, user_id: int) -> bool:
    deleted = await db.execute("DELETE FROM tasks WHERE id = $1 AND user_id = $2", task_id, user_id)
    return deleted > 0


async def status_counts(user_id: int) -> dict[str, int]:
    rows = await db.fetch_all(
        """
        SELECT status, count(*)::int AS count
        FROM tasks
        WHERE user_id = $1
        GROUP BY status
        """,
        user_id,
    )
    return {str(row["status"]): int(row["count"]) for row in rows}


async def count_overdue(user_id: int) -> int:
    value = await db.fetch_val(
        """
        SELECT count(*)
        FROM tasks
        WHERE user_id = $1
          AND due_date < now()
          AND status NOT IN ('COMPLETED', 'CANCELLED')
        """,
        user_id,
    )
    return int(value or 0)


async def completion_trend(user_id: int, *, since: datetime) -> list[dict]:
    return await db.fetch_all(
        """
        SELECT date_trunc('day', completed_at)::date AS day, count(*)::int AS count
        FROM tasks
        WHERE user_id = $1
          AND completed_at >= $2
        GROUP BY 1
        ORDER BY 1 ASC
        """,
        user_id,
        since,
    )
