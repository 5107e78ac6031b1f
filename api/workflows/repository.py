"""
Workflow, step and execution persistence (raw SQL).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import asyncpg

from core import db

WORKFLOW_COLUMNS = "id, user_id, name, description, trigger, is_active, last_run, created_at, updated_at"
EXECUTION_COLUMNS = "id, workflow_id, status, trigger_data, result, error, started_at, completed_at"

UPDATABLE = ("name", "description", "trigger", "is_active")


async def _insert_steps(conn: asyncpg.Connection, workflow_id: int, steps: list[dict[str, Any]]) -> None:
    # step_order is the position in the submitted list.
    for index, step in enumerate(steps):
        await conn.execute(
            """
            INSERT INTO workflow_steps
                (workflow_id, integration_id, step_order, action, parameters, output_variable, stop_on_error)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            """,
            workflow_id,
            step.get("integration_id"),
            index,
            step["action"],
            step.get("parameters") or {},
            step.get("output_variable"),
            bool(step.get("stop_on_error", False)),
        )


async def create_workflow(
    *,
    user_id: int,
    name: str,
    description: str | None,
    trigger: dict[str, Any],
    is_active: bool,
    steps: list[dict[str, Any]],
) -> dict:
    async with db.transaction() as conn:
        row = await conn.fetchrow(
            f"""
            INSERT INTO workflows (user_id, name, description, trigger, is_active)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING {WORKFLOW_COLUMNS}
            """,
            user_id,
            name,
            description,
            trigger,
            is_active,
        )
        if row is None:
            raise RuntimeError("Failed to create workflow.")
        await _insert_steps(conn, int(row["id"]), steps)
    return dict(row)


async def update_workflow(
    workflow_id: int,
    *,
    user_id: int,
    changes: dict[str, Any],
    steps: list[dict[str, Any]] | None,
) -> dict | None:
    fields = [name for name in UPDATABLE if name in changes]
    assignments = "".join(f"{name} = ${index}, " for index, name in enumerate(fields, start=3))

    async with db.transaction() as conn:
        row = await conn.fetchrow(
            f"""
            UPDATE workflows
            SET {assignments}updated_at = now()
            WHERE id = $1
              AND user_id = $2
            RETURNING {WORKFLOW_COLUMNS}
            """,
            workflow_id,
            user_id,
            *[changes[name] for name in fields],
        )
        if row is None:
            return None
        if steps is not None:
            await conn.execute("DELETE FROM workflow_steps WHERE workflow_id = $1", workflow_id)
            await _insert_steps(conn, workflow_id, steps)
    return dict(row)


async def get_workflow(workflow_id: int, *, user_id: int) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {WORKFLOW_COLUMNS}
        FROM workflows
        WHERE id = $1
          AND user_id = $2
        """,
        workflow_id,
        user_id,
    )


async def list_workflows(user_id: int) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT {WORKFLOW_COLUMNS}
        FROM workflows
        WHERE user_id = $1
        ORDER BY created_at DESC, id DESC
        """,
        user_id,
    )


async def list_active_by_trigger(trigger_type: str, *, user_id: int | None = None) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT {WORKFLOW_COLUMNS}
        FROM workflows
        WHERE is_active = TRUE
          AND trigger->>'type' = $1
          AND ($2::bigint IS NULL OR user_id = $2)
        ORDER BY id ASC
        """,
        trigger_type,
        user_id,
    )


async def delete_workflow(workflow_id: int, *, user_id: int) -> bool:
    deleted = await db.execute("DELETE FROM workflows WHERE id = $1 AND user_id = $2", workflow_id, user_id)
    return deleted > 0


async def list_steps(workflow_ids: list[int]) -> list[dict]:
    if not workflow_ids:
        return []
    return await db.fetch_all(
        """
        SELECT
          s.id,
          s.workflow_id,
          s.integration_id,
          s.step_order,
          s.action,
          s.parameters,
          s.output_variable,
          s.stop_on_error,
          i.type AS integration_type,
          i.name AS integration_name
        FROM workflow_steps s
        LEFT JOIN integrations i ON i.id = s.integration_id
        WHERE s.workflow_id = ANY($1::bigint[])
        ORDER BY s.workflow_id ASC, s.step_order ASC
        """,
        workflow_ids,
    )


async def execution_stats(workflow_ids: list[int]) -> list[dict]:
    if not workflow_ids:
        return []
    return await db.fetch_all(
        """
        SELECT
          workflow_id,
          count(*)::int AS total,
          count(*) FILTER (WHERE status = 'COMPLETED')::int AS successful,
          count(*) FILTER (WHERE status = 'FAILED')::int AS failed
        FROM workflow_executions
        WHERE workflow_id = ANY($1::bigint[])
        GROUP BY workflow_id
        """,
        workflow_ids,
    )


async def create_execution(*, workflow_id: int, status: str, trigger_data: dict[str, Any]) -> dict:
    row = await db.fetch_one(
        f"""
        INSERT INTO workflow_executions (workflow_id, status, trigger_data)
        VALUES ($1, $2, $3)
        RETURNING {EXECUTION_COLUMNS}
        """,
        workflow_id,
        status,
        trigger_data,
    )
    if row is None:
        raise RuntimeError("Failed to create workflow execution.")
    return row


async def finish_execution(
    execution_id: int,
    *,
    status: str,
    result: Any,
    error: str | None,
) -> dict | None:
    return await db.fetch_one(
        f"""
        UPDATE workflow_executions
        SET status = $2,
            result = $3,
            error = $4,
            completed_at = now()
        WHERE id = $1
        RETURNING {EXECUTION_COLUMNS}
        """,
        execution_id,
        status,
        result,
        error,
    )


async def touch_last_run(workflow_id: int) -> None:
    await db.execute("UPDATE workflows SET last_run = now() WHERE id = $1", workflow_id)


async def list_executions(workflow_id: int, *, limit: int) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT {EXECUTION_COLUMNS}
        FROM workflow_executions
        WHERE workflow_id = $1
        ORDER BY started_at DESC, id DESC
        LIMIT $2
        """,
        workflow_id,
        limit,
    )


async def execution_trend(user_id: int, *, since: datetime) -> list[dict]:
    return await db.fetch_all(
        """
        SELECT date_trunc('day', e.started_at)::date AS day, count(*)::int AS count
        FROM workflow_executions e
        JOIN workflows w ON w.id = e.workflow_id
        WHERE w.user_id = $1
          AND e.started_at >= $2
        GROUP BY 1
        ORDER BY 1 ASC
        """,
        user_id,
        since,
    )


async def delete_completed_executions_before(cutoff: datetime) -> int:
    return await db.execute(
        """
        DELETE FROM workflow_executions
        WHERE status = 'COMPLETED'
          AND started_at < $1
        """,
        cutoff,
    )
