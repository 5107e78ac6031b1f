"""
Workflow business logic: CRUD, manual execution and history.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, status

from core.validators import sanitize_input, sanitize_optional
from integrations import repository as integrations_repository

from . import engine, repository, schemas

logger = logging.getLogger(__name__)

RECENT_EXECUTIONS = 10
EXECUTION_HISTORY = 50


def _public_step(row: dict) -> dict[str, Any]:
    integration = None
    if row.get("integration_id") is not None:
        integration = {"type": row.get("integration_type"), "name": row.get("integration_name")}
    return {
        "id": int(row["id"]),
        "integration_id": row.get("integration_id"),
        "integration": integration,
        "step_order": int(row["step_order"]),
        "action": str(row["action"]),
        "parameters": row.get("parameters") or {},
        "output_variable": row.get("output_variable"),
        "stop_on_error": bool(row.get("stop_on_error")),
    }


async def attach_steps(workflows: list[dict]) -> list[dict]:
    """
    Return copies of the workflow rows with their ordered `steps` attached.
    """
    ids = [int(w["id"]) for w in workflows]
    by_workflow: dict[int, list[dict]] = {workflow_id: [] for workflow_id in ids}
    for row in await repository.list_steps(ids):
        by_workflow.setdefault(int(row["workflow_id"]), []).append(_public_step(row))
    return [{**w, "steps": by_workflow.get(int(w["id"]), [])} for w in workflows]


async def _get_owned(workflow_id: int, *, user_id: int) -> dict:
    row = await repository.get_workflow(workflow_id, user_id=user_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workflow not found")
    return row


async def _check_step_integrations(steps: list[schemas.WorkflowStepRequest], *, user_id: int) -> None:
    ids = sorted({s.integration_id for s in steps if s.integration_id is not None})
    if ids and not await integrations_repository.user_owns_integrations(user_id, ids):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid integration for this user")


async def list_workflows(*, user_id: int) -> dict[str, Any]:
    workflows = await attach_steps(await repository.list_workflows(user_id))
    stats = {int(r["workflow_id"]): r for r in await repository.execution_stats([int(w["id"]) for w in workflows])}

    for workflow in workflows:
        row = stats.get(int(workflow["id"]), {})
        workflow["stats"] = {
            "total": int(row.get("total", 0)),
            "successful": int(row.get("successful", 0)),
            "failed": int(row.get("failed", 0)),
            "last_run": workflow.get("last_run"),
        }
    return {"workflows": workflows, "count": len(workflows)}


async def create_workflow(payload: schemas.CreateWorkflowRequest, *, user_id: int) -> dict:
    await _check_step_integrations(payload.steps, user_id=user_id)

    row = await repository.create_workflow(
        user_id=user_id,
        name=sanitize_input(payload.name).strip() or "Untitled workflow",
        description=sanitize_optional(payload.description),
        trigger=payload.trigger,
        is_active=payload.is_active,
        steps=[s.model_dump() for s in payload.steps],
    )
    logger.info("workflow_created user_id=%s workflow_id=%s steps=%s", user_id, row["id"], len(payload.steps))
    return (await attach_steps([row]))[0]


async def get_workflow(workflow_id: int, *, user_id: int) -> dict:
    row = await _get_owned(workflow_id, user_id=user_id)
    workflow = (await attach_steps([row]))[0]
    workflow["executions"] = await repository.list_executions(workflow_id, limit=RECENT_EXECUTIONS)
    return workflow


async def update_workflow(workflow_id: int, payload: schemas.UpdateWorkflowRequest, *, user_id: int) -> dict:
    changes: dict[str, Any] = payload.model_dump(exclude_unset=True, exclude={"steps"})
    # None means "leave as is" for the non-nullable columns.
    for name in ("name", "trigger", "is_active"):
        if name in changes and changes[name] is None:
            changes.pop(name)
    if "name" in changes:
        changes["name"] = sanitize_input(changes["name"]).strip() or "Untitled workflow"
    if "description" in changes:
        changes["description"] = sanitize_optional(changes["description"])

    steps = None
    if payload.steps is not None:
        await _check_step_integrations(payload.steps, user_id=user_id)
        steps = [s.model_dump() for s in payload.steps]

    row = await repository.update_workflow(workflow_id, user_id=user_id, changes=changes, steps=steps)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workflow not found")
    return (await attach_steps([row]))[0]


async def delete_workflow(workflow_id: int, *, user_id: int) -> dict[str, Any]:
    if not await repository.delete_workflow(workflow_id, user_id=user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workflow not found")
    logger.info("workflow_deleted user_id=%s workflow_id=%s", user_id, workflow_id)
    return {"ok": True, "workflow_id": workflow_id}


async def execute_workflow(workflow_id: int, *, user_id: int, data: dict[str, Any]) -> dict:
    row = await _get_owned(workflow_id, user_id=user_id)
    workflow = (await attach_steps([row]))[0]
    return await engine.execute_workflow(workflow, data)


async def list_executions(workflow_id: int, *, user_id: int) -> dict[str, Any]:
    await _get_owned(workflow_id, user_id=user_id)
    executions = await repository.list_executions(workflow_id, limit=EXECUTION_HISTORY)
    return {"executions": executions, "count": len(executions)}
