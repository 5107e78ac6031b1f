"""
Task API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from auth import dependencies as auth_dependencies
from core import ratelimit

from . import schemas, service

router = APIRouter(prefix="/api/tasks", dependencies=[Depends(ratelimit.api_limiter)])


@router.get("")
async def list_tasks(
    status: schemas.TaskStatus | None = Query(default=None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.list_tasks(
        user_id=int(current_user["id"]),
        status_filter=status,
        limit=limit,
        offset=offset,
    )


@router.post("")
async def create_task(
    payload: schemas.CreateTaskRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.create_task(
        user_id=int(current_user["id"]),
        title=payload.title,
        description=payload.description,
        priority=payload.priority,
        due_date=payload.due_date,
    )


@router.get("/{task_id}")
async def get_task(
    task_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.get_task(task_id, user_id=int(current_user["id"]))


@router.patch("/{task_id}")
async def update_task(
    task_id: int,
    payload: schemas.UpdateTaskRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.update_task(task_id, payload, user_id=int(current_user["id"]))


@router.delete("/{task_id}")
async def delete_task(
    task_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.delete_task(task_id, user_id=int(current_user["id"]))
