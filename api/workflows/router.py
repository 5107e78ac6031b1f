"""
Workflow API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from auth import dependencies as auth_dependencies
from core import ratelimit

from . import schemas, service

router = APIRouter(prefix="/api/workflows", dependencies=[Depends(ratelimit.api_limiter)])


@router.get("")
async def list_workflows(
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.list_workflows(user_id=int(current_user["id"]))


@router.post("")
async def create_workflow(
    payload: schemas.CreateWorkflowRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.create_workflow(payload, user_id=int(current_user["id"]))


@router.get("/{workflow_id}")
async def get_workflow(
    workflow_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.get_workflow(workflow_id, user_id=int(current_user["id"]))


@router.patch("/{workflow_id}")
async def update_workflow(
    workflow_id: int,
    payload: schemas.UpdateWorkflowRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.update_workflow(workflow_id, payload, user_id=int(current_user["id"]))


@router.delete("/{workflow_id}")
async def delete_workflow(
    workflow_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.delete_workflow(workflow_id, user_id=int(current_user["id"]))


@router.post("/{workflow_id}/execute")
async def execute_workflow(
    workflow_id: int,
    payload: schemas.ExecuteWorkflowRequest | None = None,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    payload = payload or schemas.ExecuteWorkflowRequest()
    return await service.execute_workflow(workflow_id, user_id=int(current_user["id"]), data=payload.data)


@router.get("/{workflow_id}/executions")
async def list_executions(
    workflow_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.list_executions(workflow_id, user_id=int(current_user["id"]))
