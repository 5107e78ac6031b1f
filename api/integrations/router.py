"""
Integration API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from auth import dependencies as auth_dependencies
from core import ratelimit

from . import schemas, service

router = APIRouter(prefix="/api/integrations", dependencies=[Depends(ratelimit.api_limiter)])


@router.get("")
async def list_integrations(
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.list_integrations(user_id=int(current_user["id"]))


@router.get("/available")
async def available_integrations(
    _: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return service.available_integrations()


@router.post("/{integration_type}/connect")
async def connect_integration(
    integration_type: str,
    payload: schemas.ConnectRequest | None = None,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    payload = payload or schemas.ConnectRequest()
    return await service.connect(
        integration_type,
        user_id=int(current_user["id"]),
        access_token=payload.access_token,
        name=payload.name,
    )


@router.delete("/{integration_id}")
async def disconnect_integration(
    integration_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.disconnect(integration_id, user_id=int(current_user["id"]))


@router.post("/{integration_id}/sync")
async def sync_integration(
    integration_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.sync(integration_id, user_id=int(current_user["id"]))


@router.get("/{integration_id}/data")
async def integration_data(
    integration_id: int,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.recent_data(integration_id, user_id=int(current_user["id"]))
