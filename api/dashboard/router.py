"""
Dashboard API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from auth import dependencies as auth_dependencies
from core import ratelimit

from . import service

router = APIRouter(prefix="/api/dashboard", dependencies=[Depends(ratelimit.api_limiter)])


@router.get("")
async def get_dashboard(
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.get_dashboard(user_id=int(current_user["id"]))


@router.get("/analytics")
async def get_analytics(
    timeframe: str = Query(default="7d", max_length=10),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.get_analytics(user_id=int(current_user["id"]), timeframe=timeframe)
