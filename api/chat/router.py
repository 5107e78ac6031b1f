"""
Chat API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from auth import dependencies as auth_dependencies
from core import ratelimit

from . import schemas, service

router = APIRouter(prefix="/api/chat", dependencies=[Depends(ratelimit.api_limiter)])


@router.post("/message", dependencies=[Depends(ratelimit.chat_limiter)])
async def send_message(
    payload: schemas.SendMessageRequest,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.send_message(
        payload.message,
        user_id=int(current_user["id"]),
        session_id=payload.session_id,
    )


@router.get("/sessions")
async def list_sessions(
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.list_sessions(user_id=int(current_user["id"]))


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.get_session(session_id, user_id=int(current_user["id"]))


@router.delete("/sessions/{session_id}")
async def delete_session(
    session_id: str,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.delete_session(session_id, user_id=int(current_user["id"]))
