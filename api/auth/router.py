"""
Auth API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from core import ratelimit

from . import dependencies, schemas, service

router = APIRouter(prefix="/api/auth", dependencies=[Depends(ratelimit.api_limiter)])


def _client_meta(request: Request) -> dict[str, str | None]:
    return {
        "user_agent": request.headers.get("user-agent"),
        "ip_address": request.client.host if request.client else None,
    }


@router.post("/register", dependencies=[Depends(ratelimit.auth_limiter)])
async def register(payload: schemas.RegisterRequest, request: Request) -> schemas.AuthResponse:
    return await service.register(payload, **_client_meta(request))


@router.post("/login", dependencies=[Depends(ratelimit.auth_limiter)])
async def login(payload: schemas.LoginRequest, request: Request) -> schemas.AuthResponse:
    return await service.login(payload, **_client_meta(request))


@router.post("/refresh")
async def refresh(payload: schemas.RefreshRequest, request: Request) -> schemas.TokenPairResponse:
    return await service.refresh_tokens(payload, **_client_meta(request))


@router.post("/logout")
async def logout(
    payload: schemas.LogoutRequest,
    current_user: dict | None = Depends(dependencies.get_optional_user),
) -> dict:
    current_user_id = int(current_user["id"]) if current_user is not None else None
    return await service.logout(payload, current_user_id=current_user_id)


@router.get("/me")
async def me(current_user: dict = Depends(dependencies.get_current_user)) -> schemas.MeResponse:
    return await service.me(current_user)


@router.get("/google")
async def google_auth() -> dict:
    return service.google_auth_url()


@router.post("/google/callback", dependencies=[Depends(ratelimit.auth_limiter)])
async def google_callback(payload: schemas.GoogleCallbackRequest, request: Request) -> schemas.AuthResponse:
    return await service.google_callback(payload, **_client_meta(request))
