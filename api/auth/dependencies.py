"""
Auth dependencies for protected FastAPI routes.

`get_current_user` is what routers depend on; tests override it through
`app.dependency_overrides`.
"""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status

from . import service


def _bearer_token(authorization: str | None, *, required: bool) -> str | None:
    raw = (authorization or "").strip()
    if not raw:
        if not required:
            return None
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization header.")

    scheme, _, token = raw.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization must be: Bearer <token>.",
        )
    return token.strip()


async def get_bearer_token(authorization: str | None = Header(default=None)) -> str:
    return _bearer_token(authorization, required=True) or ""


async def get_optional_bearer_token(authorization: str | None = Header(default=None)) -> str | None:
    return _bearer_token(authorization, required=False)


async def get_current_user(access_token: str = Depends(get_bearer_token)) -> dict:
    return await service.get_user_from_access_token(access_token)


async def get_optional_user(access_token: str | None = Depends(get_optional_bearer_token)) -> dict | None:
    # Logout works with or without a signed-in caller.
    if access_token is None:
        return None
    return await service.get_user_from_access_token(access_token)
