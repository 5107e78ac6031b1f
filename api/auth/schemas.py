"""
Auth API schemas (request/response models).
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from core.validators import validate_email


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=8, max_length=128)
    name: str | None = Field(default=None, max_length=200)

    @field_validator("email")
    @classmethod
    def email_is_valid(cls, value: str) -> str:
        if not validate_email(value):
            raise ValueError("invalid email address")
        return value.strip()


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=20)


class LogoutRequest(BaseModel):
    # If omitted, service revokes all tokens of the authenticated user.
    refresh_token: str | None = Field(default=None, min_length=20)


class GoogleCallbackRequest(BaseModel):
    code: str = Field(..., min_length=1)
    # Present when the flow started from an integration connect.
    state: str | None = Field(default=None, max_length=2048)


class UserResponse(BaseModel):
    id: int
    email: str
    name: str | None = None
    avatar: str | None = None
    is_active: bool
    created_at: datetime


class IntegrationSummary(BaseModel):
    id: int
    type: str
    name: str
    is_connected: bool
    created_at: datetime


class MeResponse(UserResponse):
    integrations: list[IntegrationSummary] = Field(default_factory=list)


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthResponse(BaseModel):
    user: UserResponse
    tokens: TokenPairResponse
