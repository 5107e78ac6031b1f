"""
Pydantic schemas for integration endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ConnectRequest(BaseModel):
    # Required for token-based providers, ignored for Google OAuth types.
    access_token: str | None = Field(default=None, min_length=1, max_length=4096)
    name: str | None = Field(default=None, max_length=100)
