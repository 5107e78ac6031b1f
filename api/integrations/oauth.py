"""
Google OAuth 2.0 helpers (authorization URL, code exchange, token refresh).

Used endpoints:
- GET  https://accounts.google.com/o/oauth2/v2/auth   (browser redirect)
- POST https://oauth2.googleapis.com/token            (code / refresh grants)
- GET  https://www.googleapis.com/oauth2/v2/userinfo
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx

from core import settings

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

SCOPES = (
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/calendar",
)


class OAuthError(RuntimeError):
    pass


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    refresh_token: str | None
    expires_at: datetime | None


def client_id() -> str:
    return settings.env_str("GOOGLE_CLIENT_ID")


def client_secret() -> str:
    return settings.env_str("GOOGLE_CLIENT_SECRET")


def redirect_uri() -> str:
    return settings.env_str("GOOGLE_REDIRECT_URI", "http://localhost:3001/api/auth/google/callback")


def build_auth_url(state: str | None = None) -> str:
    params = {
        "client_id": client_id(),
        "redirect_uri": redirect_uri(),
        "response_type": "code",
        "scope": " ".join(SCOPES),
        "access_type": "offline",
        "prompt": "consent",
    }
    if state:
        params["state"] = state
    return f"{AUTH_URL}?{urlencode(params)}"


def _json_object(resp: httpx.Response, what: str) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError as exc:
        raise OAuthError(f"Google {what} returned a non-JSON response: {resp.text[:100]}") from exc
    if not isinstance(data, dict):
        raise OAuthError(f"Google {what} returned an unexpected response shape.")
    return data


def _parse_grant(data: dict[str, Any], *, fallback_refresh_token: str | None = None) -> TokenGrant:
    access_token = str(data.get("access_token") or "").strip()
    if not access_token:
        raise OAuthError("Google returned no access token.")

    expires_at = None
    expires_in = data.get("expires_in")
    if isinstance(expires_in, (int, float)):
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=float(expires_in))

    return TokenGrant(
        access_token=access_token,
        refresh_token=data.get("refresh_token") or fallback_refresh_token,
        expires_at=expires_at,
    )


async def _post_token(form: dict[str, str], *, transport: httpx.AsyncBaseTransport | None) -> dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
            resp = await client.post(TOKEN_URL, data=form)
    except httpx.HTTPError as exc:
        raise OAuthError(f"Google token request failed: {exc}") from exc

    if resp.status_code != 200:
        raise OAuthError(f"Google token request failed: {resp.status_code} {resp.text[:300]}")
    return _json_object(resp, "token endpoint")


async def exchange_code(code: str, *, transport: httpx.AsyncBaseTransport | None = None) -> TokenGrant:
    data = await _post_token(
        {
            "code": code,
            "client_id": client_id(),
            "client_secret": client_secret(),
            "redirect_uri": redirect_uri(),
            "grant_type": "authorization_code",
        },
        transport=transport,
    )
    return _parse_grant(data)


async def refresh_access_token(
    refresh_token: str,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> TokenGrant:
    if not refresh_token:
        raise OAuthError("No refresh token stored for this integration.")
    data = await _post_token(
        {
            "refresh_token": refresh_token,
            "client_id": client_id(),
            "client_secret": client_secret(),
            "grant_type": "refresh_token",
        },
        transport=transport,
    )
    return _parse_grant(data, fallback_refresh_token=refresh_token)


async def fetch_userinfo(access_token: str, *, transport: httpx.AsyncBaseTransport | None = None) -> dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
            resp = await client.get(USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
    except httpx.HTTPError as exc:
        raise OAuthError(f"Google userinfo request failed: {exc}") from exc

    if resp.status_code != 200:
        raise OAuthError(f"Google userinfo request failed: {resp.status_code} {resp.text[:300]}")
    return _json_object(resp, "userinfo endpoint")
