"""
Auth security helpers: password hashing, signed tokens and refresh-token hashing.

Two JWT kinds share one secret and are told apart by the `type` claim:
- `access`: bearer token for API calls and the notifications websocket
- `oauth_state`: short-lived `state` for Google integration connects
"""

from __future__ import annotations

import hashlib
import secrets
import time
from typing import Any

import bcrypt
import jwt

from core import settings

ACCESS_TOKEN = "access"
OAUTH_STATE = "oauth_state"


class AuthSecurityError(RuntimeError):
    pass


def jwt_secret() -> str:
    # Set JWT_SECRET in production; the default only suits local development.
    return settings.env_str("JWT_SECRET", "dev-change-this-secret")


def jwt_algorithm() -> str:
    return settings.env_str("JWT_ALG", "HS256")


def access_token_expire_minutes() -> int:
    return settings.env_int("ACCESS_TOKEN_EXPIRE_MIN", 15)


def refresh_token_expire_days() -> int:
    return settings.env_int("REFRESH_TOKEN_EXPIRE_DAYS", 30)


def oauth_state_expire_minutes() -> int:
    return settings.env_int("OAUTH_STATE_EXPIRE_MIN", 10)


def now_epoch_s() -> int:
    return int(time.time())


def hash_password(plain_password: str) -> str:
    password = (plain_password or "").encode("utf-8")
    if not password:
        raise AuthSecurityError("Password is empty.")
    return bcrypt.hashpw(password, bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    # Google-only accounts have no password hash.
    password = (plain_password or "").encode("utf-8")
    hashed = (password_hash or "").encode("utf-8")
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password, hashed)
    except ValueError:
        return False


def _sign(claims: dict[str, Any], *, token_type: str, ttl_s: int) -> str:
    issued_at = now_epoch_s()
    payload = {**claims, "type": token_type, "iat": issued_at, "exp": issued_at + ttl_s}
    return jwt.encode(payload, jwt_secret(), algorithm=jwt_algorithm())


def _verify(token: str, *, token_type: str, label: str) -> dict[str, Any]:
    raw = (token or "").strip()
    if not raw:
        raise AuthSecurityError(f"{label} is empty.")

    try:
        payload = jwt.decode(raw, jwt_secret(), algorithms=[jwt_algorithm()])
    except jwt.ExpiredSignatureError as exc:
        raise AuthSecurityError(f"{label} is expired.") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthSecurityError(f"Invalid {label.lower()}.") from exc

    if str(payload.get("type") or "").strip().lower() != token_type:
        raise AuthSecurityError(f"Token is not an {label.lower()}.")
    return payload


def build_access_token(*, user_id: int, email: str) -> str:
    return _sign(
        {"sub": str(user_id), "email": email},
        token_type=ACCESS_TOKEN,
        ttl_s=access_token_expire_minutes() * 60,
    )


def decode_access_token(token: str) -> dict[str, Any]:
    return _verify(token, token_type=ACCESS_TOKEN, label="Access token")


def build_oauth_state(*, user_id: int, integration_type: str) -> str:
    return _sign(
        {"sub": str(user_id), "integration": integration_type, "nonce": secrets.token_urlsafe(8)},
        token_type=OAUTH_STATE,
        ttl_s=oauth_state_expire_minutes() * 60,
    )


def decode_oauth_state(state: str) -> dict[str, Any]:
    """
    Returns `{"user_id": int, "type": str}` for a state minted by `build_oauth_state`.
    """
    payload = _verify(state, token_type=OAUTH_STATE, label="OAuth state")
    subject = str(payload.get("sub") or "").strip()
    integration_type = str(payload.get("integration") or "").strip()
    if not subject.isdigit() or not integration_type:
        raise AuthSecurityError("Invalid oauth state.")
    return {"user_id": int(subject), "type": integration_type}


def build_refresh_token() -> str:
    return secrets.token_urlsafe(48)


def hash_refresh_token(raw_refresh_token: str) -> str:
    # Only the digest is stored; the raw token lives with the client.
    token = (raw_refresh_token or "").encode("utf-8")
    if not token:
        raise AuthSecurityError("Refresh token is empty.")
    return hashlib.sha256(token).hexdigest()
