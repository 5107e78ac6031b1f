"""
Auth business logic.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, status

from integrations import oauth as google_oauth
from integrations import repository as integration_repository

from . import repository, schemas, security

logger = logging.getLogger(__name__)

# A Google sign-in grants both of these.
GOOGLE_INTEGRATIONS = (
    ("GMAIL", "Gmail"),
    ("GOOGLE_CALENDAR", "Google Calendar"),
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _require_active(user_row: dict) -> dict:
    if not bool(user_row.get("is_active", False)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is inactive.")
    return user_row


def _to_user_response(user_row: dict) -> schemas.UserResponse:
    return schemas.UserResponse(
        id=int(user_row["id"]),
        email=str(user_row["email"]),
        name=user_row.get("name"),
        avatar=user_row.get("avatar"),
        is_active=bool(user_row["is_active"]),
        created_at=user_row["created_at"],
    )


def _refresh_expiry() -> datetime:
    return _utc_now() + timedelta(days=security.refresh_token_expire_days())


async def _issue_token_pair(
    *,
    user_row: dict,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> schemas.TokenPairResponse:
    raw_refresh_token = security.build_refresh_token()
    await repository.insert_refresh_token(
        user_id=int(user_row["id"]),
        token_hash=security.hash_refresh_token(raw_refresh_token),
        expires_at=_refresh_expiry(),
        user_agent=user_agent,
        ip_address=ip_address,
    )
    return schemas.TokenPairResponse(
        access_token=security.build_access_token(user_id=int(user_row["id"]), email=str(user_row["email"])),
        refresh_token=raw_refresh_token,
    )


async def _signed_in(user_row: dict, *, user_agent: str | None, ip_address: str | None) -> schemas.AuthResponse:
    tokens = await _issue_token_pair(user_row=user_row, user_agent=user_agent, ip_address=ip_address)
    return schemas.AuthResponse(user=_to_user_response(user_row), tokens=tokens)


async def register(
    payload: schemas.RegisterRequest,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> schemas.AuthResponse:
    if await repository.get_user_by_email(payload.email) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email is already registered.")

    user_row = await repository.create_user(
        email=payload.email,
        password_hash=security.hash_password(payload.password),
        name=payload.name,
    )
    logger.info("user_registered user_id=%s", user_row["id"])
    return await _signed_in(user_row, user_agent=user_agent, ip_address=ip_address)


async def login(
    payload: schemas.LoginRequest,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> schemas.AuthResponse:
    user_row = await repository.get_user_by_email(payload.email)
    if user_row is None:
        raise _unauthorized("Invalid email or password.")
    _require_active(user_row)

    # Accounts created through Google sign-in have no password.
    if not security.verify_password(payload.password, user_row.get("password_hash")):
        logger.info("login_failed user_id=%s ip=%s", user_row["id"], ip_address)
        raise _unauthorized("Invalid email or password.")

    return await _signed_in(user_row, user_agent=user_agent, ip_address=ip_address)


async def refresh_tokens(
    payload: schemas.RefreshRequest,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> schemas.TokenPairResponse:
    """
    Rotate a refresh token: the presented token is revoked and linked to the
    newly issued one. Unknown, revoked and expired tokens are all 401.
    """
    incoming = (payload.refresh_token or "").strip()
    if not incoming:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="refresh_token is required.")

    old_row = await repository.get_refresh_token_by_hash(security.hash_refresh_token(incoming))
    if old_row is None:
        raise _unauthorized("Invalid refresh token.")
    old_id = int(old_row["id"])

    if old_row.get("revoked_at") is not None:
        logger.warning("refresh_token_reused token_id=%s user_id=%s", old_id, old_row["user_id"])
        raise _unauthorized("Refresh token is revoked.")

    expires_at = old_row.get("expires_at")
    if not isinstance(expires_at, datetime) or expires_at <= _utc_now():
        await repository.revoke_refresh_token_by_id(old_id)
        raise _unauthorized("Refresh token is expired.")

    user_row = await repository.get_user_by_id(int(old_row["user_id"]))
    if user_row is None or not bool(user_row.get("is_active", False)):
        await repository.revoke_refresh_token_by_id(old_id)
        raise _unauthorized("Invalid refresh token owner.")

    raw_refresh_token = security.build_refresh_token()
    rotated = await repository.rotate_refresh_token(
        old_id,
        user_id=int(user_row["id"]),
        token_hash=security.hash_refresh_token(raw_refresh_token),
        expires_at=_refresh_expiry(),
        user_agent=user_agent,
        ip_address=ip_address,
    )
    if rotated is None:
        # Lost a race with another refresh of the same token.
        raise _unauthorized("Refresh token is revoked.")

    return schemas.TokenPairResponse(
        access_token=security.build_access_token(user_id=int(user_row["id"]), email=str(user_row["email"])),
        refresh_token=raw_refresh_token,
    )


async def logout(
    payload: schemas.LogoutRequest,
    *,
    current_user_id: int | None = None,
) -> dict[str, bool]:
    refresh_token = (payload.refresh_token or "").strip()
    if refresh_token:
        await repository.revoke_refresh_token_by_hash(security.hash_refresh_token(refresh_token))
        return {"ok": True}

    # No token: an authenticated caller signs out everywhere.
    if current_user_id is not None:
        revoked = await repository.revoke_all_refresh_tokens_for_user(current_user_id)
        logger.info("logout_all user_id=%s revoked=%s", current_user_id, revoked)
        return {"ok": True}

    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="Provide refresh_token or authenticated user.",
    )


async def get_user_from_access_token(access_token: str) -> dict:
    try:
        payload = security.decode_access_token(access_token)
    except security.AuthSecurityError as exc:
        raise _unauthorized(str(exc)) from exc

    subject = str(payload.get("sub") or "").strip()
    if not subject.isdigit():
        raise _unauthorized("Invalid access token subject.")

    user_row = await repository.get_user_by_id(int(subject))
    if user_row is None:
        raise _unauthorized("User not found.")
    return _require_active(user_row)


async def me(user_row: dict) -> schemas.MeResponse:
    integrations = await repository.list_integration_summaries(int(user_row["id"]))
    return schemas.MeResponse(
        **_to_user_response(user_row).model_dump(),
        integrations=[schemas.IntegrationSummary(**row) for row in integrations],
    )


def google_auth_url() -> dict[str, str]:
    return {"auth_url": google_oauth.build_auth_url()}


async def _google_user(profile: dict, email: str) -> dict:
    user_row = await repository.get_user_by_email(email)
    if user_row is None:
        user_row = await repository.create_user(
            email=email,
            password_hash=None,
            name=profile.get("name"),
            avatar=profile.get("picture"),
        )
        logger.info("google_user_created user_id=%s", user_row["id"])
        return user_row

    _require_active(user_row)
    updated = await repository.update_profile(
        int(user_row["id"]),
        name=profile.get("name"),
        avatar=profile.get("picture"),
    )
    return updated or user_row


async def google_callback(
    payload: schemas.GoogleCallbackRequest,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> schemas.AuthResponse:
    """
    Without `state` this is a Google sign-in: the user is found or created by
    email and both Google integrations are connected. With a state minted by an
    integration connect, only that integration is connected, for the state's user.
    """
    linked = None
    if payload.state:
        try:
            linked = security.decode_oauth_state(payload.state)
        except security.AuthSecurityError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid OAuth state.") from exc

    try:
        grant = await google_oauth.exchange_code(payload.code)
        profile = await google_oauth.fetch_userinfo(grant.access_token)
    except google_oauth.OAuthError as exc:
        logger.warning("google_callback_failed error=%s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Authentication failed") from exc

    email = str(profile.get("email") or "").strip()
    if not email:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Google did not return an email address.",
        )

    if linked is None:
        user_row = await _google_user(profile, email)
        integrations = GOOGLE_INTEGRATIONS
    else:
        user_row = await repository.get_user_by_id(linked["user_id"])
        if user_row is None:
            raise _unauthorized("User not found.")
        _require_active(user_row)
        integrations = tuple(item for item in GOOGLE_INTEGRATIONS if item[0] == linked["type"])

    for integration_type, name in integrations:
        await integration_repository.upsert_integration(
            user_id=int(user_row["id"]),
            integration_type=integration_type,
            name=name,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=grant.expires_at,
        )
    logger.info(
        "google_connected user_id=%s integrations=%s",
        user_row["id"],
        ",".join(item[0] for item in integrations),
    )
    return await _signed_in(user_row, user_agent=user_agent, ip_address=ip_address)
