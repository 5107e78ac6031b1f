"""
Integration business logic.

Scope:
- connect/disconnect provider accounts (tokens encrypted at rest)
- health sync and recent-data fetch through provider clients
- lookup helpers used by chat, workflows, dashboard and jobs
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, status

from auth import security
from core import crypto

from . import clients, oauth, repository
from .base import BaseIntegration, IntegrationError

logger = logging.getLogger(__name__)


def _public(row: dict) -> dict[str, Any]:
    return {
        "id": int(row["id"]),
        "type": str(row["type"]),
        "name": str(row["name"]),
        "is_connected": bool(row["is_connected"]),
        "last_sync": row.get("last_sync"),
        "created_at": row.get("created_at"),
    }


def client_for(row: dict) -> BaseIntegration:
    """
    Decrypt a stored integration row and build its provider client.
    """
    try:
        decoded = repository.decrypt_credentials(row)
    except crypto.CryptoError as exc:
        raise IntegrationError(f"Stored credentials for integration {row.get('id')} are unreadable.") from exc
    return clients.build_client(decoded)


async def connected_client(user_id: int, integration_type: str) -> BaseIntegration | None:
    row = await repository.get_connected_by_type(user_id, integration_type)
    if row is None:
        return None
    return client_for(row)


async def list_integrations(*, user_id: int) -> dict[str, Any]:
    rows = await repository.list_integrations(user_id)
    integrations = [_public(row) for row in rows]
    return {"integrations": integrations, "count": len(integrations)}


def available_integrations() -> dict[str, Any]:
    return {"integrations": clients.CATALOG, "count": len(clients.CATALOG)}


async def connect(raw_type: str, *, user_id: int, access_token: str | None, name: str | None = None) -> dict[str, Any]:
    integration_type = clients.normalize_type(raw_type)

    if integration_type in clients.OAUTH_TYPES:
        return {
            "type": integration_type,
            "auth_url": oauth.build_auth_url(
                state=security.build_oauth_state(user_id=user_id, integration_type=integration_type)
            ),
        }

    if integration_type not in clients.TOKEN_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported integration type")

    token = (access_token or "").strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="access_token is required.")

    client = clients.build_client({"type": integration_type, "access_token": token})
    if not await client.test_connection():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Could not connect to {clients.DISPLAY_NAMES[integration_type]} with this token.",
        )

    row = await repository.upsert_integration(
        user_id=user_id,
        integration_type=integration_type,
        name=(name or "").strip() or clients.DISPLAY_NAMES[integration_type],
        access_token=token,
    )
    logger.info("integration_connected user_id=%s type=%s id=%s", user_id, integration_type, row["id"])
    return _public(row)


async def disconnect(integration_id: int, *, user_id: int) -> dict[str, Any]:
    deleted = await repository.delete_integration(integration_id, user_id=user_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not found")
    logger.info("integration_disconnected user_id=%s id=%s", user_id, integration_id)
    return {"ok": True, "integration_id": integration_id}


async def _get_owned(integration_id: int, *, user_id: int) -> dict:
    row = await repository.get_integration(integration_id, user_id=user_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not found")
    return row


async def sync(integration_id: int, *, user_id: int) -> dict[str, Any]:
    row = await _get_owned(integration_id, user_id=user_id)

    try:
        is_connected = await client_for(row).test_connection()
    except IntegrationError as exc:
        logger.warning("integration_sync_failed id=%s error=%s", integration_id, exc)
        is_connected = False

    updated = await repository.mark_synced(integration_id, is_connected=is_connected)
    await repository.insert_log(
        integration_id,
        action="sync",
        status="success" if is_connected else "failed",
    )
    return {
        "ok": is_connected,
        "is_connected": is_connected,
        "last_sync": (updated or {}).get("last_sync"),
    }


async def recent_data(integration_id: int, *, user_id: int) -> dict[str, Any]:
    row = await _get_owned(integration_id, user_id=user_id)

    try:
        data = await client_for(row).get_recent_data()
    except IntegrationError as exc:
        logger.warning("integration_data_failed id=%s error=%s", integration_id, exc)
        await repository.insert_log(integration_id, action="get_recent_data", status="failed", message=str(exc))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to get integration data",
        ) from exc

    return {"integration_id": integration_id, "type": row["type"], "data": data, "count": len(data)}


async def run_action(row: dict, action: str, params: dict[str, Any]) -> Any:
    """
    Execute a provider action and record the outcome in integration_logs.
    """
    try:
        result = await client_for(row).execute_action(action, params)
    except IntegrationError as exc:
        await repository.insert_log(int(row["id"]), action=action, status="failed", message=str(exc))
        raise
    await repository.insert_log(int(row["id"]), action=action, status="success")
    return result
