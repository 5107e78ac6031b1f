"""
Integration persistence (raw SQL).

Access/refresh tokens are encrypted here on the way in; callers that need
plaintext go through `decrypt_credentials`.
"""

from __future__ import annotations

from datetime import datetime

from core import crypto, db

COLUMNS = (
    "id, user_id, type, name, access_token, refresh_token, expires_at, "
    "is_connected, last_sync, metadata, created_at, updated_at"
)
PUBLIC_COLUMNS = "id, type, name, is_connected, last_sync, created_at"


def decrypt_credentials(row: dict) -> dict:
    """
    Return a copy of an integration row with plaintext tokens.
    """
    decoded = dict(row)
    decoded["access_token"] = crypto.decrypt(row.get("access_token"))
    decoded["refresh_token"] = crypto.decrypt(row.get("refresh_token"))
    return decoded


async def upsert_integration(
    *,
    user_id: int,
    integration_type: str,
    name: str,
    access_token: str,
    refresh_token: str | None = None,
    expires_at: datetime | None = None,
    metadata: dict | None = None,
) -> dict:
    row = await db.fetch_one(
        f"""
        INSERT INTO integrations
            (user_id, type, name, access_token, refresh_token, expires_at, is_connected, metadata)
        VALUES ($1, $2, $3, $4, $5, $6, true, $7)
        ON CONFLICT (user_id, type) DO UPDATE
        SET access_token = EXCLUDED.access_token,
            refresh_token = COALESCE(EXCLUDED.refresh_token, integrations.refresh_token),
            expires_at = EXCLUDED.expires_at,
            is_connected = true,
            metadata = EXCLUDED.metadata,
            updated_at = now()
        RETURNING {COLUMNS}
        """,
        user_id,
        integration_type,
        name,
        crypto.encrypt(access_token),
        crypto.encrypt(refresh_token),
        expires_at,
        metadata or {},
    )
    if row is None:
        raise RuntimeError("Failed to upsert integration.")
    return row


async def update_tokens(integration_id: int, *, access_token: str, expires_at: datetime | None) -> None:
    await db.execute(
        """
        UPDATE integrations
        SET access_token = $2,
            expires_at = $3,
            updated_at = now()
        WHERE id = $1
        """,
        integration_id,
        crypto.encrypt(access_token),
        expires_at,
    )


async def list_integrations(user_id: int) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT {PUBLIC_COLUMNS}
        FROM integrations
        WHERE user_id = $1
        ORDER BY created_at ASC, id ASC
        """,
        user_id,
    )


async def list_connected(user_id: int) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT {COLUMNS}
        FROM integrations
        WHERE user_id = $1
          AND is_connected = true
        ORDER BY created_at ASC, id ASC
        """,
        user_id,
    )


async def list_connected_by_type(integration_type: str) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT {COLUMNS}
        FROM integrations
        WHERE type = $1
          AND is_connected = true
        ORDER BY id ASC
        """,
        integration_type,
    )


async def get_integration(integration_id: int, *, user_id: int) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {COLUMNS}
        FROM integrations
        WHERE id = $1
          AND user_id = $2
        """,
        integration_id,
        user_id,
    )


async def get_connected_by_type(user_id: int, integration_type: str) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {COLUMNS}
        FROM integrations
        WHERE user_id = $1
          AND type = $2
          AND is_connected = true
        """,
        user_id,
        integration_type,
    )


async def user_owns_integrations(user_id: int, integration_ids: list[int]) -> bool:
    if not integration_ids:
        return True
    found = await db.fetch_val(
        """
        SELECT count(*)
        FROM integrations
        WHERE user_id = $1
          AND id = ANY($2::bigint[])
        """,
        user_id,
        sorted(set(integration_ids)),
    )
    return int(found or 0) == len(set(integration_ids))


async def delete_integration(integration_id: int, *, user_id: int) -> bool:
    deleted = await db.execute(
        "DELETE FROM integrations WHERE id = $1 AND user_id = $2",
        integration_id,
        user_id,
    )
    return deleted > 0


async def mark_synced(integration_id: int, *, is_connected: bool) -> dict | None:
    return await db.fetch_one(
        f"""
        UPDATE integrations
        SET is_connected = $2,
            last_sync = now(),
            updated_at = now()
        WHERE id = $1
        RETURNING {PUBLIC_COLUMNS}
        """,
        integration_id,
        is_connected,
    )


async def insert_log(integration_id: int, *, action: str, status: str, message: str | None = None) -> None:
    await db.execute(
        """
        INSERT INTO integration_logs (integration_id, action, status, message)
        VALUES ($1, $2, $3, $4)
        """,
        integration_id,
        action,
        status,
        (message or "")[:1000] or None,
    )


async def delete_logs_before(cutoff: datetime) -> int:
    return await db.execute("DELETE FROM integration_logs WHERE created_at < $1", cutoff)
