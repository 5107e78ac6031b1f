"""
Auth persistence helpers.
"""

from __future__ import annotations

from datetime import datetime, timezone

from core import db

USER_COLUMNS = "id, email, password_hash, name, avatar, is_active, created_at, updated_at"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


async def create_user(
    *,
    email: str,
    password_hash: str | None,
    name: str | None = None,
    avatar: str | None = None,
    is_active: bool = True,
) -> dict:
    row = await db.fetch_one(
        f"""
        INSERT INTO users (email, password_hash, name, avatar, is_active)
        VALUES ($1, $2, $3, $4, $5)
        RETURNING {USER_COLUMNS}
        """,
        normalize_email(email),
        password_hash,
        name,
        avatar,
        is_active,
    )
    if row is None:
        raise RuntimeError("Failed to create user.")
    return row


async def update_profile(user_id: int, *, name: str | None, avatar: str | None) -> dict | None:
    return await db.fetch_one(
        f"""
        UPDATE users
        SET name = COALESCE($2, name),
            avatar = COALESCE($3, avatar),
            updated_at = now()
        WHERE id = $1
        RETURNING {USER_COLUMNS}
        """,
        user_id,
        name,
        avatar,
    )


async def get_user_by_email(email: str) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {USER_COLUMNS}
        FROM users
        WHERE lower(email) = lower($1)
        """,
        normalize_email(email),
    )


async def get_user_by_id(user_id: int) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {USER_COLUMNS}
        FROM users
        WHERE id = $1
        """,
        user_id,
    )


async def list_integration_summaries(user_id: int) -> list[dict]:
    return await db.fetch_all(
        """
        SELECT id, type, name, is_connected, created_at
        FROM integrations
        WHERE user_id = $1
        ORDER BY created_at ASC, id ASC
        """,
        user_id,
    )


REFRESH_COLUMNS = (
    "id, user_id, token_hash, expires_at, revoked_at, "
    "replaced_by_token_id, created_at, last_used_at, user_agent, ip_address"
)

_INSERT_REFRESH_SQL = f"""
    INSERT INTO refresh_tokens (user_id, token_hash, expires_at, user_agent, ip_address)
    VALUES ($1, $2, $3, $4, $5)
    RETURNING {REFRESH_COLUMNS}
"""


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


async def insert_refresh_token(
    *,
    user_id: int,
    token_hash: str,
    expires_at: datetime,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> dict:
    row = await db.fetch_one(
        _INSERT_REFRESH_SQL,
        user_id,
        token_hash,
        _aware(expires_at),
        user_agent,
        ip_address,
    )
    if row is None:
        raise RuntimeError("Failed to insert refresh token.")
    return row


async def rotate_refresh_token(
    old_token_id: int,
    *,
    user_id: int,
    token_hash: str,
    expires_at: datetime,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> dict | None:
    """
    Revoke `old_token_id` and insert its replacement in one transaction.

    Returns None when the old token was already revoked, so a refresh token
    that is replayed concurrently only rotates once.
    """
    async with db.transaction() as conn:
        revoked = await conn.fetchval(
            """
            UPDATE refresh_tokens
            SET revoked_at = now(),
                last_used_at = now()
            WHERE id = $1
              AND revoked_at IS NULL
            RETURNING id
            """,
            old_token_id,
        )
        if revoked is None:
            return None

        row = await conn.fetchrow(
            _INSERT_REFRESH_SQL,
            user_id,
            token_hash,
            _aware(expires_at),
            user_agent,
            ip_address,
        )
        if row is None:
            raise RuntimeError("Failed to insert refresh token.")
        await conn.execute(
            "UPDATE refresh_tokens SET replaced_by_token_id = $2 WHERE id = $1",
            old_token_id,
            int(row["id"]),
        )
    return dict(row)


async def get_refresh_token_by_hash(token_hash: str) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {REFRESH_COLUMNS}
        FROM refresh_tokens
        WHERE token_hash = $1
        """,
        token_hash,
    )


async def revoke_refresh_token_by_hash(token_hash: str) -> bool:
    revoked = await db.execute(
        """
        UPDATE refresh_tokens
        SET revoked_at = now()
        WHERE token_hash = $1
          AND revoked_at IS NULL
        """,
        token_hash,
    )
    return revoked > 0


async def revoke_refresh_token_by_id(token_id: int) -> bool:
    revoked = await db.execute(
        "UPDATE refresh_tokens SET revoked_at = now() WHERE id = $1 AND revoked_at IS NULL",
        token_id,
    )
    return revoked > 0


async def revoke_all_refresh_tokens_for_user(user_id: int) -> int:
    return await db.execute(
        """
        UPDATE refresh_tokens
        SET revoked_at = now()
        WHERE user_id = $1
          AND revoked_at IS NULL
        """,
        user_id,
    )
