"""
Chat persistence helpers (sessions and message history).
"""

from __future__ import annotations

from uuid import uuid4

from core import db

SESSION_COLUMNS = "id, session_key, user_id, title, created_at, updated_at"
MESSAGE_COLUMNS = "id, session_id, role, content, metadata, created_at"


async def get_session_by_key(session_key: str, *, user_id: int) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {SESSION_COLUMNS}
        FROM chat_sessions
        WHERE session_key = $1
          AND user_id = $2
        """,
        session_key,
        user_id,
    )


async def create_session(*, user_id: int, title: str) -> dict:
    row = await db.fetch_one(
        f"""
        INSERT INTO chat_sessions (session_key, user_id, title)
        VALUES ($1, $2, $3)
        RETURNING {SESSION_COLUMNS}
        """,
        str(uuid4()),
        user_id,
        title,
    )
    if row is None:
        raise RuntimeError("Failed to create chat session.")
    return row


async def insert_message(
    session_id: int,
    *,
    role: str,
    content: str,
    metadata: dict | None = None,
) -> dict:
    row = await db.fetch_one(
        f"""
        INSERT INTO chat_messages (session_id, role, content, metadata)
        VALUES ($1, $2, $3, $4)
        RETURNING {MESSAGE_COLUMNS}
        """,
        session_id,
        role,
        content,
        metadata,
    )
    await db.execute("UPDATE chat_sessions SET updated_at = now() WHERE id = $1", session_id)
    if row is None:
        raise RuntimeError("Failed to insert message.")
    return row


async def list_messages(session_id: int) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT {MESSAGE_COLUMNS}
        FROM chat_messages
        WHERE session_id = $1
        ORDER BY created_at ASC, id ASC
        """,
        session_id,
    )


async def list_sessions(user_id: int) -> list[dict]:
    return await db.fetch_all(
        """
        SELECT
          s.id,
          s.session_key,
          s.title,
          s.created_at,
          s.updated_at,
          (
            SELECT m.content
            FROM chat_messages m
            WHERE m.session_id = s.id
            ORDER BY m.created_at DESC, m.id DESC
            LIMIT 1
          ) AS last_message,
          (
            SELECT count(*)::int
            FROM chat_messages m
            WHERE m.session_id = s.id
          ) AS message_count
        FROM chat_sessions s
        WHERE s.user_id = $1
        ORDER BY s.updated_at DESC, s.id DESC
        """,
        user_id,
    )


async def delete_session(session_key: str, *, user_id: int) -> bool:
    deleted = await db.execute(
        "DELETE FROM chat_sessions WHERE session_key = $1 AND user_id = $2",
        session_key,
        user_id,
    )
    return deleted > 0


async def trim_messages(keep_per_session: int) -> int:
    """
    Delete messages beyond the newest `keep_per_session` in every session.
    """
    return await db.execute(
        """
        DELETE FROM chat_messages
        WHERE id IN (
          SELECT id
          FROM (
            SELECT
              id,
              row_number() OVER (PARTITION BY session_id ORDER BY created_at DESC, id DESC) AS rn
            FROM chat_messages
          ) ranked
          WHERE ranked.rn > $1
        )
        """,
        keep_per_session,
    )
