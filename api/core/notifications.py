"""
Per-user websocket fan-out for live notifications (workflow runs etc.).
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class NotificationHub:
    def __init__(self) -> None:
        self._sockets: dict[int, set[WebSocket]] = {}

    def connect(self, user_id: int, websocket: WebSocket) -> None:
        self._sockets.setdefault(user_id, set()).add(websocket)

    def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        sockets = self._sockets.get(user_id)
        if not sockets:
            return None
        sockets.discard(websocket)
        if not sockets:
            self._sockets.pop(user_id, None)

    def connection_count(self, user_id: int) -> int:
        return len(self._sockets.get(user_id, ()))

    async def publish(self, user_id: int, payload: dict[str, Any]) -> int:
        """
        Send `payload` to every socket of `user_id`. Returns the number delivered.
        """
        delivered = 0
        for websocket in list(self._sockets.get(user_id, ())):
            try:
                await websocket.send_json(payload)
                delivered += 1
            except Exception:
                logger.warning("notification_send_failed user_id=%s", user_id)
                self.disconnect(user_id, websocket)
        return delivered


hub = NotificationHub()
