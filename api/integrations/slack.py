"""
Slack Web API client.

Slack answers HTTP 200 for most failures and reports them as `{"ok": false, "error": ...}`.
"""

from __future__ import annotations

from typing import Any

from .base import BaseIntegration, IntegrationError


class SlackIntegration(BaseIntegration):
    type = "SLACK"
    base_url = "https://slack.com/api"
    actions = {
        "send_message": "send_message",
        "send_slack_message": "send_message",
        "get_channels": "get_channels",
        "get_messages": "get_messages",
    }

    async def request(self, method: str, path: str, *, params=None, json=None) -> Any:
        data = await super().request(method, path, params=params, json=json)
        if not isinstance(data, dict) or not data.get("ok", False):
            error = data.get("error") if isinstance(data, dict) else "invalid_response"
            raise IntegrationError(f"SLACK request failed: {error}")
        return data

    async def ping(self) -> None:
        await self.request("POST", "/auth.test")

    async def get_channels(self) -> list[dict[str, Any]]:
        data = await self.request(
            "GET",
            "/conversations.list",
            params={"types": "public_channel,private_channel"},
        )
        return data.get("channels") or []

    async def send_message(
        self,
        channel: str,
        text: str,
        blocks: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"channel": channel, "text": text}
        if blocks:
            body["blocks"] = blocks
        return await self.request("POST", "/chat.postMessage", json=body)

    async def get_messages(self, channel: str, limit: int = 10) -> list[dict[str, Any]]:
        data = await self.request(
            "GET",
            "/conversations.history",
            params={"channel": channel, "limit": limit},
        )
        return data.get("messages") or []

    async def get_user(self, user_id: str) -> dict[str, Any]:
        data = await self.request("GET", "/users.info", params={"user": user_id})
        return data.get("user") or {}

    async def get_recent_data(self) -> list[dict[str, Any]]:
        return await self.get_channels()
