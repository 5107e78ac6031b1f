"""
Notion REST client.
"""

from __future__ import annotations

from typing import Any

from .base import BaseIntegration

NOTION_VERSION = "2022-06-28"


class NotionIntegration(BaseIntegration):
    type = "NOTION"
    base_url = "https://api.notion.com/v1"
    actions = {
        "create_page": "create_page",
        "create_notion_page": "create_page",
        "update_page": "update_page",
        "get_pages": "get_pages",
        "get_databases": "get_databases",
    }

    def _extra_headers(self) -> dict[str, str]:
        return {"Notion-Version": NOTION_VERSION}

    async def ping(self) -> None:
        await self.request("GET", "/users/me")

    async def get_databases(self) -> list[dict[str, Any]]:
        data = await self.request(
            "POST",
            "/search",
            json={"filter": {"property": "object", "value": "database"}},
        )
        return (data or {}).get("results") or []

    async def get_pages(self, database_id: str | None = None) -> list[dict[str, Any]]:
        if database_id:
            data = await self.request("POST", f"/databases/{database_id}/query", json={})
        else:
            data = await self.request(
                "POST",
                "/search",
                json={"filter": {"property": "object", "value": "page"}},
            )
        return (data or {}).get("results") or []

    async def create_page(
        self,
        database_id: str,
        title: str,
        properties: dict[str, Any] | None = None,
        children: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        page_properties: dict[str, Any] = {
            "Name": {"title": [{"text": {"content": title}}]},
        }
        page_properties.update(properties or {})

        body: dict[str, Any] = {
            "parent": {"database_id": database_id},
            "properties": page_properties,
        }
        if children:
            body["children"] = children
        return await self.request("POST", "/pages", json=body)

    async def update_page(self, page_id: str, properties: dict[str, Any]) -> dict[str, Any]:
        return await self.request("PATCH", f"/pages/{page_id}", json={"properties": properties})

    async def get_recent_data(self) -> list[dict[str, Any]]:
        return await self.get_pages()
