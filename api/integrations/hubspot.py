"""
HubSpot CRM v3 client.
"""

from __future__ import annotations

from typing import Any

from .base import BaseIntegration

CONTACT_PROPERTIES = "email,firstname,lastname,company"
DEAL_PROPERTIES = "dealname,amount,dealstage,closedate"


class HubSpotIntegration(BaseIntegration):
    type = "HUBSPOT"
    base_url = "https://api.hubapi.com"
    actions = {
        "create_contact": "create_contact",
        "create_hubspot_contact": "create_contact",
        "create_deal": "create_deal",
        "get_contacts": "get_contacts",
        "get_deals": "get_deals",
    }

    async def ping(self) -> None:
        await self.request("GET", "/crm/v3/objects/contacts", params={"limit": 1})

    async def get_contacts(self, limit: int = 10) -> list[dict[str, Any]]:
        data = await self.request(
            "GET",
            "/crm/v3/objects/contacts",
            params={"limit": limit, "properties": CONTACT_PROPERTIES},
        )
        return (data or {}).get("results") or []

    async def create_contact(
        self,
        email: str,
        firstname: str | None = None,
        lastname: str | None = None,
        company: str | None = None,
    ) -> dict[str, Any]:
        properties = {
            "email": email,
            "firstname": firstname,
            "lastname": lastname,
            "company": company,
        }
        return await self.request(
            "POST",
            "/crm/v3/objects/contacts",
            json={"properties": {k: v for k, v in properties.items() if v is not None}},
        )

    async def get_deals(self, limit: int = 10) -> list[dict[str, Any]]:
        data = await self.request(
            "GET",
            "/crm/v3/objects/deals",
            params={"limit": limit, "properties": DEAL_PROPERTIES},
        )
        return (data or {}).get("results") or []

    async def create_deal(
        self,
        dealname: str,
        amount: float | str | None = None,
        dealstage: str | None = None,
    ) -> dict[str, Any]:
        properties: dict[str, Any] = {"dealname": dealname}
        if amount is not None:
            properties["amount"] = str(amount)
        if dealstage:
            properties["dealstage"] = dealstage
        return await self.request("POST", "/crm/v3/objects/deals", json={"properties": properties})

    async def get_recent_data(self) -> list[dict[str, Any]]:
        return await self.get_contacts()
