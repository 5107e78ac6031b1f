"""
Integration catalog and client factory.
"""

from __future__ import annotations

import httpx

from .base import BaseIntegration, IntegrationError
from .google import CalendarIntegration, GmailIntegration
from .hubspot import HubSpotIntegration
from .linear import LinearIntegration
from .notion import NotionIntegration
from .slack import SlackIntegration

CLIENTS: dict[str, type[BaseIntegration]] = {
    "GMAIL": GmailIntegration,
    "GOOGLE_CALENDAR": CalendarIntegration,
    "NOTION": NotionIntegration,
    "SLACK": SlackIntegration,
    "HUBSPOT": HubSpotIntegration,
    "LINEAR": LinearIntegration,
}

# `oauth` types connect through the Google consent screen; `token` types
# take an access token the user pasted or obtained elsewhere.
CATALOG: list[dict[str, str]] = [
    {"type": "GMAIL", "name": "Gmail", "auth": "oauth"},
    {"type": "GOOGLE_CALENDAR", "name": "Google Calendar", "auth": "oauth"},
    {"type": "NOTION", "name": "Notion", "auth": "token"},
    {"type": "SLACK", "name": "Slack", "auth": "token"},
    {"type": "HUBSPOT", "name": "HubSpot", "auth": "token"},
    {"type": "LINEAR", "name": "Linear", "auth": "token"},
]

DISPLAY_NAMES = {item["type"]: item["name"] for item in CATALOG}
OAUTH_TYPES = {item["type"] for item in CATALOG if item["auth"] == "oauth"}
TOKEN_TYPES = {item["type"] for item in CATALOG if item["auth"] == "token"}


def normalize_type(raw: str) -> str:
    return (raw or "").strip().upper().replace("-", "_")


def build_client(integration: dict, *, transport: httpx.AsyncBaseTransport | None = None) -> BaseIntegration:
    """
    Build a provider client from an integration row with plaintext tokens.
    """
    client_cls = CLIENTS.get(normalize_type(str(integration.get("type") or "")))
    if client_cls is None:
        raise IntegrationError(f"Unsupported integration type: {integration.get('type')}")
    return client_cls(integration, transport=transport)
