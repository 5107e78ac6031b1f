"""
Gmail and Google Calendar clients (REST, OAuth bearer tokens).
"""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from typing import Any

from . import oauth, repository
from .base import BaseIntegration, IntegrationError


class GoogleIntegration(BaseIntegration):
    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    async def refresh_access_token(self) -> str:
        try:
            grant = await oauth.refresh_access_token(str(self.refresh_token or ""), transport=self._transport)
        except oauth.OAuthError as exc:
            raise IntegrationError(f"{self.type} token refresh failed: {exc}") from exc

        self.access_token = grant.access_token
        integration_id = self.integration.get("id")
        if integration_id is not None:
            await repository.update_tokens(
                int(integration_id),
                access_token=grant.access_token,
                expires_at=grant.expires_at,
            )
        return grant.access_token


def _b64url_decode(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8", errors="replace")


def encode_message(
    *,
    to: str,
    subject: str,
    body: str,
    cc: str | None = None,
    bcc: str | None = None,
) -> str:
    """
    Build a minimal RFC 822 message and return it base64url-encoded without padding.
    """
    lines = [f"To: {to}"]
    if cc:
        lines.append(f"Cc: {cc}")
    if bcc:
        lines.append(f"Bcc: {bcc}")
    lines.extend([f"Subject: {subject}", "", body])
    raw = "\n".join(lines).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def extract_body(payload: dict[str, Any]) -> str:
    data = (payload.get("body") or {}).get("data")
    if data:
        return _b64url_decode(data)

    for part in payload.get("parts") or []:
        part_data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == "text/plain" and part_data:
            return _b64url_decode(part_data)
    return ""


def format_email(message: dict[str, Any]) -> dict[str, Any]:
    payload = message.get("payload") or {}
    headers = {h.get("name"): h.get("value") for h in payload.get("headers") or []}
    return {
        "id": message.get("id"),
        "thread_id": message.get("threadId"),
        "subject": headers.get("Subject"),
        "from": headers.get("From"),
        "to": headers.get("To"),
        "date": headers.get("Date"),
        "snippet": message.get("snippet"),
        "body": extract_body(payload),
    }


class GmailIntegration(GoogleIntegration):
    type = "GMAIL"
    base_url = "https://gmail.googleapis.com/gmail/v1/users/me"
    actions = {
        "send_email": "send_email",
        "search_emails": "search_emails",
        "get_emails": "get_emails",
    }

    async def ping(self) -> None:
        await self.request("GET", "/profile")

    async def get_emails(self, max_results: int = 10, query: str = "is:unread") -> list[dict[str, Any]]:
        listing = await self.request(
            "GET",
            "/messages",
            params={"maxResults": max_results, "q": query},
        )
        emails: list[dict[str, Any]] = []
        for item in ((listing or {}).get("messages") or [])[:max_results]:
            message = await self.request("GET", f"/messages/{item['id']}", params={"format": "full"})
            emails.append(format_email(message or {}))
        return emails

    async def search_emails(self, query: str, max_results: int = 10) -> list[dict[str, Any]]:
        return await self.get_emails(max_results=max_results, query=query)

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> dict[str, Any]:
        raw = encode_message(to=to, subject=subject, body=body, cc=cc, bcc=bcc)
        return await self.request("POST", "/messages/send", json={"raw": raw})

    async def get_recent_data(self) -> list[dict[str, Any]]:
        return await self.get_emails(10)


def format_event(event: dict[str, Any]) -> dict[str, Any]:
    start = event.get("start") or {}
    end = event.get("end") or {}
    return {
        "id": event.get("id"),
        "summary": event.get("summary"),
        "description": event.get("description"),
        "start": start.get("dateTime") or start.get("date"),
        "end": end.get("dateTime") or end.get("date"),
        "location": event.get("location"),
        "attendees": event.get("attendees"),
        "html_link": event.get("htmlLink"),
    }


class CalendarIntegration(GoogleIntegration):
    type = "GOOGLE_CALENDAR"
    base_url = "https://www.googleapis.com/calendar/v3"
    actions = {
        "create_event": "create_event",
        "create_calendar_event": "create_event",
        "update_event": "update_event",
        "delete_event": "delete_event",
        "get_events": "get_events",
    }

    async def ping(self) -> None:
        await self.request("GET", "/users/me/calendarList", params={"maxResults": 1})

    async def get_events(
        self,
        time_min: str | None = None,
        time_max: str | None = None,
        max_results: int = 10,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "timeMin": time_min or datetime.now(timezone.utc).isoformat(),
            "maxResults": max_results,
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        if time_max:
            params["timeMax"] = time_max
        data = await self.request("GET", "/calendars/primary/events", params=params)
        return [format_event(event) for event in (data or {}).get("items") or []]

    async def create_event(
        self,
        summary: str,
        start: str,
        end: str,
        description: str | None = None,
        location: str | None = None,
        attendees: list[str] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "summary": summary,
            "start": {"dateTime": start, "timeZone": "UTC"},
            "end": {"dateTime": end, "timeZone": "UTC"},
        }
        if description:
            body["description"] = description
        if location:
            body["location"] = location
        if attendees:
            body["attendees"] = [{"email": email} for email in attendees]
        return await self.request("POST", "/calendars/primary/events", json=body)

    async def update_event(self, event_id: str, event_data: dict[str, Any]) -> dict[str, Any]:
        return await self.request("PUT", f"/calendars/primary/events/{event_id}", json=event_data)

    async def delete_event(self, event_id: str) -> bool:
        await self.request("DELETE", f"/calendars/primary/events/{event_id}")
        return True

    async def get_recent_data(self) -> list[dict[str, Any]]:
        return await self.get_events()
