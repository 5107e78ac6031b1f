"""
Prompt builders and function definitions for the assistant.
"""

from __future__ import annotations

import json
from typing import Any


def _as_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=True, default=str)


def system_prompt(context: dict[str, Any] | None = None) -> str:
    """
    Describe the assistant's reach across connected tools, plus live context.
    """
    prompt = (
        "You are Dash.AI, an intelligent assistant that helps users manage their work across multiple platforms.\n"
        "You have access to:\n"
        "- Gmail: read, send, and organize emails\n"
        "- Google Calendar: schedule, update, and manage events\n"
        "- Notion: create and update pages and databases\n"
        "- Slack: send messages and manage communications\n"
        "- HubSpot: manage contacts, deals, and sales tasks\n"
        "- Linear: create and update project issues\n\n"
        "Guidelines:\n"
        "- Confirm actions before executing them.\n"
        "- Give clear, actionable suggestions.\n"
        "- Ask for clarification when the request is ambiguous.\n"
        "- Keep a professional tone and respect privacy."
    )
    if context:
        prompt += f"\n\nCurrent context:\n{_as_json(context)}"
    return prompt


def task_analysis_prompt(tasks: list[dict[str, Any]]) -> str:
    return (
        "Analyze these tasks and provide insights:\n"
        f"{_as_json(tasks)}\n\n"
        "Please provide:\n"
        "1. Priority recommendations\n"
        "2. Time estimates\n"
        "3. Dependency analysis\n"
        "4. Optimization suggestions"
    )


def email_summary_prompt(emails: list[dict[str, Any]]) -> str:
    return (
        "Summarize these emails and extract action items:\n"
        f"{_as_json(emails)}\n\n"
        "Please provide:\n"
        "1. Brief summary of each email\n"
        "2. Action items required\n"
        "3. Priority classification\n"
        "4. Suggested responses"
    )


def data_summary_prompt(source: str, items: list[dict[str, Any]], timeframe: str | None = None) -> str:
    scope = f" ({timeframe})" if timeframe else ""
    return (
        f"Summarize this {source} data{scope} and point out anything that needs attention:\n"
        f"{_as_json(items)}"
    )


def analysis_system_prompt() -> str:
    return "You are a concise productivity analyst. Never invent data that is not in the input."


FUNCTIONS: list[dict[str, Any]] = [
    {
        "name": "send_email",
        "description": "Send an email through Gmail",
        "parameters": {
            "type": "object",
            "properties": {
                "to": {"type": "string", "description": "Recipient email address"},
                "subject": {"type": "string", "description": "Email subject"},
                "body": {"type": "string", "description": "Email body content"},
            },
            "required": ["to", "subject", "body"],
        },
    },
    {
        "name": "create_calendar_event",
        "description": "Create a new calendar event",
        "parameters": {
            "type": "object",
            "properties": {
                "summary": {"type": "string", "description": "Event title"},
                "description": {"type": "string", "description": "Event description"},
                "start": {"type": "string", "description": "Start time (ISO format)"},
                "end": {"type": "string", "description": "End time (ISO format)"},
                "attendees": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "List of attendee email addresses",
                },
            },
            "required": ["summary", "start", "end"],
        },
    },
    {
        "name": "create_notion_page",
        "description": "Create a new page in Notion",
        "parameters": {
            "type": "object",
            "properties": {
                "database_id": {"type": "string", "description": "Database ID to create the page in"},
                "title": {"type": "string", "description": "Page title"},
                "properties": {"type": "object", "description": "Page properties"},
            },
            "required": ["database_id", "title"],
        },
    },
    {
        "name": "send_slack_message",
        "description": "Send a message to Slack",
        "parameters": {
            "type": "object",
            "properties": {
                "channel": {"type": "string", "description": "Channel ID or name"},
                "message": {"type": "string", "description": "Message content"},
            },
            "required": ["channel", "message"],
        },
    },
    {
        "name": "create_task",
        "description": "Create a new task",
        "parameters": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Task title"},
                "description": {"type": "string", "description": "Task description"},
                "priority": {
                    "type": "string",
                    "enum": ["LOW", "MEDIUM", "HIGH", "URGENT"],
                    "description": "Task priority",
                },
                "due_date": {"type": "string", "description": "Due date (ISO format)"},
            },
            "required": ["title"],
        },
    },
    {
        "name": "analyze_data",
        "description": "Analyze data from connected integrations",
        "parameters": {
            "type": "object",
            "properties": {
                "source": {
                    "type": "string",
                    "enum": ["email", "calendar", "notion", "slack", "tasks"],
                    "description": "Data source to analyze",
                },
                "timeframe": {"type": "string", "description": "Time frame, e.g. \"last week\""},
                "metrics": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Specific metrics to analyze",
                },
            },
            "required": ["source"],
        },
    },
]
