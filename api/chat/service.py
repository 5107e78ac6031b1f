"""
Chat orchestration.

Flow:
1) Load (or create) the chat session
2) Save the user message
3) Build live context from tasks and connected integrations
4) Ask OpenAI for a reply, offering the assistant functions
5) Run the requested function (if any) and append its outcome
6) Save the assistant message
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from fastapi import HTTPException, status

from core import openai, settings
from integrations import clients
from integrations import repository as integrations_repository
from integrations import service as integrations_service
from integrations.base import IntegrationError
from tasks import repository as tasks_repository
from tasks import service as tasks_service

from . import prompts, repository

logger = logging.getLogger(__name__)

TITLE_CHARS = 50

# Function name -> (integration type, action, accepted arguments).
PROVIDER_FUNCTIONS: dict[str, tuple[str, str, tuple[str, ...]]] = {
    "send_email": ("GMAIL", "send_email", ("to", "subject", "body", "cc", "bcc")),
    "create_calendar_event": (
        "GOOGLE_CALENDAR",
        "create_calendar_event",
        ("summary", "start", "end", "description", "location", "attendees"),
    ),
    "create_notion_page": ("NOTION", "create_notion_page", ("database_id", "title", "properties")),
    "send_slack_message": ("SLACK", "send_slack_message", ("channel", "text")),
}

ANALYSIS_SOURCES = {
    "email": "GMAIL",
    "calendar": "GOOGLE_CALENDAR",
    "notion": "NOTION",
    "slack": "SLACK",
}


def history_messages_limit() -> int:
    return settings.env_int("CHAT_HISTORY_MESSAGES", 20)


def session_title(message: str) -> str:
    text = message.strip()
    return text[:TITLE_CHARS] + ("..." if len(text) > TITLE_CHARS else "")


def _not_connected(integration_type: str) -> str:
    name = clients.DISPLAY_NAMES[integration_type]
    return f"{name} integration not connected. Please connect {name} first."


def _pick(args: dict[str, Any], keys: tuple[str, ...]) -> dict[str, Any]:
    return {key: args[key] for key in keys if args.get(key) is not None}


def _build_history_messages(rows: list[dict[str, Any]]) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    for row in rows[-history_messages_limit():]:
        role = str(row.get("role") or "").lower()
        content = str(row.get("content") or "").strip()
        if role not in {"user", "assistant", "system"} or not content:
            continue
        messages.append({"role": role, "content": content})
    return messages


async def build_context(user_id: int) -> dict[str, Any]:
    """
    Live context for the system prompt. Provider failures are logged and skipped.
    """
    connected = await integrations_repository.list_connected(user_id)
    open_tasks = await tasks_repository.list_open_tasks(user_id, limit=5)

    context: dict[str, Any] = {
        "integrations": [str(row["type"]) for row in connected],
        "recent_tasks": [{"title": t["title"], "priority": t["priority"]} for t in open_tasks],
        "upcoming_events": [],
        "unread_emails": 0,
    }

    for row in connected:
        if row["type"] not in {"GMAIL", "GOOGLE_CALENDAR"}:
            continue
        try:
            data = await integrations_service.client_for(row).get_recent_data()
        except IntegrationError as exc:
            logger.warning("chat_context_failed user_id=%s type=%s error=%s", user_id, row["type"], exc)
            continue

        if row["type"] == "GMAIL":
            context["unread_emails"] = len(data)
        else:
            context["upcoming_events"] = [
                {"title": event.get("summary"), "start": event.get("start")} for event in data[:3]
            ]
    return context


async def _analyze(args: dict[str, Any], user_id: int) -> str:
    source = str(args.get("source") or "").strip().lower()
    timeframe = args.get("timeframe")

    if source == "tasks":
        rows = await tasks_repository.list_tasks(user_id=user_id, limit=50)
        items = [
            {"title": r["title"], "status": r["status"], "priority": r["priority"], "due_date": r["due_date"]}
            for r in rows
        ]
        user_prompt = prompts.task_analysis_prompt(items)
    elif source in ANALYSIS_SOURCES:
        integration_type = ANALYSIS_SOURCES[source]
        client = await integrations_service.connected_client(user_id, integration_type)
        if client is None:
            return _not_connected(integration_type)
        items = await client.get_recent_data()
        if source == "email":
            user_prompt = prompts.email_summary_prompt(items)
        else:
            user_prompt = prompts.data_summary_prompt(source, items, timeframe)
    else:
        return f"Cannot analyze data from source: {source or 'unknown'}"

    return await openai.complete_text(system_prompt=prompts.analysis_system_prompt(), user_prompt=user_prompt)


async def _create_task(args: dict[str, Any], user_id: int) -> str:
    due_date = args.get("due_date")
    task = await tasks_service.create_task(
        user_id=user_id,
        title=str(args.get("title") or ""),
        description=args.get("description"),
        priority=args.get("priority"),
        due_date=datetime.fromisoformat(due_date) if isinstance(due_date, str) and due_date else None,
    )
    return f'Task "{task["title"]}" created successfully'


async def _run_provider_function(name: str, args: dict[str, Any], user_id: int) -> str:
    integration_type, action, keys = PROVIDER_FUNCTIONS[name]
    row = await integrations_repository.get_connected_by_type(user_id, integration_type)
    if row is None:
        return _not_connected(integration_type)

    if name == "send_slack_message" and "text" not in args:
        args = {**args, "text": args.get("message")}
    await integrations_service.run_action(row, action, _pick(args, keys))

    if name == "send_email":
        return f"Email sent successfully to {args.get('to')}"
    if name == "create_calendar_event":
        return f'Calendar event "{args.get("summary")}" created successfully'
    if name == "create_notion_page":
        return f'Notion page "{args.get("title")}" created successfully'
    return f"Slack message sent to {args.get('channel')}"


async def execute_function_call(call: openai.FunctionCall, *, user_id: int) -> str:
    """
    Run a model-requested function and describe the outcome in plain text.
    """
    try:
        args = json.loads(call.arguments or "{}")
        if not isinstance(args, dict):
            raise ValueError("arguments must be a JSON object")

        if call.name in PROVIDER_FUNCTIONS:
            return await _run_provider_function(call.name, args, user_id)
        if call.name == "create_task":
            return await _create_task(args, user_id)
        if call.name == "analyze_data":
            return await _analyze(args, user_id)
    except (IntegrationError, openai.OpenAIError, ValueError) as exc:
        logger.warning("chat_function_failed user_id=%s name=%s error=%s", user_id, call.name, exc)
        return f"Failed to execute {call.name}: {exc}"
    except HTTPException as exc:
        return f"Failed to execute {call.name}: {exc.detail}"

    return f"Function {call.name} not implemented yet."


async def send_message(message: str, *, user_id: int, session_id: str | None = None) -> dict[str, Any]:
    session = None
    if session_id:
        session = await repository.get_session_by_key(session_id, user_id=user_id)
    if session is None:
        session = await repository.create_session(user_id=user_id, title=session_title(message))

    history_rows = await repository.list_messages(int(session["id"]))
    await repository.insert_message(int(session["id"]), role="USER", content=message)

    context = await build_context(user_id)
    messages = [
        {"role": "system", "content": prompts.system_prompt(context)},
        *_build_history_messages(history_rows),
        {"role": "user", "content": message},
    ]

    try:
        reply = await openai.chat_completion(messages=messages, functions=prompts.FUNCTIONS)
    except openai.OpenAIError as exc:
        logger.error("chat_completion_failed user_id=%s session=%s error=%s", user_id, session["session_key"], exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to process message") from exc

    content = reply.content
    metadata: dict[str, Any] | None = None
    if reply.function_call is not None:
        outcome = await execute_function_call(reply.function_call, user_id=user_id)
        content = f"{content}\n\n{outcome}" if content else outcome
        metadata = {
            "function_call": {"name": reply.function_call.name, "arguments": reply.function_call.arguments},
        }

    assistant = await repository.insert_message(
        int(session["id"]),
        role="ASSISTANT",
        content=content,
        metadata=metadata,
    )
    return {"message": assistant, "session_id": str(session["session_key"])}


async def list_sessions(*, user_id: int) -> dict[str, Any]:
    rows = await repository.list_sessions(user_id)
    sessions = [
        {
            "session_id": str(row["session_key"]),
            "title": row.get("title"),
            "last_message": row.get("last_message"),
            "message_count": int(row.get("message_count") or 0),
            "created_at": row.get("created_at"),
            "updated_at": row.get("updated_at"),
        }
        for row in rows
    ]
    return {"sessions": sessions, "count": len(sessions)}


async def get_session(session_id: str, *, user_id: int) -> dict[str, Any]:
    session = await repository.get_session_by_key(session_id, user_id=user_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat session not found")

    messages = await repository.list_messages(int(session["id"]))
    return {
        "session_id": str(session["session_key"]),
        "title": session.get("title"),
        "created_at": session.get("created_at"),
        "updated_at": session.get("updated_at"),
        "messages": messages,
    }


async def delete_session(session_id: str, *, user_id: int) -> dict[str, Any]:
    if not await repository.delete_session(session_id, user_id=user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat session not found")
    return {"ok": True, "session_id": session_id}
