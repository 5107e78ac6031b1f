"""
In-process workflow execution.

A run walks the workflow's steps in `step_order`:
- step parameters are resolved against the run's variables (`{{trigger.x}}`, `{{output}}`)
- the action runs (provider call, task creation, wait, condition, HTTP request)
- the outcome is appended to the results list; `output_variable` stores a success
- a failing step with `stop_on_error` aborts the run as FAILED
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from core import settings
from core.notifications import hub
from core.validators import validate_url
from integrations import clients
from integrations import repository as integrations_repository
from integrations import service as integrations_service
from tasks import service as tasks_service

from . import repository

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")
_MISSING = object()

# Workflow action -> integration type whose client performs it.
PROVIDER_ACTIONS: dict[str, str] = {
    "send_email": "GMAIL",
    "search_emails": "GMAIL",
    "create_calendar_event": "GOOGLE_CALENDAR",
    "send_slack_message": "SLACK",
    "create_notion_page": "NOTION",
    "create_hubspot_contact": "HUBSPOT",
    "create_linear_issue": "LINEAR",
}

BUILTIN_ACTIONS = ("create_task", "wait", "condition", "http_request")

CONDITION_OPERATORS = ("equals", "not_equals", "contains", "greater_than", "less_than")


class WorkflowStepError(RuntimeError):
    pass


@dataclass
class ExecutionContext:
    user_id: int
    workflow_id: int
    execution_id: int
    variables: dict[str, Any] = field(default_factory=dict)
    results: list[dict[str, Any]] = field(default_factory=list)
    transport: httpx.AsyncBaseTransport | None = None


def max_wait_s() -> float:
    return settings.env_float("WORKFLOW_MAX_WAIT_S", 300.0)


def http_timeout_s() -> float:
    return settings.env_float("WORKFLOW_HTTP_TIMEOUT_S", 30.0)


def lookup_variable(path: str, variables: dict[str, Any]) -> Any:
    """
    Resolve a dotted path (`trigger.email.subject`) against the variables.
    Returns `_MISSING` when any segment is absent.
    """
    current: Any = variables
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return _MISSING
    return current


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def resolve_variables(value: Any, variables: dict[str, Any]) -> Any:
    if isinstance(value, str):
        whole = _PLACEHOLDER_RE.fullmatch(value)
        if whole is not None:
            found = lookup_variable(whole.group(1), variables)
            return value if found is _MISSING else found

        def _replace(match: re.Match[str]) -> str:
            found = lookup_variable(match.group(1), variables)
            return match.group(0) if found is _MISSING else _to_text(found)

        return _PLACEHOLDER_RE.sub(_replace, value)

    if isinstance(value, dict):
        return {key: resolve_variables(item, variables) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_variables(item, variables) for item in value]
    return value


def _as_number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise WorkflowStepError(f"Cannot compare non-numeric value: {value!r}") from exc


def evaluate_condition(actual: Any, operator: str, expected: Any) -> bool:
    if operator == "equals":
        return actual == expected
    if operator == "not_equals":
        return actual != expected
    if operator == "contains":
        if isinstance(actual, (list, tuple, set)):
            return expected in actual
        return _to_text(expected) in ("" if actual is None else _to_text(actual))
    if operator == "greater_than":
        return _as_number(actual) > _as_number(expected)
    if operator == "less_than":
        return _as_number(actual) < _as_number(expected)
    raise WorkflowStepError(f"Unknown operator: {operator}")


async def _provider_row(step: dict[str, Any], integration_type: str, user_id: int) -> dict:
    row = None
    if step.get("integration_id") is not None:
        row = await integrations_repository.get_integration(int(step["integration_id"]), user_id=user_id)
    if row is None:
        row = await integrations_repository.get_connected_by_type(user_id, integration_type)
    if row is None:
        raise WorkflowStepError(f"{clients.DISPLAY_NAMES[integration_type]} integration not connected")
    return row


async def _run_create_task(params: dict[str, Any], ctx: ExecutionContext) -> dict:
    title = params.get("title")
    if not isinstance(title, str) or not title.strip():
        raise WorkflowStepError("create_task requires a title")

    due_date = params.get("due_date")
    if isinstance(due_date, str) and due_date:
        try:
            due_date = datetime.fromisoformat(due_date)
        except ValueError as exc:
            raise WorkflowStepError(f"Invalid due_date: {due_date}") from exc

    return await tasks_service.create_task(
        user_id=ctx.user_id,
        title=title,
        description=params.get("description"),
        priority=params.get("priority"),
        due_date=due_date or None,
    )


async def _run_wait(params: dict[str, Any]) -> dict:
    seconds = min(max(_as_number(params.get("seconds", 0)), 0.0), max_wait_s())
    await asyncio.sleep(seconds)
    return {"waited": seconds}


def _run_condition(params: dict[str, Any], ctx: ExecutionContext) -> dict:
    operator = str(params.get("operator") or "")
    if operator not in CONDITION_OPERATORS:
        raise WorkflowStepError(f"Unknown operator: {operator}")

    actual = lookup_variable(str(params.get("variable") or ""), ctx.variables)
    if actual is _MISSING:
        actual = None
    return {"condition": evaluate_condition(actual, operator, params.get("value"))}


async def _run_http_request(params: dict[str, Any], ctx: ExecutionContext) -> dict:
    url = str(params.get("url") or "")
    if not validate_url(url):
        raise WorkflowStepError(f"Invalid URL: {url}")

    method = str(params.get("method") or "GET").upper()
    headers = params.get("headers") or None
    body = params.get("body")

    try:
        async with httpx.AsyncClient(timeout=http_timeout_s(), transport=ctx.transport) as client:
            resp = await client.request(method, url, headers=headers, json=body)
    except httpx.HTTPError as exc:
        raise WorkflowStepError(f"HTTP request failed: {exc}") from exc

    try:
        data: Any = resp.json()
    except ValueError:
        data = resp.text

    if resp.status_code >= 400:
        raise WorkflowStepError(f"HTTP request failed: {resp.status_code}")
    return {"status": resp.status_code, "data": data}


async def run_action(step: dict[str, Any], params: dict[str, Any], ctx: ExecutionContext) -> Any:
    action = str(step.get("action") or "")

    integration_type = PROVIDER_ACTIONS.get(action)
    if integration_type is not None:
        row = await _provider_row(step, integration_type, ctx.user_id)
        return await integrations_service.run_action(row, action, params)

    if action == "create_task":
        return await _run_create_task(params, ctx)
    if action == "wait":
        return await _run_wait(params)
    if action == "condition":
        return _run_condition(params, ctx)
    if action == "http_request":
        return await _run_http_request(params, ctx)

    raise WorkflowStepError(f"Unknown action type: {action}")


def _error_text(exc: Exception) -> str:
    detail = getattr(exc, "detail", None)
    return str(detail) if detail else str(exc) or type(exc).__name__


async def _publish(ctx: ExecutionContext, execution: dict) -> None:
    await hub.publish(
        ctx.user_id,
        {
            "type": "workflow_execution",
            "workflow_id": ctx.workflow_id,
            "execution_id": ctx.execution_id,
            "status": execution.get("status"),
            "error": execution.get("error"),
        },
    )


async def execute_workflow(
    workflow: dict[str, Any],
    trigger_data: dict[str, Any] | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict:
    """
    Run a workflow (with its `steps` attached) and return the finished execution row.
    """
    trigger_data = dict(trigger_data or {})
    execution = await repository.create_execution(
        workflow_id=int(workflow["id"]),
        status="RUNNING",
        trigger_data=trigger_data,
    )
    ctx = ExecutionContext(
        user_id=int(workflow["user_id"]),
        workflow_id=int(workflow["id"]),
        execution_id=int(execution["id"]),
        variables={"trigger": trigger_data},
        transport=transport,
    )
    logger.info("workflow_started workflow_id=%s execution_id=%s", ctx.workflow_id, ctx.execution_id)

    failure: str | None = None
    steps = sorted(workflow.get("steps") or [], key=lambda s: int(s.get("step_order") or 0))
    for position, step in enumerate(steps):
        action = str(step.get("action") or "")
        params = resolve_variables(step.get("parameters") or {}, ctx.variables)
        try:
            result = await run_action(step, params, ctx)
        except Exception as exc:
            # Step failures are recorded on the execution; the run itself keeps going.
            error = _error_text(exc)
            logger.warning(
                "workflow_step_failed workflow_id=%s execution_id=%s step=%s action=%s error=%s",
                ctx.workflow_id,
                ctx.execution_id,
                position,
                action,
                error,
            )
            ctx.results.append({"step": position, "action": action, "success": False, "error": error})
            if step.get("stop_on_error"):
                failure = error
                break
            continue

        ctx.results.append({"step": position, "action": action, "success": True, "result": result})
        if step.get("output_variable"):
            ctx.variables[str(step["output_variable"])] = result

    finished = await repository.finish_execution(
        ctx.execution_id,
        status="FAILED" if failure is not None else "COMPLETED",
        result=ctx.results,
        error=failure,
    )
    if failure is None:
        await repository.touch_last_run(ctx.workflow_id)

    finished = finished or {**execution, "status": "FAILED" if failure else "COMPLETED"}
    logger.info(
        "workflow_finished workflow_id=%s execution_id=%s status=%s",
        ctx.workflow_id,
        ctx.execution_id,
        finished.get("status"),
    )
    await _publish(ctx, finished)
    return finished
