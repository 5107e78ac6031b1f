"""
Poll connected Gmail inboxes and run email-triggered workflows.
"""

from __future__ import annotations

import logging
from typing import Any

from integrations import repository as integrations_repository
from integrations import service as integrations_service
from integrations.base import IntegrationError
from workflows import engine
from workflows import repository as workflows_repository
from workflows import service as workflows_service

logger = logging.getLogger(__name__)

EMAILS_PER_POLL = 10

# workflow id -> Gmail message ids that already triggered it (process lifetime).
_processed: dict[int, set[str]] = {}


def reset() -> None:
    _processed.clear()


def email_matches(email: dict[str, Any], trigger: dict[str, Any]) -> bool:
    conditions = trigger.get("conditions") or {}

    from_email = conditions.get("from_email")
    if from_email and str(from_email) not in str(email.get("from") or ""):
        return False

    subject = conditions.get("subject")
    if subject and str(subject).lower() not in str(email.get("subject") or "").lower():
        return False

    return True


async def _process_user_emails(user_id: int, emails: list[dict[str, Any]]) -> int:
    if not emails:
        return 0
    rows = await workflows_repository.list_active_by_trigger("email", user_id=user_id)
    if not rows:
        return 0

    executed = 0
    for workflow in await workflows_service.attach_steps(rows):
        seen = _processed.setdefault(int(workflow["id"]), set())
        for email in emails:
            message_id = str(email.get("id") or "")
            if not message_id or message_id in seen:
                continue
            if not email_matches(email, workflow.get("trigger") or {}):
                continue
            seen.add(message_id)
            await engine.execute_workflow(workflow, {"email": email})
            logger.info("email_workflow_executed workflow_id=%s message_id=%s", workflow["id"], message_id)
            executed += 1
    return executed


async def run_email_triggers() -> int:
    """
    Returns the number of workflow executions started.
    """
    executed = 0
    for row in await integrations_repository.list_connected_by_type("GMAIL"):
        try:
            client = integrations_service.client_for(row)
            emails = await client.get_emails(max_results=EMAILS_PER_POLL)
        except IntegrationError as exc:
            logger.warning("email_poll_failed integration_id=%s error=%s", row["id"], exc)
            continue

        # One user's workflows must not stop the remaining inboxes.
        try:
            executed += await _process_user_emails(int(row["user_id"]), emails)
        except Exception:
            logger.exception("email_trigger_failed integration_id=%s user_id=%s", row["id"], row["user_id"])
    return executed
