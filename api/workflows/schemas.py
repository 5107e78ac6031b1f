"""
Pydantic schemas for workflow endpoints.
"""

from __future__ import annotations

from typing import Any

from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel, Field, field_validator

TRIGGER_TYPES = ("manual", "schedule", "email")


def _check_trigger(trigger: dict[str, Any]) -> dict[str, Any]:
    trigger_type = trigger.get("type")
    if trigger_type not in TRIGGER_TYPES:
        raise ValueError(f"trigger.type must be one of {', '.join(TRIGGER_TYPES)}")

    cron = trigger.get("cron")
    if trigger_type == "schedule" and cron is not None:
        try:
            CronTrigger.from_crontab(str(cron))
        except ValueError as exc:
            raise ValueError(f"invalid cron expression: {exc}") from exc
    return trigger


class WorkflowStepRequest(BaseModel):
    integration_id: int | None = None
    action: str = Field(..., min_length=1, max_length=100)
    parameters: dict[str, Any] = Field(default_factory=dict)
    output_variable: str | None = Field(default=None, max_length=100)
    stop_on_error: bool = False


class CreateWorkflowRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    trigger: dict[str, Any]
    steps: list[WorkflowStepRequest] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("trigger")
    @classmethod
    def trigger_is_known(cls, value: dict[str, Any]) -> dict[str, Any]:
        return _check_trigger(value)


class UpdateWorkflowRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    trigger: dict[str, Any] | None = None
    steps: list[WorkflowStepRequest] | None = None
    is_active: bool | None = None

    @field_validator("trigger")
    @classmethod
    def trigger_is_known(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        return _check_trigger(value) if value is not None else None


class ExecuteWorkflowRequest(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)
