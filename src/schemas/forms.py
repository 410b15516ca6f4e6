"""Form definitions and request payloads for form extraction.

Form JSON Schemas are generated from the pydantic models below, so the model
sees exactly the constraints the validator enforces.
"""

from __future__ import annotations

import json
from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from core.exceptions import UnknownFormTypeError


class LeaveRequestForm(BaseModel):
    """Leave request."""

    leave_type: Literal["annual", "sick", "unpaid", "marriage"] = Field(
        ..., description="Type of leave request"
    )
    start_date: date = Field(..., description="Start date of leave")
    end_date: date = Field(..., description="End date of leave")
    reason: str = Field(..., description="Reason for leave")
    medical_certificate: str | None = Field(
        None, description="Medical certificate if required"
    )
    approver: str | None = Field(None, description="Person who will approve the leave")


class TaskRequestForm(BaseModel):
    """New task request, optionally depending on other tasks."""

    title: str = Field(..., min_length=1, description="Short task title")
    description: str | None = Field(None, description="What needs to be done")
    priority: Literal["low", "medium", "high", "urgent"] = Field(
        ..., description="Task priority; ASAP or similar wording means urgent"
    )
    due_date: date | None = Field(
        None, description="Date the task must be finished, resolved against context.now"
    )
    assignee: str | None = Field(None, description="Person responsible for the task")
    dependencies: list[str] = Field(
        default_factory=list, description="Tasks or features this task depends on"
    )


FORM_TYPES: dict[str, tuple[type[BaseModel], str]] = {
    "leave": (LeaveRequestForm, "Employee leave request (type, dates, reason)"),
    "task": (TaskRequestForm, "New task with priority, due date and dependencies"),
}


def get_form_model(form_type: str) -> type[BaseModel]:
    try:
        return FORM_TYPES[form_type][0]
    except KeyError:
        raise UnknownFormTypeError(f"Unknown form type: {form_type}") from None


def form_schema(form_type: str) -> dict[str, Any]:
    """JSON Schema for `form_type`; raises UnknownFormTypeError."""
    return get_form_model(form_type).model_json_schema()


def form_schema_text(form_type: str) -> str:
    return json.dumps(form_schema(form_type), ensure_ascii=False)


class FormTypeInfo(BaseModel):
    form_type: str
    description: str


class ParseFormRequest(BaseModel):
    """Request body for the form parse endpoints."""

    form_type: str = Field(..., min_length=1, examples=["leave"])
    user_input: str = Field(..., min_length=1, max_length=4000)
    context: dict[str, Any] | None = Field(
        default=None,
        description="Extra context merged over the server defaults (now, locale, user).",
    )

    model_config = ConfigDict(extra="forbid")
