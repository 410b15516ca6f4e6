"""Schemas for the workflow execution API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from services.workflow.context import TraceEntry, WorkflowResult


class WorkflowExecutionRequest(BaseModel):
    workflow_type: str = Field(..., min_length=1, examples=["leave_request"])
    user_input: str = Field(..., min_length=1, max_length=4000)

    model_config = ConfigDict(extra="forbid")


class TraceEntryOut(BaseModel):
    node_id: str
    node_type: str
    timestamp: datetime
    status: str
    input_summary: Any = None
    output_summary: Any = None
    error: str | None = None

    @classmethod
    def from_entry(cls, entry: TraceEntry) -> TraceEntryOut:
        return cls(
            node_id=entry.node_id,
            node_type=entry.node_type,
            timestamp=entry.timestamp,
            status=entry.status.value,
            input_summary=entry.input_summary,
            output_summary=entry.output_summary,
            error=entry.error,
        )


class FinalContext(BaseModel):
    state: str
    variables: dict[str, Any] = Field(default_factory=dict)


class WorkflowExecutionResponse(BaseModel):
    status: str
    message: str
    paused_at_node: str | None = None
    parsed_fields: dict[str, Any] | None = None
    execution_trace: list[TraceEntryOut] = Field(default_factory=list)
    final_context: FinalContext

    @classmethod
    def from_result(cls, result: WorkflowResult) -> WorkflowExecutionResponse:
        context = result.context
        parsed_fields = None
        if context.request is not None and context.request.fields is not None:
            parsed_fields = {
                name: field.model_dump() for name, field in context.request.fields.items()
            }
        return cls(
            status=result.status.value,
            message=result.message,
            paused_at_node=result.paused_at_node,
            parsed_fields=parsed_fields,
            execution_trace=[TraceEntryOut.from_entry(e) for e in context.trace_log],
            final_context=FinalContext(
                state=context.state, variables=dict(context.variables)
            ),
        )


class WorkflowTypeInfo(BaseModel):
    workflow_type: str
    name: str
    description: str
    example_input: str
