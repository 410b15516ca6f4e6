"""Form extraction endpoints (blocking and Server-Sent Events)."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import aclosing
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from dependencies.engines import InstructorDep
from schemas.api import ApiResponse
from schemas.forms import (
    FORM_TYPES,
    FormTypeInfo,
    ParseFormRequest,
    form_schema,
    form_schema_text,
)
from schemas.parsing import ParsingRequest, ParsingResult
from services.instructor.engine import Instructor


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/forms", tags=["forms"])


def default_context() -> dict[str, Any]:
    return {
        "now": datetime.now(UTC).isoformat(),
        "locale": "en-US",
        "user": {"role": "employee", "managerId": "walter"},
    }


def build_parsing_request(body: ParseFormRequest) -> ParsingRequest:
    """Resolve the form schema and merge caller context over the defaults."""
    context = default_context()
    if body.context:
        context.update(body.context)
    return ParsingRequest(
        json_schema=form_schema_text(body.form_type),
        user_input=body.user_input,
        context=context,
    )


@router.get("/types", response_model=ApiResponse[list[FormTypeInfo]])
def list_form_types() -> ApiResponse[list[FormTypeInfo]]:
    return ApiResponse(
        data=[
            FormTypeInfo(form_type=name, description=description)
            for name, (_, description) in FORM_TYPES.items()
        ],
        message="Form types retrieved",
    )


@router.get("/schema/{form_type}", response_model=ApiResponse[dict[str, Any]])
def get_form_schema(form_type: str) -> ApiResponse[dict[str, Any]]:
    """Return the JSON Schema used to validate a form type."""
    return ApiResponse(data=form_schema(form_type), message="Schema retrieved")


@router.post("/parse", response_model=ApiResponse[ParsingResult])
async def parse_form(
    body: ParseFormRequest, instructor: InstructorDep
) -> ApiResponse[ParsingResult]:
    """Extract a form from free text, retrying until the values validate.

    Exhausted retries are not an error: the result has no fields and the
    last validation errors.
    """
    request = build_parsing_request(body)
    result = await instructor.parse(request)
    return ApiResponse(
        success=result.fields is not None,
        data=result,
        message="Form parsed" if result.fields is not None else "Form parsing failed",
    )


async def build_parse_stream(
    instructor: Instructor, request: ParsingRequest
) -> AsyncGenerator[str, None]:
    """Render engine events as SSE; closing this closes the engine stream."""
    async with aclosing(instructor.parse_stream(request)) as events:
        async for event in events:
            yield event.to_sse()


@router.post(
    "/parse/stream",
    summary="Stream form extraction progress via Server-Sent Events",
)
async def parse_form_stream(
    body: ParseFormRequest, instructor: InstructorDep
) -> StreamingResponse:
    """Stream extraction as named SSE events.

    Events: attemptStarted, rawChunk, snapshot, attemptFailed, finalResult,
    error. Each `data:` line is the JSON event including its `attempt`.
    """
    request = build_parsing_request(body)
    return StreamingResponse(
        build_parse_stream(instructor, request),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
