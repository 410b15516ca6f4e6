"""FastAPI dependencies for settings and the extraction/workflow engines.

Everything hangs off `app.state`: `create_app` stores the Settings object
and, optionally, a preconfigured language model client. When no client was
supplied one is built from settings on first use and kept on the app.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from core.config import Settings
from services.instructor.engine import Instructor
from services.instructor.interfaces import LlmClient
from services.instructor.model_factory import build_llm_client
from services.workflow.service import WorkflowService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_llm_client(
    request: Request, settings: Annotated[Settings, Depends(get_settings)]
) -> LlmClient:
    client: LlmClient | None = getattr(request.app.state, "llm_client", None)
    if client is None:
        client = build_llm_client(settings)
        request.app.state.llm_client = client
    return client


def get_instructor(
    llm_client: Annotated[LlmClient, Depends(get_llm_client)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> Instructor:
    return Instructor(
        llm_client,
        max_retries=settings.INSTRUCTOR_MAX_RETRIES,
        snapshot_threshold=settings.STREAM_SNAPSHOT_THRESHOLD,
    )


def get_workflow_service(
    instructor: Annotated[Instructor, Depends(get_instructor)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> WorkflowService:
    return WorkflowService(
        instructor,
        max_iterations=settings.WORKFLOW_MAX_ITERATIONS,
        confidence_threshold=settings.WORKFLOW_CONFIDENCE_THRESHOLD,
    )


SettingsDep = Annotated[Settings, Depends(get_settings)]
InstructorDep = Annotated[Instructor, Depends(get_instructor)]
WorkflowServiceDep = Annotated[WorkflowService, Depends(get_workflow_service)]
