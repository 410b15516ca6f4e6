"""Workflow execution endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from dependencies.engines import WorkflowServiceDep
from schemas.api import ApiResponse
from schemas.workflow import (
    WorkflowExecutionRequest,
    WorkflowExecutionResponse,
    WorkflowTypeInfo,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflow", tags=["workflow"])


@router.post("/execute", response_model=ApiResponse[WorkflowExecutionResponse])
async def execute_workflow(
    body: WorkflowExecutionRequest, service: WorkflowServiceDep
) -> ApiResponse[WorkflowExecutionResponse]:
    """Parse the input and run the named workflow to completion or suspension.

    A FAILED run is still a 200 response; `data.status` carries the outcome.
    """
    result = await service.execute(body.workflow_type, body.user_input)
    response = WorkflowExecutionResponse.from_result(result)
    logger.info(
        "Workflow %s finished with status %s", body.workflow_type, response.status
    )
    return ApiResponse(data=response, message=result.message)


@router.get("/types", response_model=ApiResponse[list[WorkflowTypeInfo]])
def list_workflow_types(
    service: WorkflowServiceDep,
) -> ApiResponse[list[WorkflowTypeInfo]]:
    return ApiResponse(data=service.list_types(), message="Workflow types retrieved")
