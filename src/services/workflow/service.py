"""Built-in workflows exposed through the API."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from core.exceptions import UnknownWorkflowTypeError
from schemas.forms import form_schema_text
from schemas.parsing import ParsingRequest
from schemas.workflow import WorkflowTypeInfo
from services.instructor.engine import Instructor
from services.workflow.context import NodeResult, WorkflowContext, WorkflowResult
from services.workflow.engine import DEFAULT_MAX_ITERATIONS, WorkflowEngine
from services.workflow.graph import WorkflowEdge, WorkflowGraph
from services.workflow.nodes import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    ActionNode,
    AiDecisionNode,
    DecisionPayload,
    EndNode,
    StartNode,
)


logger = logging.getLogger(__name__)

LEAVE_REQUEST = "leave_request"

# Demo identity; there is no authentication layer.
DEMO_USER_ID = "emp_123"
DEMO_MANAGER_ID = "mgr_456"

LEAVE_VALIDATION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "decision": {
            "type": "string",
            "enum": ["APPROVE", "REJECT", "ESCALATE"],
            "description": "Validation decision",
        },
        "reasoning": {
            "type": "string",
            "description": "Explanation for the decision",
        },
    },
    "required": ["decision", "reasoning"],
}

LEAVE_VALIDATION_PROMPT = (
    "You are a leave request validator. Evaluate if the leave reason is valid and "
    "reasonable. Consider: Is the reason legitimate? Is the timing appropriate? "
    "APPROVE for valid requests, REJECT for invalid ones, ESCALATE if uncertain."
)

# Threshold handed to the AI node; routing uses the service's own threshold.
LEAVE_VALIDATION_NODE_THRESHOLD = 0.7


class WorkflowService:
    """Registry and runner for the built-in workflow types."""

    def __init__(
        self,
        instructor: Instructor,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    ) -> None:
        self.instructor = instructor
        self.max_iterations = max_iterations
        self.confidence_threshold = confidence_threshold
        self._runners: dict[str, Callable[[str], Awaitable[WorkflowResult]]] = {
            LEAVE_REQUEST: self.execute_leave_request,
        }

    def list_types(self) -> list[WorkflowTypeInfo]:
        return [
            WorkflowTypeInfo(
                workflow_type=LEAVE_REQUEST,
                name="Leave Request",
                description=(
                    "Parses a leave request, asks the model to validate it and "
                    "routes to auto-approve, auto-reject or manager review."
                ),
                example_input=(
                    "I need annual leave from 2025-03-10 to 2025-03-14 for a family trip"
                ),
            )
        ]

    async def execute(self, workflow_type: str, user_input: str) -> WorkflowResult:
        runner = self._runners.get(workflow_type)
        if runner is None:
            raise UnknownWorkflowTypeError(f"Unknown workflow type: {workflow_type}")
        return await runner(user_input)

    async def execute_leave_request(self, user_input: str) -> WorkflowResult:
        logger.info("Executing leave request workflow")
        parsing_request = ParsingRequest(
            json_schema=form_schema_text("leave"),
            user_input=user_input,
            context={
                "now": datetime.now(UTC).isoformat(),
                "user": {"id": DEMO_USER_ID, "managerId": DEMO_MANAGER_ID},
            },
        )
        parsed = await self.instructor.parse(parsing_request)

        context = WorkflowContext(parsed)
        context.set_var("user_id", DEMO_USER_ID)
        context.set_var("manager_id", DEMO_MANAGER_ID)

        engine = WorkflowEngine(self.build_leave_workflow(), self.max_iterations)
        return await engine.execute("start", context)

    def _decision_matches(self, expected: str) -> Callable[..., bool]:
        def condition(context: WorkflowContext, result: NodeResult) -> bool:
            decision = result.payload
            return (
                isinstance(decision, DecisionPayload)
                and decision.decision == expected
                and decision.is_confident(self.confidence_threshold)
            )

        return condition

    def _needs_review(self, context: WorkflowContext, result: NodeResult) -> bool:
        decision = result.payload
        if not isinstance(decision, DecisionPayload):
            return True
        return decision.decision == "ESCALATE" or not decision.is_confident(
            self.confidence_threshold
        )

    def build_leave_workflow(self) -> WorkflowGraph:
        def set_state(state: str, message: str) -> Callable[[WorkflowContext], str]:
            def action(context: WorkflowContext) -> str:
                logger.info("Leave request -> %s", state)
                context.state = state
                return message

            return action

        graph = WorkflowGraph()
        (
            graph.add_node(StartNode("start"))
            .add_node(
                AiDecisionNode(
                    "ai_validation",
                    self.instructor,
                    system_prompt=LEAVE_VALIDATION_PROMPT,
                    output_schema=LEAVE_VALIDATION_SCHEMA,
                    confidence_threshold=LEAVE_VALIDATION_NODE_THRESHOLD,
                )
            )
            .add_node(
                ActionNode(
                    "auto_approve",
                    set_state("APPROVED", "Leave request approved automatically"),
                )
            )
            .add_node(
                ActionNode(
                    "human_review",
                    set_state(
                        "PENDING_APPROVAL", "Leave request sent to manager for review"
                    ),
                )
            )
            .add_node(
                ActionNode(
                    "auto_reject",
                    set_state("REJECTED", "Leave request rejected automatically"),
                )
            )
            .add_node(EndNode("end"))
        )

        graph.add_edge(WorkflowEdge("start", "ai_validation"))
        graph.add_edge(
            WorkflowEdge(
                "ai_validation",
                "auto_approve",
                self._decision_matches("APPROVE"),
                "HIGH_CONFIDENCE_APPROVE",
                1,
            )
        )
        graph.add_edge(
            WorkflowEdge(
                "ai_validation",
                "auto_reject",
                self._decision_matches("REJECT"),
                "HIGH_CONFIDENCE_REJECT",
                2,
            )
        )
        graph.add_edge(
            WorkflowEdge(
                "ai_validation",
                "human_review",
                self._needs_review,
                "LOW_CONFIDENCE_OR_ESCALATE",
                0,
            )
        )
        for action_id in ("auto_approve", "auto_reject", "human_review"):
            graph.add_edge(WorkflowEdge(action_id, "end"))
        return graph
