"""Workflow node variants.

The set is closed: Start, End, Action, LogicDecision and AiDecision all
implement the single `execute(context)` capability of `WorkflowNode`.
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from schemas.parsing import ParsingRequest, ParsingResult
from services.instructor.engine import Instructor
from services.workflow.context import NodeResult, WorkflowContext


logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.85

Action = Callable[[WorkflowContext], Any | Awaitable[Any]]
Predicate = Callable[[WorkflowContext], bool]


class WorkflowNode(ABC):
    """A unit of workflow execution identified by a unique id."""

    def __init__(self, node_id: str) -> None:
        if not node_id:
            raise ValueError("node_id is required")
        self.id = node_id

    @property
    def node_type(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def execute(self, context: WorkflowContext) -> NodeResult:
        """Run the node against the shared context."""

    def __repr__(self) -> str:
        return f"{self.node_type}({self.id!r})"


class StartNode(WorkflowNode):
    async def execute(self, context: WorkflowContext) -> NodeResult:
        return NodeResult.success("Started")


class EndNode(WorkflowNode):
    async def execute(self, context: WorkflowContext) -> NodeResult:
        return NodeResult.success("Completed")


class ActionNode(WorkflowNode):
    """Runs deterministic work against the context.

    The callable may be sync or async. Its return value becomes the SUCCESS
    payload, unless it returns a NodeResult, which is passed through as is
    (e.g. `NodeResult.waiting()` to suspend the run). Errors become FAILURE.
    """

    def __init__(self, node_id: str, action: Action) -> None:
        super().__init__(node_id)
        self._action = action

    async def execute(self, context: WorkflowContext) -> NodeResult:
        try:
            outcome = self._action(context)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception as e:  # noqa: BLE001 - node faults become FAILURE results
            logger.warning("Action node %s failed: %s", self.id, e)
            return NodeResult.failure(str(e) or e.__class__.__name__)
        if isinstance(outcome, NodeResult):
            return outcome
        return NodeResult.success(outcome)


class LogicDecisionNode(WorkflowNode):
    """Evaluates a pure predicate; payload is the boolean, hint TRUE/FALSE."""

    def __init__(self, node_id: str, condition: Predicate) -> None:
        super().__init__(node_id)
        self._condition = condition

    async def execute(self, context: WorkflowContext) -> NodeResult:
        result = bool(self._condition(context))
        return NodeResult.success(result, "TRUE" if result else "FALSE")


@dataclass(frozen=True, slots=True)
class DecisionPayload:
    decision: str
    confidence: float
    reasoning: str

    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_result(cls, result: ParsingResult) -> DecisionPayload:
        field = (result.fields or {}).get("decision")
        if field is None or field.value is None:
            return cls(cls.UNKNOWN, 0.0, "No reasoning provided")
        return cls(
            decision=str(field.value),
            confidence=field.confidence,
            reasoning=field.reasoning or "No reasoning provided",
        )

    def is_confident(self, threshold: float) -> bool:
        return self.confidence >= threshold


class AiDecisionNode(WorkflowNode):
    """Asks the extraction engine for a `decision` field and records it.

    The decision is stored under ``<node_id>_decision``. The confidence
    threshold is exposed for edge conditions; the node does not enforce it.
    """

    def __init__(
        self,
        node_id: str,
        instructor: Instructor,
        system_prompt: str,
        output_schema: str | dict[str, Any],
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    ) -> None:
        super().__init__(node_id)
        if instructor is None:
            raise ValueError("instructor is required")
        if not system_prompt:
            raise ValueError("system_prompt is required")
        if not output_schema:
            raise ValueError("output_schema is required")
        self.instructor = instructor
        self.system_prompt = system_prompt
        self.output_schema = output_schema
        self.confidence_threshold = confidence_threshold

    @property
    def decision_key(self) -> str:
        return f"{self.id}_decision"

    def render_input(self, context: WorkflowContext) -> str:
        """Summarize request fields and variables for the model."""
        lines = [self.system_prompt, "", "Request Details:"]
        if context.request is not None and context.request.fields:
            for key, field in context.request.fields.items():
                lines.append(f"- {key}: {field.value}")
        if context.variables:
            lines.append("")
            lines.append("Context Variables:")
            for key, value in context.variables.items():
                lines.append(f"- {key}: {value}")
        return "\n".join(lines) + "\n"

    async def execute(self, context: WorkflowContext) -> NodeResult:
        request = ParsingRequest(
            json_schema=self.output_schema,
            user_input=self.render_input(context),
            context={"state": context.state, **context.variables},
        )
        try:
            result = await self.instructor.parse(request)
        except Exception as e:  # noqa: BLE001 - node faults become FAILURE results
            logger.error("AI decision node %s failed: %s", self.id, e)
            return NodeResult.failure(str(e) or e.__class__.__name__)

        decision = DecisionPayload.from_result(result)
        context.set_var(self.decision_key, decision)
        logger.info(
            "AI decision at %s: %s (confidence %.2f)",
            self.id,
            decision.decision,
            decision.confidence,
        )
        return NodeResult.success(decision, decision.decision)
