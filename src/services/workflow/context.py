"""Execution state shared by the nodes of one workflow run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TypeVar

from schemas.parsing import ParsingResult


T = TypeVar("T")

INITIAL_STATE = "REQUEST"


class NodeStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    WAITING = "WAITING"


class WorkflowStatus(str, Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    WAITING = "WAITING"


@dataclass(frozen=True, slots=True)
class NodeResult:
    """Outcome of one node execution.

    `next_edge_hint` is advisory; edge conditions decide the route.
    """

    status: NodeStatus
    payload: Any = None
    next_edge_hint: str | None = None

    @classmethod
    def success(cls, payload: Any = None, hint: str | None = None) -> NodeResult:
        return cls(NodeStatus.SUCCESS, payload, hint)

    @classmethod
    def failure(cls, message: str) -> NodeResult:
        return cls(NodeStatus.FAILURE, message)

    @classmethod
    def waiting(cls, payload: Any = None) -> NodeResult:
        return cls(NodeStatus.WAITING, payload)


@dataclass(frozen=True, slots=True)
class TraceEntry:
    """Immutable record of one node execution."""

    node_id: str
    node_type: str
    status: NodeStatus
    output_summary: Any = None
    input_summary: Any = None
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class WorkflowContext:
    """Mutable blackboard owned by a single workflow run.

    Holds the parsed request, a free-form `state` tag, `meta` data,
    variables written by nodes and the append-only execution trace.
    """

    def __init__(self, request: ParsingResult | None = None) -> None:
        self.request = request
        self.state: str = INITIAL_STATE
        self.meta: dict[str, Any] = {}
        self.variables: dict[str, Any] = {}
        self._trace_log: list[TraceEntry] = []

    @property
    def trace_log(self) -> tuple[TraceEntry, ...]:
        return tuple(self._trace_log)

    def append_trace(self, entry: TraceEntry) -> None:
        self._trace_log.append(entry)

    def set_var(self, key: str, value: Any) -> None:
        self.variables[key] = value

    def get_var(
        self, key: str, default: Any = None, expected_type: type[T] | None = None
    ) -> Any:
        """Return variable `key`, or `default` when missing or of the wrong type."""
        value = self.variables.get(key, default)
        if expected_type is not None and not isinstance(value, expected_type):
            return default
        return value


@dataclass(slots=True)
class WorkflowResult:
    status: WorkflowStatus
    message: str
    context: WorkflowContext
    # Node the run paused at (WAITING) or stopped at (COMPLETED/FAILED).
    node_id: str | None = None

    @property
    def paused_at_node(self) -> str | None:
        return self.node_id if self.status is WorkflowStatus.WAITING else None

    @classmethod
    def completed(
        cls, context: WorkflowContext, node_id: str | None = None
    ) -> WorkflowResult:
        return cls(
            WorkflowStatus.COMPLETED,
            "Workflow completed successfully",
            context,
            node_id,
        )

    @classmethod
    def failed(
        cls, message: str, context: WorkflowContext, node_id: str | None = None
    ) -> WorkflowResult:
        return cls(WorkflowStatus.FAILED, message, context, node_id)

    @classmethod
    def waiting(cls, node_id: str, context: WorkflowContext) -> WorkflowResult:
        return cls(
            WorkflowStatus.WAITING, "Waiting for external input", context, node_id
        )
