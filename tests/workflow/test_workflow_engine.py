"""Workflow execution: routing, suspension, failures and bounds."""

from __future__ import annotations

import pytest

from core.exceptions import CycleDetectedError, WorkflowDefinitionError
from services.instructor.engine import Instructor
from services.instructor.llm_client import MockLlmClient
from services.workflow import (
    ActionNode,
    AiDecisionNode,
    EndNode,
    LogicDecisionNode,
    NodeResult,
    NodeStatus,
    StartNode,
    WorkflowContext,
    WorkflowEdge,
    WorkflowEngine,
    WorkflowGraph,
)
from services.workflow.context import WorkflowStatus
from services.workflow.nodes import DecisionPayload


def _linear(*nodes) -> WorkflowGraph:
    graph = WorkflowGraph()
    for node in nodes:
        graph.add_node(node)
    for a, b in zip(nodes, nodes[1:]):
        graph.add_edge(WorkflowEdge(a.id, b.id))
    return graph


def _trace(context: WorkflowContext) -> list[tuple[str, NodeStatus]]:
    return [(e.node_id, e.status) for e in context.trace_log]


@pytest.mark.asyncio
async def test_deterministic_workflow_runs_to_end():
    def mark(context: WorkflowContext) -> str:
        context.set_var("days", 3)
        return "checked"

    graph = _linear(
        StartNode("start"),
        ActionNode("check", mark),
        LogicDecisionNode("short", lambda ctx: ctx.get_var("days") < 5),
        EndNode("end"),
    )
    context = WorkflowContext()

    result = await WorkflowEngine(graph).execute("start", context)

    assert result.status is WorkflowStatus.COMPLETED
    assert result.message == "Workflow completed successfully"
    assert result.node_id == "end"
    assert result.paused_at_node is None
    assert _trace(context) == [
        ("start", NodeStatus.SUCCESS),
        ("check", NodeStatus.SUCCESS),
        ("short", NodeStatus.SUCCESS),
        ("end", NodeStatus.SUCCESS),
    ]
    assert context.trace_log[2].output_summary is True
    assert context.trace_log[1].node_type == "ActionNode"


@pytest.mark.asyncio
async def test_logic_branch_follows_condition():
    graph = WorkflowGraph()
    graph.add_node(LogicDecisionNode("check", lambda ctx: ctx.state == "REQUEST"))
    graph.add_node(ActionNode("yes", lambda ctx: "yes"))
    graph.add_node(ActionNode("no", lambda ctx: "no"))
    graph.add_edge(WorkflowEdge("check", "no", lambda ctx, res: res.payload is False))
    graph.add_edge(WorkflowEdge("check", "yes", lambda ctx, res: res.payload is True))
    context = WorkflowContext()

    result = await WorkflowEngine(graph).execute("check", context)

    assert result.node_id == "yes"
    assert [e.node_id for e in context.trace_log] == ["check", "yes"]


@pytest.mark.asyncio
async def test_ai_decision_routes_by_priority(response_factory):
    client = MockLlmClient(response_factory({"decision": "APPROVE"}, confidence=0.95))
    instructor = Instructor(client)
    schema = {
        "type": "object",
        "properties": {"decision": {"type": "string"}},
        "required": ["decision"],
    }

    def confident(expected: str):
        def condition(ctx: WorkflowContext, res: NodeResult) -> bool:
            decision = res.payload
            return decision.decision == expected and decision.is_confident(0.85)

        return condition

    graph = WorkflowGraph()
    graph.add_node(StartNode("start"))
    graph.add_node(AiDecisionNode("ai", instructor, "Approve?", schema))
    graph.add_node(ActionNode("approve", lambda ctx: setattr(ctx, "state", "APPROVED")))
    graph.add_node(ActionNode("review", lambda ctx: setattr(ctx, "state", "PENDING")))
    graph.add_node(EndNode("end"))
    graph.add_edge(WorkflowEdge("start", "ai"))
    graph.add_edge(WorkflowEdge("ai", "review", priority=0))
    graph.add_edge(WorkflowEdge("ai", "approve", confident("APPROVE"), priority=1))
    graph.add_edge(WorkflowEdge("approve", "end"))
    graph.add_edge(WorkflowEdge("review", "end"))
    context = WorkflowContext()

    result = await WorkflowEngine(graph).execute("start", context)

    assert result.status is WorkflowStatus.COMPLETED
    assert context.state == "APPROVED"
    assert [e.node_id for e in context.trace_log] == ["start", "ai", "approve", "end"]
    assert isinstance(context.get_var("ai_decision"), DecisionPayload)


@pytest.mark.asyncio
async def test_failed_node_stops_run():
    def reject(context: WorkflowContext) -> NodeResult:
        return NodeResult.failure("insufficient balance")

    graph = _linear(StartNode("start"), ActionNode("check", reject), EndNode("end"))
    context = WorkflowContext()

    result = await WorkflowEngine(graph).execute("start", context)

    assert result.status is WorkflowStatus.FAILED
    assert result.message == "insufficient balance"
    assert result.node_id == "check"
    assert _trace(context)[-1] == ("check", NodeStatus.FAILURE)
    assert "end" not in [e.node_id for e in context.trace_log]


@pytest.mark.asyncio
async def test_waiting_node_suspends_run():
    graph = _linear(
        StartNode("start"),
        ActionNode("approval", lambda ctx: NodeResult.waiting("manager")),
        EndNode("end"),
    )
    context = WorkflowContext()

    result = await WorkflowEngine(graph).execute("start", context)

    assert result.status is WorkflowStatus.WAITING
    assert result.message == "Waiting for external input"
    assert result.paused_at_node == "approval"
    assert _trace(context) == [
        ("start", NodeStatus.SUCCESS),
        ("approval", NodeStatus.WAITING),
    ]


class _ExplodingNode(StartNode):
    async def execute(self, context: WorkflowContext) -> NodeResult:
        raise RuntimeError("boom")


@pytest.mark.asyncio
async def test_node_exception_is_traced_and_fails_run():
    graph = _linear(StartNode("start"), _ExplodingNode("bad"), EndNode("end"))
    context = WorkflowContext()

    result = await WorkflowEngine(graph).execute("start", context)

    assert result.status is WorkflowStatus.FAILED
    assert result.message == "Error in node bad: boom"
    last = context.trace_log[-1]
    assert (last.node_id, last.status, last.error) == ("bad", NodeStatus.FAILURE, "boom")


@pytest.mark.asyncio
async def test_edge_condition_exception_fails_run():
    def broken(ctx: WorkflowContext, res: NodeResult) -> bool:
        raise ValueError("bad condition")

    graph = WorkflowGraph()
    graph.add_node(StartNode("start")).add_node(EndNode("end"))
    graph.add_edge(WorkflowEdge("start", "end", broken))
    context = WorkflowContext()

    result = await WorkflowEngine(graph).execute("start", context)

    assert result.status is WorkflowStatus.FAILED
    assert result.message == "Error in node start: bad condition"
    assert _trace(context) == [("start", NodeStatus.SUCCESS)]


@pytest.mark.asyncio
async def test_max_iterations_bounds_the_run():
    graph = _linear(StartNode("a"), ActionNode("b", lambda ctx: None))
    engine = WorkflowEngine(graph, max_iterations=5)
    # Loop added after validation so the engine sees a cycle at run time
    graph.add_edge(WorkflowEdge("b", "a"))
    context = WorkflowContext()

    result = await engine.execute("a", context)

    assert result.status is WorkflowStatus.FAILED
    assert result.message == "Max iterations reached (5)"
    assert len(context.trace_log) == 5


@pytest.mark.asyncio
async def test_run_ending_exactly_at_bound_completes():
    graph = _linear(StartNode("a"), EndNode("b"))

    result = await WorkflowEngine(graph, max_iterations=2).execute(
        "a", WorkflowContext()
    )

    assert result.status is WorkflowStatus.COMPLETED


@pytest.mark.asyncio
async def test_no_traversable_edge_completes_at_current_node():
    graph = WorkflowGraph()
    graph.add_node(StartNode("start")).add_node(EndNode("end"))
    graph.add_edge(WorkflowEdge("start", "end", lambda ctx, res: False))

    result = await WorkflowEngine(graph).execute("start", WorkflowContext())

    assert result.status is WorkflowStatus.COMPLETED
    assert result.node_id == "start"


@pytest.mark.asyncio
async def test_missing_start_node():
    engine = WorkflowEngine(_linear(StartNode("start")))

    with pytest.raises(WorkflowDefinitionError, match="Start node not found: nope"):
        await engine.execute("nope", WorkflowContext())


def test_engine_validates_graph():
    graph = _linear(StartNode("a"), EndNode("b"))
    graph.add_edge(WorkflowEdge("b", "a"))

    with pytest.raises(CycleDetectedError):
        WorkflowEngine(graph)


def test_engine_rejects_non_positive_bound():
    with pytest.raises(ValueError):
        WorkflowEngine(WorkflowGraph(), max_iterations=0)
