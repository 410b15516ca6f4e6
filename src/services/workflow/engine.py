"""Executes a workflow graph from a start node."""

from __future__ import annotations

import logging

from core.exceptions import WorkflowDefinitionError
from services.workflow.context import (
    NodeResult,
    NodeStatus,
    TraceEntry,
    WorkflowContext,
    WorkflowResult,
)
from services.workflow.graph import WorkflowGraph
from services.workflow.nodes import WorkflowNode


logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 100


class WorkflowEngine:
    """Walks a validated graph one node at a time.

    The graph is validated on construction. Each run is bounded by
    `max_iterations` node executions.
    """

    def __init__(
        self, graph: WorkflowGraph, max_iterations: int = DEFAULT_MAX_ITERATIONS
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        graph.validate()
        self.graph = graph
        self.max_iterations = max_iterations

    def _next_node(
        self, node_id: str, context: WorkflowContext, result: NodeResult
    ) -> WorkflowNode | None:
        for edge in self.graph.get_outgoing_edges(node_id):
            if edge.can_traverse(context, result):
                logger.debug(
                    "Taking edge %s -> %s (label: %s)",
                    node_id,
                    edge.to_node_id,
                    edge.label,
                )
                return self.graph.get_node(edge.to_node_id)
        logger.debug("No traversable edge from %s, workflow complete", node_id)
        return None

    async def execute(
        self, start_node_id: str, context: WorkflowContext
    ) -> WorkflowResult:
        current = self.graph.get_node(start_node_id)
        if current is None:
            raise WorkflowDefinitionError(f"Start node not found: {start_node_id}")

        logger.info("Starting workflow execution from node: %s", start_node_id)
        iterations = 0
        last_node_id = start_node_id

        while current is not None:
            if iterations >= self.max_iterations:
                logger.error("Workflow stopped after %d iterations", iterations)
                return WorkflowResult.failed(
                    f"Max iterations reached ({self.max_iterations})",
                    context,
                    last_node_id,
                )
            iterations += 1
            node_id = current.id
            last_node_id = node_id

            try:
                result = await current.execute(context)
            except Exception as e:  # noqa: BLE001 - node faults stop the run, not the engine
                logger.exception("Error executing node %s", node_id)
                context.append_trace(
                    TraceEntry(
                        node_id=node_id,
                        node_type=current.node_type,
                        status=NodeStatus.FAILURE,
                        error=str(e),
                    )
                )
                return WorkflowResult.failed(
                    f"Error in node {node_id}: {e}", context, node_id
                )

            context.append_trace(
                TraceEntry(
                    node_id=node_id,
                    node_type=current.node_type,
                    status=result.status,
                    output_summary=result.payload,
                )
            )

            if result.status is NodeStatus.FAILURE:
                logger.error("Node %s failed: %s", node_id, result.payload)
                return WorkflowResult.failed(str(result.payload), context, node_id)

            if result.status is NodeStatus.WAITING:
                logger.info("Node %s is waiting for external input", node_id)
                return WorkflowResult.waiting(node_id, context)

            try:
                current = self._next_node(node_id, context, result)
            except Exception as e:  # noqa: BLE001
                logger.exception("Edge condition failed after node %s", node_id)
                return WorkflowResult.failed(
                    f"Error in node {node_id}: {e}", context, node_id
                )

        logger.info("Workflow completed at node: %s", last_node_id)
        return WorkflowResult.completed(context, last_node_id)
