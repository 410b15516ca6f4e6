"""Init file for the workflow engine."""

from .context import NodeResult, NodeStatus, WorkflowContext, WorkflowResult
from .engine import WorkflowEngine
from .graph import WorkflowEdge, WorkflowGraph
from .nodes import ActionNode, AiDecisionNode, EndNode, LogicDecisionNode, StartNode


__all__ = [
    "ActionNode",
    "AiDecisionNode",
    "EndNode",
    "LogicDecisionNode",
    "NodeResult",
    "NodeStatus",
    "StartNode",
    "WorkflowContext",
    "WorkflowEdge",
    "WorkflowEngine",
    "WorkflowGraph",
    "WorkflowResult",
]
