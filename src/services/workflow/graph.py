"""Static workflow definition: nodes, conditional edges and cycle validation."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from core.exceptions import CycleDetectedError, DanglingEdgeError, DuplicateNodeError
from services.workflow.context import NodeResult, WorkflowContext
from services.workflow.nodes import WorkflowNode


EdgeCondition = Callable[[WorkflowContext, NodeResult], bool]


def _always(context: WorkflowContext, result: NodeResult) -> bool:
    return True


@dataclass(frozen=True, slots=True)
class WorkflowEdge:
    """Directed connection between two nodes.

    Without a condition the edge always applies and is labelled DEFAULT;
    with one it is labelled CONDITIONAL unless a label is given.
    """

    from_node_id: str
    to_node_id: str
    condition: EdgeCondition | None = None
    label: str | None = None
    priority: int = 0
    _predicate: EdgeCondition = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_predicate", self.condition or _always)
        if self.label is None:
            label = "DEFAULT" if self.condition is None else "CONDITIONAL"
            object.__setattr__(self, "label", label)

    def can_traverse(self, context: WorkflowContext, result: NodeResult) -> bool:
        return bool(self._predicate(context, result))


class WorkflowGraph:
    """Nodes keyed by id plus the edges between them.

    Ids are checked on insertion; acyclicity is checked by `validate`.
    """

    def __init__(self) -> None:
        self._nodes: dict[str, WorkflowNode] = {}
        self._edges: list[WorkflowEdge] = []

    @property
    def nodes(self) -> dict[str, WorkflowNode]:
        return dict(self._nodes)

    @property
    def edges(self) -> list[WorkflowEdge]:
        return list(self._edges)

    def add_node(self, node: WorkflowNode) -> WorkflowGraph:
        if node.id in self._nodes:
            raise DuplicateNodeError(f"Duplicate node ID: {node.id}")
        self._nodes[node.id] = node
        return self

    def add_edge(self, edge: WorkflowEdge) -> WorkflowGraph:
        missing = [
            node_id
            for node_id in (edge.from_node_id, edge.to_node_id)
            if node_id not in self._nodes
        ]
        if missing:
            raise DanglingEdgeError(
                f"Edge {edge.from_node_id} -> {edge.to_node_id} references "
                f"unknown node(s): {', '.join(missing)}"
            )
        self._edges.append(edge)
        return self

    def get_node(self, node_id: str) -> WorkflowNode | None:
        return self._nodes.get(node_id)

    def get_outgoing_edges(self, node_id: str) -> list[WorkflowEdge]:
        """Edges leaving `node_id`, highest priority first, ties in insertion order."""
        outgoing = [e for e in self._edges if e.from_node_id == node_id]
        # sorted() is stable, so equal priorities keep insertion order
        return sorted(outgoing, key=lambda e: -e.priority)

    def validate(self) -> None:
        """Raise CycleDetectedError if any node can reach itself.

        Iterative three-colour DFS over every node; a self-loop is a cycle.
        """
        adjacency: dict[str, list[str]] = {node_id: [] for node_id in self._nodes}
        for edge in self._edges:
            adjacency[edge.from_node_id].append(edge.to_node_id)

        white, grey, black = 0, 1, 2
        colour = dict.fromkeys(self._nodes, white)

        for root in self._nodes:
            if colour[root] != white:
                continue
            colour[root] = grey
            stack = [(root, iter(adjacency[root]))]
            while stack:
                node_id, children = stack[-1]
                child = next(children, None)
                if child is None:
                    colour[node_id] = black
                    stack.pop()
                elif colour[child] == grey:
                    raise CycleDetectedError(
                        f"Cycle detected in workflow graph at node: {child}"
                    )
                elif colour[child] == white:
                    colour[child] = grey
                    stack.append((child, iter(adjacency[child])))
