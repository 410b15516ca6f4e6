class DomainError(Exception):
    """Base class for domain-specific errors."""

    pass


class WorkflowDefinitionError(DomainError):
    """Raised when a workflow graph is structurally invalid."""

    pass


class DuplicateNodeError(WorkflowDefinitionError):
    """Exception raised when a node id is added to a graph twice."""

    pass


class DanglingEdgeError(WorkflowDefinitionError):
    """Exception raised when an edge references a node that does not exist."""

    pass


class CycleDetectedError(WorkflowDefinitionError):
    """Exception raised when a node can reach itself through graph edges."""

    pass


class UnknownWorkflowTypeError(DomainError):
    """Exception raised when no workflow is registered under the given type."""

    pass


class UnknownFormTypeError(DomainError):
    """Exception raised when no form schema exists for the given type."""

    pass
