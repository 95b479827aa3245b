"""Orchestration exceptions - error taxonomy for the workflow engine."""


class OrchestrationError(Exception):
    """Base class for all orchestration errors."""


class WorkflowValidationError(OrchestrationError):
    """Raised when a workflow definition is structurally invalid."""

    def __init__(self, workflow_id: str, problems: list[str]) -> None:
        """Initialize validation error.

        Args:
            workflow_id: Identifier of the rejected workflow
            problems: Human-readable list of validation problems
        """
        self.workflow_id = workflow_id
        self.problems = list(problems)
        super().__init__(
            f"Invalid workflow '{workflow_id}': " + "; ".join(self.problems)
        )


class ConditionSyntaxError(OrchestrationError):
    """Raised when a condition expression cannot be parsed."""

    def __init__(self, expression: str, reason: str) -> None:
        self.expression = expression
        self.reason = reason
        super().__init__(f"Invalid condition {expression!r}: {reason}")


class ServiceNotFoundError(OrchestrationError):
    """Raised when a task references a service that is not registered."""

    def __init__(self, service_name: str) -> None:
        self.service_name = service_name
        super().__init__(f"Service not found: {service_name}")


class ServiceError(OrchestrationError):
    """Application error raised by a service implementation."""


class TaskTimeoutError(OrchestrationError):
    """A single task attempt exceeded its timeout."""

    def __init__(self, task_id: str, timeout: float) -> None:
        self.task_id = task_id
        self.timeout = timeout
        super().__init__(f"Task '{task_id}' timed out after {timeout}s")


class ExecutionNotFoundError(OrchestrationError):
    """Raised when an execution id is unknown to the engine."""

    def __init__(self, execution_id: str) -> None:
        self.execution_id = execution_id
        super().__init__(f"Execution not found: {execution_id}")
