"""Workflow builder - fluent authoring API for WorkflowDefinition."""

from collections.abc import Iterable, Mapping
from typing import Any
from uuid import uuid4

from .workflow import ErrorHandling, TaskDefinition, WorkflowDefinition


class WorkflowBuilder:
    """Fluent builder producing an immutable, validated WorkflowDefinition.

    Example::

        workflow = (
            WorkflowBuilder("order_fulfilment")
            .with_error_handling(ErrorHandling.COMPENSATE)
            .with_timeout(30)
            .task("reserve_stock", "inventory", "reserve",
                  parameters={"sku": "A-1", "quantity": 2},
                  compensate_with="release_stock")
            .task("release_stock", "inventory", "release")
            .task("charge", "payment", "charge",
                  depends_on=["reserve_stock"], retry_count=2, retry_delay=0.5)
            .build()
        )
    """

    def __init__(self, name: str, workflow_id: str | None = None) -> None:
        """Initialize builder.

        Args:
            name: Workflow name
            workflow_id: Optional workflow id (generated when omitted)
        """
        self._name = name
        self._workflow_id = workflow_id or f"{name}-{uuid4().hex[:8]}"
        self._tasks: list[TaskDefinition] = []
        self._global_timeout: float | None = None
        self._error_handling = ErrorHandling.FAIL_FAST

    def with_timeout(self, seconds: float | None) -> "WorkflowBuilder":
        self._global_timeout = seconds
        return self

    def with_error_handling(self, strategy: ErrorHandling | str) -> "WorkflowBuilder":
        self._error_handling = ErrorHandling(strategy)
        return self

    def add_task(self, task: TaskDefinition) -> "WorkflowBuilder":
        self._tasks.append(task)
        return self

    def task(
        self,
        task_id: str,
        service_name: str,
        method: str,
        *,
        name: str = "",
        parameters: Mapping[str, Any] | None = None,
        depends_on: Iterable[str] = (),
        timeout: float | None = None,
        retry_count: int = 0,
        retry_delay: float = 0.0,
        retry_backoff: float = 1.0,
        condition: str | None = None,
        compensate_with: str | None = None,
    ) -> "WorkflowBuilder":
        """Append a task built from keyword arguments.

        Raises:
            WorkflowValidationError: If the task fields are invalid
        """
        if isinstance(depends_on, str):
            depends_on = (depends_on,)
        return self.add_task(
            TaskDefinition(
                task_id=task_id,
                name=name,
                service_name=service_name,
                method=method,
                parameters=parameters or {},
                depends_on=frozenset(depends_on),
                timeout=timeout,
                retry_count=retry_count,
                retry_delay=retry_delay,
                retry_backoff=retry_backoff,
                condition=condition,
                compensate_with=compensate_with,
            )
        )

    def build(self) -> WorkflowDefinition:
        """Validate and freeze the workflow.

        Raises:
            WorkflowValidationError: If the task graph is invalid
        """
        return WorkflowDefinition(
            workflow_id=self._workflow_id,
            name=self._name,
            tasks=tuple(self._tasks),
            global_timeout=self._global_timeout,
            error_handling=self._error_handling,
        )
