"""Definition schema - pydantic models for plain-mapping workflow payloads."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .workflow import ErrorHandling, TaskDefinition, WorkflowDefinition


class TaskDefinitionSchema(BaseModel):
    """Task entry of a workflow payload."""

    model_config = ConfigDict(extra="forbid")

    task_id: str = Field(..., min_length=1, description="Unique task id within the workflow")
    name: str = Field("", description="Human-readable task name (defaults to task_id)")
    service_name: str = Field(..., min_length=1, description="Registered service to call")
    method: str = Field(..., min_length=1, description="Service method to invoke")
    parameters: dict[str, Any] = Field(default_factory=dict, description="Call parameters")
    timeout: float | None = Field(None, gt=0, description="Per-attempt timeout in seconds")
    retry_count: int = Field(0, ge=0, description="Retries after the first attempt")
    retry_delay: float = Field(0.0, ge=0, description="Delay before each retry in seconds")
    retry_backoff: float = Field(1.0, ge=1.0, description="Delay multiplier per retry")
    depends_on: list[str] = Field(default_factory=list, description="Upstream task ids")
    condition: str | None = Field(None, description="Boolean gate over the shared context")
    compensate_with: str | None = Field(None, description="Compensating task id")

    def to_definition(self) -> TaskDefinition:
        return TaskDefinition(
            task_id=self.task_id,
            name=self.name,
            service_name=self.service_name,
            method=self.method,
            parameters=self.parameters,
            timeout=self.timeout,
            retry_count=self.retry_count,
            retry_delay=self.retry_delay,
            retry_backoff=self.retry_backoff,
            depends_on=frozenset(self.depends_on),
            condition=self.condition,
            compensate_with=self.compensate_with,
        )


class WorkflowDefinitionSchema(BaseModel):
    """Workflow payload as produced by callers."""

    model_config = ConfigDict(extra="forbid")

    workflow_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    tasks: list[TaskDefinitionSchema] = Field(..., min_length=1)
    global_timeout: float | None = Field(None, gt=0)
    error_handling: ErrorHandling = ErrorHandling.FAIL_FAST

    def to_definition(self) -> WorkflowDefinition:
        """Convert into a validated WorkflowDefinition.

        Raises:
            WorkflowValidationError: If the task graph is invalid
        """
        return WorkflowDefinition(
            workflow_id=self.workflow_id,
            name=self.name,
            tasks=tuple(task.to_definition() for task in self.tasks),
            global_timeout=self.global_timeout,
            error_handling=self.error_handling,
        )
