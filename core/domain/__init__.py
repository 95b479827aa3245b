"""Domain layer - pure domain enums and value objects."""

from .enums import TaskStatus, WorkflowStatus
from .value_objects import ExecutionID

__all__ = [
    "ExecutionID",
    "TaskStatus",
    "WorkflowStatus",
]
