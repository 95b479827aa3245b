"""Domain enums."""

from .execution_status import TaskStatus, WorkflowStatus

__all__ = ["TaskStatus", "WorkflowStatus"]
