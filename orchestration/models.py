"""Orchestration models - TaskResult, WorkflowExecution."""

import asyncio
import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from core.domain.enums.execution_status import TaskStatus, WorkflowStatus
from core.domain.value_objects import ExecutionID

from .workflow import WorkflowDefinition


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _copy_value(value: Any) -> Any:
    """Deep copy a context/result value, falling back to a shallow copy."""
    try:
        return copy.deepcopy(value)
    except (TypeError, copy.Error):
        return copy.copy(value)


@dataclass
class TaskResult:
    """Result of a task execution, owned by the executor running the task."""

    task_id: str
    status: TaskStatus = TaskStatus.PENDING
    result: Any = None
    error: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    retry_count: int = 0
    attempts: int = 0
    is_compensation: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_seconds(self) -> float | None:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    def copy(self) -> "TaskResult":
        return replace(self, result=_copy_value(self.result))

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging/storage."""
        return {
            "task_id": self.task_id,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_seconds": self.duration_seconds,
            "retry_count": self.retry_count,
            "attempts": self.attempts,
            "is_compensation": self.is_compensation,
        }


@dataclass
class WorkflowExecution:
    """Runtime state of one workflow run.

    The data fields (status, task results, context, timestamps, error) are
    shared between the scheduling loop and the task executors of this run and
    are only mutated while holding ``lock``. The remaining fields are runtime
    coordination primitives and are not part of snapshots.
    """

    execution_id: ExecutionID
    definition: WorkflowDefinition
    status: WorkflowStatus = WorkflowStatus.CREATED
    task_results: dict[str, TaskResult] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    start_time: datetime | None = None
    end_time: datetime | None = None
    error: str | None = None

    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)
    changed: asyncio.Condition = field(init=False, repr=False, compare=False)
    cancel_requested: asyncio.Event = field(
        default_factory=asyncio.Event, repr=False, compare=False
    )
    finished: asyncio.Event = field(default_factory=asyncio.Event, repr=False, compare=False)
    in_flight: set[str] = field(default_factory=set, repr=False, compare=False)
    workers: set["asyncio.Task[TaskResult]"] = field(
        default_factory=set, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        # Signalled (under ``lock``) whenever a task finishes
        self.changed = asyncio.Condition(self.lock)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def workflow_id(self) -> str:
        return self.definition.workflow_id

    def result_for(self, task_id: str) -> TaskResult | None:
        return self.task_results.get(task_id)

    def status_of(self, task_id: str) -> TaskStatus:
        result = self.task_results.get(task_id)
        return result.status if result else TaskStatus.PENDING

    def snapshot(self) -> "WorkflowExecution":
        """Return a detached copy of the data fields, safe to hand to callers."""
        clone = WorkflowExecution(
            execution_id=self.execution_id,
            definition=self.definition,
            status=self.status,
            task_results={task_id: r.copy() for task_id, r in self.task_results.items()},
            context={key: _copy_value(value) for key, value in self.context.items()},
            created_at=self.created_at,
            start_time=self.start_time,
            end_time=self.end_time,
            error=self.error,
        )
        if self.finished.is_set():
            clone.finished.set()
        return clone

    def progress(self) -> dict[str, Any]:
        """Calculate progress statistics over the schedulable tasks."""
        tasks = self.definition.schedulable_tasks
        counts = {status.value: 0 for status in TaskStatus}
        for task in tasks:
            counts[self.status_of(task.task_id).value] += 1

        finished = sum(
            counts[status.value]
            for status in TaskStatus
            if status.is_terminal
        )
        total = len(tasks)
        return {
            "total_tasks": total,
            **counts,
            "compensations": sum(1 for r in self.task_results.values() if r.is_compensation),
            "percent": round(finished / total * 100, 2) if total else 0.0,
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging/storage."""
        return {
            "execution_id": str(self.execution_id),
            "workflow_id": self.definition.workflow_id,
            "workflow_name": self.definition.name,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "error": self.error,
            "context": dict(self.context),
            "tasks": {task_id: r.to_dict() for task_id, r in self.task_results.items()},
            "progress": self.progress(),
        }
