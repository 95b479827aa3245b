"""Orchestration events - Event, EventMetadata and lifecycle event names."""

from dataclasses import dataclass
from datetime import datetime, timezone

WORKFLOW_STARTED = "workflow.started"
WORKFLOW_COMPLETED = "workflow.completed"
WORKFLOW_FAILED = "workflow.failed"
WORKFLOW_CANCELLED = "workflow.cancelled"

TASK_STARTED = "task.started"
TASK_RETRYING = "task.retrying"
TASK_COMPLETED = "task.completed"
TASK_FAILED = "task.failed"
TASK_SKIPPED = "task.skipped"
TASK_CANCELLED = "task.cancelled"
TASK_COMPENSATION_SCHEDULED = "task.compensation_scheduled"

ALL_EVENTS = "*"


@dataclass
class EventMetadata:
    """Metadata for an event."""

    execution_id: str
    workflow_id: str
    timestamp: datetime
    task_id: str | None = None


@dataclass
class Event:
    """Lifecycle event emitted by the orchestration engine."""

    name: str
    payload: dict[str, object]
    metadata: EventMetadata


def build_event(
    name: str,
    execution_id: str,
    workflow_id: str,
    payload: dict[str, object],
    task_id: str | None = None,
) -> Event:
    """Create an event stamped with the current UTC time."""
    metadata = EventMetadata(
        execution_id=execution_id,
        workflow_id=workflow_id,
        timestamp=datetime.now(timezone.utc),
        task_id=task_id,
    )
    return Event(name=name, payload=payload, metadata=metadata)
