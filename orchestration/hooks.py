"""Observability hooks - lifecycle listeners attached to an event bus."""

from core.infrastructure.logging import get_logger

from . import events
from .bus import EventBusProtocol
from .events import Event


class ExecutionHook:
    """Base class for lifecycle listeners.

    Override the methods of interest; every method receives the published
    Event. Hooks observe only and must not be used for control flow.
    """

    async def on_workflow_started(self, event: Event) -> None:
        pass

    async def on_workflow_completed(self, event: Event) -> None:
        pass

    async def on_workflow_failed(self, event: Event) -> None:
        pass

    async def on_workflow_cancelled(self, event: Event) -> None:
        pass

    async def on_task_started(self, event: Event) -> None:
        pass

    async def on_task_retrying(self, event: Event) -> None:
        pass

    async def on_task_completed(self, event: Event) -> None:
        pass

    async def on_task_failed(self, event: Event) -> None:
        pass

    async def on_task_skipped(self, event: Event) -> None:
        pass

    async def on_task_cancelled(self, event: Event) -> None:
        pass

    async def on_compensation_scheduled(self, event: Event) -> None:
        pass


_HOOK_METHODS = {
    events.WORKFLOW_STARTED: "on_workflow_started",
    events.WORKFLOW_COMPLETED: "on_workflow_completed",
    events.WORKFLOW_FAILED: "on_workflow_failed",
    events.WORKFLOW_CANCELLED: "on_workflow_cancelled",
    events.TASK_STARTED: "on_task_started",
    events.TASK_RETRYING: "on_task_retrying",
    events.TASK_COMPLETED: "on_task_completed",
    events.TASK_FAILED: "on_task_failed",
    events.TASK_SKIPPED: "on_task_skipped",
    events.TASK_CANCELLED: "on_task_cancelled",
    events.TASK_COMPENSATION_SCHEDULED: "on_compensation_scheduled",
}


def register_hook(bus: EventBusProtocol, hook: ExecutionHook) -> None:
    """Subscribe every lifecycle method of ``hook`` to ``bus``."""
    for event_name, method_name in _HOOK_METHODS.items():
        bus.subscribe(event_name, getattr(hook, method_name))


class LoggingHook(ExecutionHook):
    """Logs every lifecycle transition."""

    def __init__(self, logger_name: str = "orchestration.lifecycle") -> None:
        self._logger = get_logger(logger_name)

    def _log(self, event: Event, level: str = "info") -> None:
        fields = " ".join(f"{key}={value}" for key, value in event.payload.items())
        getattr(self._logger, level)(
            "%s execution_id=%s task_id=%s %s",
            event.name,
            event.metadata.execution_id,
            event.metadata.task_id or "-",
            fields,
        )

    async def on_workflow_started(self, event: Event) -> None:
        self._log(event)

    async def on_workflow_completed(self, event: Event) -> None:
        self._log(event)

    async def on_workflow_failed(self, event: Event) -> None:
        self._log(event, "warning")

    async def on_workflow_cancelled(self, event: Event) -> None:
        self._log(event, "warning")

    async def on_task_started(self, event: Event) -> None:
        self._log(event, "debug")

    async def on_task_retrying(self, event: Event) -> None:
        self._log(event, "warning")

    async def on_task_completed(self, event: Event) -> None:
        self._log(event)

    async def on_task_failed(self, event: Event) -> None:
        self._log(event, "error")

    async def on_task_skipped(self, event: Event) -> None:
        self._log(event)

    async def on_task_cancelled(self, event: Event) -> None:
        self._log(event, "warning")

    async def on_compensation_scheduled(self, event: Event) -> None:
        self._log(event, "warning")
