"""Task executor - runs one task against its service with timeout and retry."""

import asyncio
from collections.abc import Mapping
from typing import Any

from core.domain.enums.execution_status import TaskStatus
from core.infrastructure.logging import get_logger
from core.settings import OrchestratorSettings

from . import events
from .bus import EventBusProtocol
from .exceptions import ServiceNotFoundError, TaskTimeoutError
from .models import TaskResult, WorkflowExecution, utc_now
from .registry import Service, ServiceRegistry
from .workflow import TaskDefinition


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class TaskExecutor:
    """Executes a single task of a workflow execution.

    The executor owns the TaskResult of the task it runs: it records the
    Running result, performs the attempts, merges output into the shared
    context and stamps the terminal status. Failures are recorded, never
    raised; only asyncio cancellation propagates (after the result has been
    marked Cancelled).
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        event_bus: EventBusProtocol,
        settings: OrchestratorSettings,
    ) -> None:
        """Initialize task executor.

        Args:
            registry: ServiceRegistry used to resolve task services
            event_bus: EventBusProtocol for lifecycle events
            settings: Engine settings (timeouts, retry cap, concurrency)
        """
        self._registry = registry
        self._event_bus = event_bus
        self._settings = settings
        self._semaphore = asyncio.Semaphore(settings.max_concurrent_tasks)
        self._logger = get_logger("orchestration.executor")

    async def execute(
        self,
        execution: WorkflowExecution,
        task: TaskDefinition,
        compensation: bool = False,
    ) -> TaskResult:
        """Execute a task with retry logic.

        Args:
            execution: Execution the task belongs to
            task: Task to execute
            compensation: Run as a compensation (single attempt, no retries)

        Returns:
            The task's terminal TaskResult (Completed or Failed)
        """
        result = TaskResult(
            task_id=task.task_id,
            status=TaskStatus.RUNNING,
            start_time=utc_now(),
            is_compensation=compensation,
        )
        async with execution.lock:
            execution.task_results[task.task_id] = result

        try:
            await self._publish_event(
                execution,
                events.TASK_STARTED,
                task,
                {"service": task.service_name, "method": task.method, "compensation": compensation},
            )

            service = self._registry.get(task.service_name)
            if service is None:
                # Configuration defect, not a transient fault: never retried
                return await self._fail(
                    execution, task, result, _describe(ServiceNotFoundError(task.service_name))
                )

            max_attempts = 1 if compensation else task.max_attempts
            timeout = task.timeout or self._settings.default_task_timeout
            last_error: Exception | None = None

            for attempt in range(1, max_attempts + 1):
                if execution.cancel_requested.is_set():
                    raise asyncio.CancelledError()
                async with execution.lock:
                    result.attempts = attempt
                    result.retry_count = attempt - 1
                    context = dict(execution.context)

                try:
                    output = await self._invoke(service, task, context, timeout)
                except Exception as exc:
                    last_error = exc
                    self._logger.warning(
                        "task_attempt_failed execution_id=%s task_id=%s attempt=%d "
                        "max_attempts=%d error=%s",
                        execution.execution_id,
                        task.task_id,
                        attempt,
                        max_attempts,
                        _describe(exc),
                    )
                    if attempt < max_attempts:
                        delay = task.delay_for_retry(attempt, self._settings.max_retry_delay)
                        await self._publish_event(
                            execution,
                            events.TASK_RETRYING,
                            task,
                            {"attempt": attempt, "delay": delay, "error": _describe(exc)},
                        )
                        if delay > 0:
                            await asyncio.sleep(delay)
                    continue

                return await self._complete(execution, task, result, output)

            error = _describe(last_error) if last_error else "Unknown error"
            return await self._fail(execution, task, result, error)

        except asyncio.CancelledError:
            await self._mark_cancelled(execution, task, result)
            raise

    async def _invoke(
        self,
        service: Service,
        task: TaskDefinition,
        context: dict[str, Any],
        timeout: float | None,
    ) -> Any:
        async with self._semaphore:
            call = service.execute(task.method, dict(task.parameters), context)
            if timeout is None:
                return await call
            try:
                return await asyncio.wait_for(call, timeout)
            except asyncio.TimeoutError as exc:
                raise TaskTimeoutError(task.task_id, timeout) from exc

    async def _complete(
        self,
        execution: WorkflowExecution,
        task: TaskDefinition,
        result: TaskResult,
        output: Any,
    ) -> TaskResult:
        async with execution.lock:
            result.status = TaskStatus.COMPLETED
            result.result = output
            result.end_time = utc_now()
            if isinstance(output, Mapping):
                execution.context.update(output)
            else:
                execution.context[f"{task.task_id}_result"] = output

        await self._publish_event(
            execution,
            events.TASK_COMPLETED,
            task,
            {
                "attempts": result.attempts,
                "retry_count": result.retry_count,
                "duration_seconds": result.duration_seconds,
                "compensation": result.is_compensation,
            },
        )
        return result

    async def _fail(
        self,
        execution: WorkflowExecution,
        task: TaskDefinition,
        result: TaskResult,
        error: str,
    ) -> TaskResult:
        async with execution.lock:
            result.status = TaskStatus.FAILED
            result.error = error
            result.end_time = utc_now()

        self._logger.error(
            "task_failed execution_id=%s task_id=%s attempts=%d error=%s",
            execution.execution_id,
            task.task_id,
            result.attempts,
            error,
        )
        await self._publish_event(
            execution,
            events.TASK_FAILED,
            task,
            {
                "attempts": result.attempts,
                "retry_count": result.retry_count,
                "error": error,
                "compensation": result.is_compensation,
            },
        )
        return result

    async def _mark_cancelled(
        self, execution: WorkflowExecution, task: TaskDefinition, result: TaskResult
    ) -> None:
        async with execution.lock:
            if result.is_terminal:
                return
            result.status = TaskStatus.CANCELLED
            result.error = "Task cancelled"
            result.end_time = utc_now()

        self._logger.info(
            "task_cancelled execution_id=%s task_id=%s attempts=%d",
            execution.execution_id,
            task.task_id,
            result.attempts,
        )
        await self._publish_event(
            execution, events.TASK_CANCELLED, task, {"attempts": result.attempts}
        )

    async def _publish_event(
        self,
        execution: WorkflowExecution,
        name: str,
        task: TaskDefinition,
        payload: dict[str, object],
    ) -> None:
        event = events.build_event(
            name=name,
            execution_id=str(execution.execution_id),
            workflow_id=execution.workflow_id,
            payload={"task_name": task.name, **payload},
            task_id=task.task_id,
        )
        try:
            await self._event_bus.publish(event)
        except Exception as exc:
            self._logger.error(
                "event_publish_failed event_name=%s execution_id=%s task_id=%s error=%s",
                name,
                execution.execution_id,
                task.task_id,
                exc,
                exc_info=True,
            )
