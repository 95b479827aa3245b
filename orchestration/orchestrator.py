"""Orchestrator - schedules workflow task graphs with eventing and state tracking."""

import asyncio

from core.domain.enums.execution_status import TaskStatus, WorkflowStatus
from core.domain.value_objects import ExecutionID
from core.infrastructure.logging import get_logger
from core.settings import OrchestratorSettings, get_orchestrator_settings

from . import events
from .bus import EventBusProtocol, InMemoryEventBus
from .conditions import ConditionEvaluator
from .exceptions import ExecutionNotFoundError
from .executor import TaskExecutor
from .models import TaskResult, WorkflowExecution, utc_now
from .registry import ServiceRegistry
from .workflow import ErrorHandling, TaskDefinition, WorkflowDefinition

_FINAL_EVENTS = {
    WorkflowStatus.COMPLETED: events.WORKFLOW_COMPLETED,
    WorkflowStatus.FAILED: events.WORKFLOW_FAILED,
    WorkflowStatus.CANCELLED: events.WORKFLOW_CANCELLED,
}


class Orchestrator:
    """Orchestrator for running workflow graphs with eventing and execution tracking.

    Each submitted workflow runs in its own background asyncio task. The
    orchestrator owns its service registry and the map of executions it
    started; nothing is shared between orchestrator instances.
    """

    def __init__(
        self,
        registry: ServiceRegistry | None = None,
        event_bus: EventBusProtocol | None = None,
        settings: OrchestratorSettings | None = None,
        evaluator: ConditionEvaluator | None = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            registry: ServiceRegistry tasks are dispatched to
            event_bus: EventBusProtocol for lifecycle events
            settings: Engine settings (defaults to environment settings)
            evaluator: ConditionEvaluator gating conditional tasks
        """
        self._settings = settings or get_orchestrator_settings()
        self._registry = registry if registry is not None else ServiceRegistry()
        self._event_bus = event_bus or InMemoryEventBus(
            handler_timeout=self._settings.event_handler_timeout
        )
        self._evaluator = evaluator or ConditionEvaluator()
        self._executor = TaskExecutor(self._registry, self._event_bus, self._settings)
        self._executions: dict[str, WorkflowExecution] = {}
        self._runners: dict[str, asyncio.Task[None]] = {}
        self._pending_publishes: set[asyncio.Future[None]] = set()
        self._logger = get_logger("orchestration.orchestrator")

    @property
    def registry(self) -> ServiceRegistry:
        return self._registry

    @property
    def event_bus(self) -> EventBusProtocol:
        return self._event_bus

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute_workflow(
        self,
        definition: WorkflowDefinition,
        initial_context: dict[str, object] | None = None,
    ) -> ExecutionID:
        """Start a workflow run in the background.

        Args:
            definition: Validated WorkflowDefinition to run
            initial_context: Optional seed for the shared context

        Returns:
            ExecutionID of the new run (returned before any task executes)

        Raises:
            TypeError: If ``definition`` is not a WorkflowDefinition
        """
        if not isinstance(definition, WorkflowDefinition):
            raise TypeError(
                f"definition must be a WorkflowDefinition, got {type(definition).__name__}"
            )

        execution_id = ExecutionID.generate()
        execution = WorkflowExecution(
            execution_id=execution_id,
            definition=definition,
            context=dict(initial_context or {}),
        )
        key = str(execution_id)
        self._executions[key] = execution

        runner = asyncio.create_task(self._run(execution), name=f"workflow-{key}")
        self._runners[key] = runner
        runner.add_done_callback(lambda _task: self._runners.pop(key, None))

        self._logger.info(
            "workflow_submitted execution_id=%s workflow_id=%s workflow_name=%s task_count=%d",
            key,
            definition.workflow_id,
            definition.name,
            len(definition.tasks),
        )
        return execution_id

    async def run_workflow(
        self,
        definition: WorkflowDefinition,
        initial_context: dict[str, object] | None = None,
        timeout: float | None = None,
    ) -> WorkflowExecution:
        """Start a workflow and wait for its terminal snapshot."""
        execution_id = await self.execute_workflow(definition, initial_context)
        return await self.wait_for_completion(execution_id, timeout=timeout)

    def get_execution_status(self, execution_id: ExecutionID | str) -> WorkflowExecution | None:
        """Return a read-only snapshot of an execution, or None if unknown."""
        execution = self._executions.get(str(execution_id))
        return execution.snapshot() if execution else None

    def list_executions(self, status: WorkflowStatus | None = None) -> list[WorkflowExecution]:
        return [
            execution.snapshot()
            for execution in self._executions.values()
            if status is None or execution.status == status
        ]

    async def wait_for_completion(
        self, execution_id: ExecutionID | str, timeout: float | None = None
    ) -> WorkflowExecution:
        """Wait until an execution reaches a terminal status.

        Raises:
            ExecutionNotFoundError: If the execution is unknown
            asyncio.TimeoutError: If ``timeout`` elapses first
        """
        execution = self._require(execution_id)
        await asyncio.wait_for(execution.finished.wait(), timeout)
        return execution.snapshot()

    async def cancel_workflow(self, execution_id: ExecutionID | str) -> bool:
        """Cancel a running execution.

        Returns:
            True if the execution was transitioned to Cancelled; False if it
            does not exist or is already terminal
        """
        key = str(execution_id)
        execution = self._executions.get(key)
        if execution is None or execution.is_terminal:
            return False

        self._logger.info("workflow_cancel_requested execution_id=%s", key)
        execution.cancel_requested.set()

        runner = self._runners.get(key)
        if runner is not None and not runner.done() and runner is not asyncio.current_task():
            runner.cancel()
            await asyncio.wait([runner])

        await self._cancel_workers(execution)
        await self._finalize(execution, WorkflowStatus.CANCELLED, "Workflow cancelled")
        return execution.status == WorkflowStatus.CANCELLED

    def discard_execution(self, execution_id: ExecutionID | str) -> bool:
        """Forget a terminal execution. Running executions are kept."""
        key = str(execution_id)
        execution = self._executions.get(key)
        if execution is None or not execution.is_terminal:
            return False
        del self._executions[key]
        return True

    async def shutdown(self) -> None:
        """Cancel every execution that is still running."""
        for key, execution in list(self._executions.items()):
            if not execution.is_terminal:
                await self.cancel_workflow(key)

    async def health_check(self) -> dict[str, str | None]:
        return await self._registry.check_health()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _require(self, execution_id: ExecutionID | str) -> WorkflowExecution:
        execution = self._executions.get(str(execution_id))
        if execution is None:
            raise ExecutionNotFoundError(str(execution_id))
        return execution

    async def _run(self, execution: WorkflowExecution) -> None:
        definition = execution.definition
        timeout = definition.global_timeout or self._settings.default_global_timeout

        async with execution.lock:
            execution.status = WorkflowStatus.RUNNING
            execution.start_time = utc_now()

        self._logger.info(
            "workflow_starting execution_id=%s workflow_name=%s error_handling=%s timeout=%s",
            execution.execution_id,
            definition.name,
            definition.error_handling.value,
            timeout,
        )
        await self._publish_event(
            execution,
            events.WORKFLOW_STARTED,
            {
                "workflow_name": definition.name,
                "task_count": len(definition.tasks),
                "error_handling": definition.error_handling.value,
            },
        )

        try:
            if timeout is None:
                status, error = await self._schedule(execution)
            else:
                status, error = await asyncio.wait_for(self._schedule(execution), timeout)
            await self._finalize(execution, status, error)
        except asyncio.TimeoutError:
            execution.cancel_requested.set()
            await self._cancel_workers(execution)
            await self._finalize(
                execution, WorkflowStatus.CANCELLED, f"Workflow timed out after {timeout}s"
            )
        except asyncio.CancelledError:
            execution.cancel_requested.set()
            await self._cancel_workers(execution)
            await self._finalize(execution, WorkflowStatus.CANCELLED, "Workflow cancelled")
            raise
        except Exception as exc:
            self._logger.error(
                "workflow_error execution_id=%s error=%s",
                execution.execution_id,
                exc,
                exc_info=True,
            )
            await self._cancel_workers(execution)
            await self._finalize(
                execution, WorkflowStatus.FAILED, f"Workflow execution error: {exc}"
            )

    async def _schedule(self, execution: WorkflowExecution) -> tuple[WorkflowStatus, str | None]:
        """Run the scheduling loop until no further progress is possible."""
        while True:
            async with execution.changed:
                ready, skipped = self._collect_ready(execution)
                if not ready and not skipped:
                    if not execution.in_flight:
                        break
                    # Only out-of-band compensations are running: wait for one to finish
                    await execution.changed.wait()
                    continue
                group = self._next_group(ready)
                execution.in_flight.update(task.task_id for task in group)

            for task in skipped:
                await self._publish_task_event(
                    execution, events.TASK_SKIPPED, task, {"condition": task.condition}
                )
            if not group:
                continue

            self._logger.info(
                "group_dispatching execution_id=%s tasks=%s",
                execution.execution_id,
                [task.task_id for task in group],
            )
            results = await self._run_group(execution, group)

            failed = [result for result in results if result.status == TaskStatus.FAILED]
            if failed and await self._apply_error_strategy(execution, failed):
                first = failed[0]
                return WorkflowStatus.FAILED, f"Task '{first.task_id}' failed: {first.error}"

        return self._resolve_final_status(execution)

    def _collect_ready(
        self, execution: WorkflowExecution
    ) -> tuple[list[TaskDefinition], list[TaskDefinition]]:
        """Compute the ready set. Must be called with the execution lock held.

        Tasks whose dependencies are satisfied but whose condition is false are
        recorded as Skipped here and returned separately.
        """
        ready: list[TaskDefinition] = []
        skipped: list[TaskDefinition] = []
        for task in execution.definition.schedulable_tasks:
            if task.task_id in execution.in_flight:
                continue
            if execution.status_of(task.task_id) != TaskStatus.PENDING:
                continue
            if any(execution.status_of(dep) != TaskStatus.COMPLETED for dep in task.depends_on):
                continue
            if task.condition and not self._evaluator.evaluate(task.condition, execution.context):
                now = utc_now()
                execution.task_results[task.task_id] = TaskResult(
                    task_id=task.task_id,
                    status=TaskStatus.SKIPPED,
                    start_time=now,
                    end_time=now,
                )
                skipped.append(task)
                continue
            ready.append(task)
        return ready, skipped

    @staticmethod
    def _next_group(ready: list[TaskDefinition]) -> list[TaskDefinition]:
        """Return the first parallel group: ready tasks sharing a dependency set."""
        if not ready:
            return []
        groups: dict[frozenset[str], list[TaskDefinition]] = {}
        for task in ready:
            groups.setdefault(task.depends_on, []).append(task)
        return next(iter(groups.values()))

    async def _run_group(
        self, execution: WorkflowExecution, group: list[TaskDefinition]
    ) -> list[TaskResult]:
        workers = [
            asyncio.create_task(
                self._dispatch(execution, task),
                name=f"task-{execution.execution_id}-{task.task_id}",
            )
            for task in group
        ]
        execution.workers.update(workers)
        try:
            return list(await asyncio.gather(*workers))
        except (Exception, asyncio.CancelledError):
            # gather does not stop siblings of a raising worker
            for worker in workers:
                if not worker.done():
                    worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise
        finally:
            execution.workers.difference_update(workers)

    async def _dispatch(
        self, execution: WorkflowExecution, task: TaskDefinition, compensation: bool = False
    ) -> TaskResult:
        try:
            return await self._executor.execute(execution, task, compensation=compensation)
        finally:
            async with execution.changed:
                execution.in_flight.discard(task.task_id)
                execution.changed.notify_all()

    async def _apply_error_strategy(
        self, execution: WorkflowExecution, failed: list[TaskResult]
    ) -> bool:
        """Apply the workflow's error handling. Returns True to abort the run."""
        strategy = execution.definition.error_handling
        self._logger.warning(
            "group_failures execution_id=%s strategy=%s failed=%s",
            execution.execution_id,
            strategy.value,
            [result.task_id for result in failed],
        )
        if strategy == ErrorHandling.FAIL_FAST:
            return True
        if strategy == ErrorHandling.COMPENSATE:
            for result in failed:
                task = execution.definition.get_task(result.task_id)
                if task is not None and task.compensate_with:
                    await self._schedule_compensation(execution, task)
        return False

    async def _schedule_compensation(
        self, execution: WorkflowExecution, failed_task: TaskDefinition
    ) -> None:
        compensation = execution.definition.get_task(failed_task.compensate_with or "")
        if compensation is None:
            return

        async with execution.lock:
            if (
                compensation.task_id in execution.task_results
                or compensation.task_id in execution.in_flight
            ):
                self._logger.warning(
                    "compensation_already_scheduled execution_id=%s task_id=%s failed_task=%s",
                    execution.execution_id,
                    compensation.task_id,
                    failed_task.task_id,
                )
                return
            execution.in_flight.add(compensation.task_id)

        await self._publish_task_event(
            execution,
            events.TASK_COMPENSATION_SCHEDULED,
            compensation,
            {"failed_task": failed_task.task_id},
        )
        worker = asyncio.create_task(
            self._dispatch(execution, compensation, compensation=True),
            name=f"compensation-{execution.execution_id}-{compensation.task_id}",
        )
        execution.workers.add(worker)
        worker.add_done_callback(execution.workers.discard)

    async def _cancel_workers(self, execution: WorkflowExecution) -> None:
        workers = [worker for worker in execution.workers if not worker.done()]
        for worker in workers:
            worker.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)

    def _resolve_final_status(
        self, execution: WorkflowExecution
    ) -> tuple[WorkflowStatus, str | None]:
        unfinished = [
            task.task_id
            for task in execution.definition.schedulable_tasks
            if execution.status_of(task.task_id) not in (TaskStatus.COMPLETED, TaskStatus.SKIPPED)
        ]
        if not unfinished:
            return WorkflowStatus.COMPLETED, None

        failed = [t for t in unfinished if execution.status_of(t) == TaskStatus.FAILED]
        blocked = [t for t in unfinished if execution.status_of(t) == TaskStatus.PENDING]
        problems = []
        if failed:
            problems.append(f"failed tasks: {', '.join(failed)}")
        if blocked:
            problems.append(f"unsatisfied tasks: {', '.join(blocked)}")
        return WorkflowStatus.FAILED, "; ".join(problems) or "Workflow did not complete"

    async def _finalize(
        self, execution: WorkflowExecution, status: WorkflowStatus, error: str | None
    ) -> bool:
        """Move an execution to a terminal status exactly once."""
        async with execution.lock:
            if execution.is_terminal:
                return False
            execution.status = status
            execution.error = error
            execution.end_time = utc_now()
        execution.finished.set()

        progress = execution.progress()
        duration = (
            (execution.end_time - execution.start_time).total_seconds()
            if execution.start_time and execution.end_time
            else None
        )
        self._logger.info(
            "workflow_finished execution_id=%s workflow_name=%s status=%s duration_s=%s error=%s",
            execution.execution_id,
            execution.definition.name,
            status.value,
            duration,
            error,
        )
        publish = asyncio.ensure_future(
            self._publish_event(
                execution,
                _FINAL_EVENTS[status],
                {
                    "workflow_name": execution.definition.name,
                    "status": status.value,
                    "error": error,
                    "duration_seconds": duration,
                    "completed_count": progress[TaskStatus.COMPLETED.value],
                    "failed_count": progress[TaskStatus.FAILED.value],
                },
            )
        )
        # The terminal event is delivered even if the runner is cancelled meanwhile
        self._pending_publishes.add(publish)
        publish.add_done_callback(self._pending_publishes.discard)
        await asyncio.shield(publish)
        return True

    async def _publish_event(
        self, execution: WorkflowExecution, name: str, payload: dict[str, object]
    ) -> None:
        await self._publish(
            events.build_event(
                name=name,
                execution_id=str(execution.execution_id),
                workflow_id=execution.workflow_id,
                payload=payload,
            )
        )

    async def _publish_task_event(
        self,
        execution: WorkflowExecution,
        name: str,
        task: TaskDefinition,
        payload: dict[str, object],
    ) -> None:
        await self._publish(
            events.build_event(
                name=name,
                execution_id=str(execution.execution_id),
                workflow_id=execution.workflow_id,
                payload={"task_name": task.name, **payload},
                task_id=task.task_id,
            )
        )

    async def _publish(self, event: events.Event) -> None:
        """Publish to the bus; bus failures are logged, never raised."""
        try:
            await self._event_bus.publish(event)
        except Exception as exc:
            self._logger.error(
                "event_publish_failed event_name=%s execution_id=%s error=%s",
                event.name,
                event.metadata.execution_id,
                exc,
                exc_info=True,
            )
