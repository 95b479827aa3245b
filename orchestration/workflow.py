"""Workflow definitions - ErrorHandling, TaskDefinition, WorkflowDefinition."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from .conditions import parse_condition
from .exceptions import ConditionSyntaxError, WorkflowValidationError


class ErrorHandling(str, Enum):
    """Workflow-level reaction to a task's terminal failure."""

    FAIL_FAST = "fail_fast"
    CONTINUE = "continue"
    COMPENSATE = "compensate"


@dataclass(frozen=True)
class TaskDefinition:
    """A single task in a workflow graph, delegated to a named service."""

    task_id: str
    service_name: str
    method: str
    name: str = ""
    parameters: Mapping[str, Any] = field(default_factory=dict)
    timeout: float | None = None
    retry_count: int = 0
    retry_delay: float = 0.0
    retry_backoff: float = 1.0
    depends_on: frozenset[str] = field(default_factory=frozenset)
    condition: str | None = None
    compensate_with: str | None = None

    def __post_init__(self) -> None:
        problems = self.problems()
        if problems:
            raise WorkflowValidationError(self.task_id or "<task>", problems)

        if not self.name:
            object.__setattr__(self, "name", self.task_id)
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))
        if isinstance(self.depends_on, str):
            object.__setattr__(self, "depends_on", frozenset({self.depends_on}))
        else:
            object.__setattr__(self, "depends_on", frozenset(self.depends_on))

    def problems(self) -> list[str]:
        """Return field-level validation problems for this task."""
        problems = []
        label = self.task_id or "<task>"
        if not self.task_id:
            problems.append("task_id must not be empty")
        if not self.service_name:
            problems.append(f"task '{label}': service_name must not be empty")
        if not self.method:
            problems.append(f"task '{label}': method must not be empty")
        if self.timeout is not None and self.timeout <= 0:
            problems.append(f"task '{label}': timeout must be positive")
        if self.retry_count < 0:
            problems.append(f"task '{label}': retry_count must be >= 0")
        if self.retry_delay < 0:
            problems.append(f"task '{label}': retry_delay must be >= 0")
        if self.retry_backoff < 1.0:
            problems.append(f"task '{label}': retry_backoff must be >= 1.0")
        return problems

    @property
    def max_attempts(self) -> int:
        return self.retry_count + 1

    def delay_for_retry(self, retry_number: int, max_delay: float | None = None) -> float:
        """Delay before the given retry (1-based), optionally capped."""
        delay = self.retry_delay * (self.retry_backoff ** max(retry_number - 1, 0))
        if max_delay is not None:
            delay = min(delay, max_delay)
        return delay


@dataclass(frozen=True)
class WorkflowDefinition:
    """Definition of a workflow: a validated, read-only task graph."""

    workflow_id: str
    name: str
    tasks: tuple[TaskDefinition, ...]
    global_timeout: float | None = None
    error_handling: ErrorHandling = ErrorHandling.FAIL_FAST
    _index: Mapping[str, TaskDefinition] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )
    _compensation_ids: frozenset[str] = field(
        init=False, repr=False, compare=False, default_factory=frozenset
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "tasks", tuple(self.tasks))
        object.__setattr__(self, "error_handling", ErrorHandling(self.error_handling))

        problems = self._validate()
        if problems:
            raise WorkflowValidationError(self.workflow_id or "<workflow>", problems)

        index = {task.task_id: task for task in self.tasks}
        object.__setattr__(self, "_index", MappingProxyType(index))
        compensations = frozenset(
            task.compensate_with for task in self.tasks if task.compensate_with
        )
        object.__setattr__(self, "_compensation_ids", compensations)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def task_ids(self) -> tuple[str, ...]:
        return tuple(task.task_id for task in self.tasks)

    @property
    def compensation_task_ids(self) -> frozenset[str]:
        """Tasks referenced by some ``compensate_with``; never dependency-scheduled."""
        return self._compensation_ids

    @property
    def schedulable_tasks(self) -> tuple[TaskDefinition, ...]:
        return tuple(
            task for task in self.tasks if task.task_id not in self.compensation_task_ids
        )

    def get_task(self, task_id: str) -> TaskDefinition | None:
        return self._index.get(task_id)

    def dependents_of(self, task_id: str) -> tuple[TaskDefinition, ...]:
        return tuple(task for task in self.tasks if task_id in task.depends_on)

    def parallel_levels(self) -> list[list[str]]:
        """Group schedulable tasks into topological levels.

        Level 0 holds tasks without dependencies, level N the tasks whose
        deepest dependency sits at level N-1. Used for introspection only; the
        engine schedules dynamically.
        """
        levels: dict[str, int] = {}

        def level_of(task_id: str) -> int:
            if task_id not in levels:
                task = self.get_task(task_id)
                deps = task.depends_on if task else frozenset()
                levels[task_id] = 1 + max((level_of(dep) for dep in deps), default=-1)
            return levels[task_id]

        grouped: dict[int, list[str]] = {}
        for task in self.schedulable_tasks:
            grouped.setdefault(level_of(task.task_id), []).append(task.task_id)
        return [grouped[level] for level in sorted(grouped)]

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "WorkflowDefinition":
        """Build a definition from a plain mapping (e.g. decoded JSON/YAML).

        Raises:
            WorkflowValidationError: If the payload or the task graph is invalid
        """
        from .schema import WorkflowDefinitionSchema

        try:
            schema = WorkflowDefinitionSchema.model_validate(dict(payload))
        except ValidationError as exc:
            problems = [
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in exc.errors()
            ]
            raise WorkflowValidationError(
                str(payload.get("workflow_id") or "<workflow>"), problems
            ) from exc
        return schema.to_definition()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self) -> list[str]:
        problems: list[str] = []
        if not self.workflow_id:
            problems.append("workflow_id must not be empty")
        if self.global_timeout is not None and self.global_timeout <= 0:
            problems.append("global_timeout must be positive")
        if not self.tasks:
            problems.append("workflow has no tasks")

        seen: set[str] = set()
        for task in self.tasks:
            if task.task_id in seen:
                problems.append(f"duplicate task_id '{task.task_id}'")
            seen.add(task.task_id)

        compensations = {task.compensate_with for task in self.tasks if task.compensate_with}
        for task in self.tasks:
            for dep in sorted(task.depends_on):
                if dep not in seen:
                    problems.append(f"task '{task.task_id}' depends on unknown task '{dep}'")
                elif dep == task.task_id:
                    problems.append(f"task '{task.task_id}' depends on itself")
                elif dep in compensations and task.task_id not in compensations:
                    problems.append(
                        f"task '{task.task_id}' depends on compensation task '{dep}'"
                    )
            if task.compensate_with:
                if task.compensate_with not in seen:
                    problems.append(
                        f"task '{task.task_id}' compensates with unknown task "
                        f"'{task.compensate_with}'"
                    )
                elif task.compensate_with == task.task_id:
                    problems.append(f"task '{task.task_id}' compensates with itself")
            if task.condition is not None:
                try:
                    parse_condition(task.condition)
                except ConditionSyntaxError as exc:
                    problems.append(f"task '{task.task_id}': {exc}")

        if not problems:
            cycle = _find_cycle(self.tasks)
            if cycle:
                problems.append("circular dependency detected: " + " -> ".join(cycle))
        return problems


def _find_cycle(tasks: Iterable[TaskDefinition]) -> list[str] | None:
    """Detect a dependency cycle using DFS. Returns the cycle path or None."""
    WHITE, GRAY, BLACK = 0, 1, 2
    deps = {task.task_id: sorted(task.depends_on) for task in tasks}
    color = {task_id: WHITE for task_id in deps}
    stack: list[str] = []

    def visit(node: str) -> list[str] | None:
        color[node] = GRAY
        stack.append(node)
        for dep in deps.get(node, ()):
            if color.get(dep) == GRAY:
                return stack[stack.index(dep):] + [dep]
            if color.get(dep) == WHITE:
                found = visit(dep)
                if found:
                    return found
        stack.pop()
        color[node] = BLACK
        return None

    for task_id in deps:
        if color[task_id] == WHITE:
            found = visit(task_id)
            if found:
                return found
    return None
