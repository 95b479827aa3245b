"""Tests for Orchestrator - basic functionality."""

import asyncio

import pytest

from core.domain.enums.execution_status import TaskStatus, WorkflowStatus
from core.domain.value_objects import ExecutionID
from orchestration.builder import WorkflowBuilder
from orchestration.exceptions import ExecutionNotFoundError
from orchestration.registry import CallableService


def _recording_service(name: str, calls: list[str], results: dict | None = None):
    """Service whose every method records its name and returns a canned result."""

    def handler_for(method: str):
        async def handler(parameters, context):
            calls.append(method)
            return (results or {}).get(method)

        return handler

    methods = ["a", "b", "c", "d"]
    return CallableService(name, {method: handler_for(method) for method in methods})


@pytest.mark.asyncio
async def test_orchestrator_basic_success(orchestrator, registry, fake_event_bus):
    """Test basic workflow success."""
    calls: list[str] = []
    registry.register(_recording_service("svc", calls, {"a": "ok"}))

    workflow = WorkflowBuilder("single", workflow_id="wf-single").task("a", "svc", "a").build()

    execution = await orchestrator.run_workflow(workflow, timeout=5)

    assert execution.status == WorkflowStatus.COMPLETED
    assert execution.error is None
    result = execution.task_results["a"]
    assert result.status == TaskStatus.COMPLETED
    assert result.result == "ok"
    assert result.attempts == 1
    assert result.retry_count == 0
    assert result.start_time is not None and result.end_time is not None
    assert execution.context["a_result"] == "ok"

    event_names = fake_event_bus.names()
    assert event_names[0] == "workflow.started"
    assert event_names[-1] == "workflow.completed"
    assert fake_event_bus.names("a") == ["task.started", "task.completed"]


@pytest.mark.asyncio
async def test_dependents_run_as_one_parallel_group(orchestrator, registry):
    """A -> {B, C}: B and C start only after A and run concurrently."""
    order: list[str] = []
    running = {"now": 0, "peak": 0}

    async def step(name: str):
        order.append(f"{name}:start")
        running["now"] += 1
        running["peak"] = max(running["peak"], running["now"])
        await asyncio.sleep(0.05)
        running["now"] -= 1
        order.append(f"{name}:end")
        return {f"{name}_done": True}

    registry.register(
        CallableService(
            "svc",
            {
                "a": lambda p, c: step("a"),
                "b": lambda p, c: step("b"),
                "c": lambda p, c: step("c"),
            },
        )
    )
    workflow = (
        WorkflowBuilder("fan_out")
        .task("A", "svc", "a")
        .task("B", "svc", "b", depends_on=["A"])
        .task("C", "svc", "c", depends_on=["A"])
        .build()
    )

    execution = await orchestrator.run_workflow(workflow, timeout=5)

    assert execution.status == WorkflowStatus.COMPLETED
    assert order[:2] == ["a:start", "a:end"]
    assert set(order[2:4]) == {"b:start", "c:start"}
    assert running["peak"] == 2
    assert execution.context == {"a_done": True, "b_done": True, "c_done": True}


@pytest.mark.asyncio
async def test_mapping_results_merge_into_context(orchestrator, registry):
    """Mapping output is merged key by key and visible to downstream tasks."""
    seen: dict = {}

    async def produce(parameters, context):
        return {"order_total": parameters["total"]}

    async def consume(parameters, context):
        seen.update(context)
        return context["order_total"] * 2

    registry.register(CallableService("svc", {"produce": produce, "consume": consume}))
    workflow = (
        WorkflowBuilder("merge")
        .task("produce", "svc", "produce", parameters={"total": 21})
        .task("consume", "svc", "consume", depends_on="produce")
        .build()
    )

    execution = await orchestrator.run_workflow(workflow, {"order_id": "ORD-1"}, timeout=5)

    assert execution.status == WorkflowStatus.COMPLETED
    assert seen == {"order_id": "ORD-1", "order_total": 21}
    assert execution.context["consume_result"] == 42


@pytest.mark.asyncio
async def test_execute_workflow_returns_before_tasks_run(orchestrator, registry):
    """execute_workflow hands back an id immediately; completion is observed later."""
    gate = asyncio.Event()

    async def blocked(parameters, context):
        await gate.wait()
        return "released"

    registry.register(CallableService("svc", {"blocked": blocked}))
    workflow = WorkflowBuilder("gated").task("t", "svc", "blocked").build()

    execution_id = await orchestrator.execute_workflow(workflow)
    assert isinstance(execution_id, ExecutionID)

    await asyncio.sleep(0.01)
    snapshot = orchestrator.get_execution_status(execution_id)
    assert snapshot is not None
    assert snapshot.status == WorkflowStatus.RUNNING
    assert snapshot.task_results["t"].status == TaskStatus.RUNNING

    gate.set()
    final = await orchestrator.wait_for_completion(execution_id, timeout=5)
    assert final.status == WorkflowStatus.COMPLETED
    # Earlier snapshots are detached from the live execution
    assert snapshot.status == WorkflowStatus.RUNNING


@pytest.mark.asyncio
async def test_missing_service_fails_without_retry(orchestrator, fake_event_bus):
    """Unknown service is a configuration defect: one failure, no attempts."""
    workflow = (
        WorkflowBuilder("missing")
        .task("t", "nowhere", "run", retry_count=3, retry_delay=0.01)
        .build()
    )

    execution = await orchestrator.run_workflow(workflow, timeout=5)

    assert execution.status == WorkflowStatus.FAILED
    result = execution.task_results["t"]
    assert result.status == TaskStatus.FAILED
    assert result.error == "Service not found: nowhere"
    assert result.attempts == 0
    assert "task.retrying" not in fake_event_bus.names("t")


@pytest.mark.asyncio
async def test_status_queries_and_discard(orchestrator, registry):
    """get_execution_status / list_executions / discard_execution."""
    registry.register(CallableService("svc", {"noop": lambda p, c: None}))
    workflow = WorkflowBuilder("noop").task("t", "svc", "noop").build()

    assert orchestrator.get_execution_status(ExecutionID.generate()) is None
    with pytest.raises(ExecutionNotFoundError):
        await orchestrator.wait_for_completion("unknown")

    first = await orchestrator.execute_workflow(workflow)
    second = await orchestrator.execute_workflow(workflow)
    await orchestrator.wait_for_completion(first, timeout=5)
    await orchestrator.wait_for_completion(second, timeout=5)

    completed = orchestrator.list_executions(WorkflowStatus.COMPLETED)
    assert {str(e.execution_id) for e in completed} == {str(first), str(second)}
    assert orchestrator.list_executions(WorkflowStatus.FAILED) == []

    assert orchestrator.discard_execution(first) is True
    assert orchestrator.discard_execution(first) is False
    assert orchestrator.get_execution_status(first) is None
    assert len(orchestrator.list_executions()) == 1


@pytest.mark.asyncio
async def test_execution_to_dict_reports_progress(orchestrator, registry):
    registry.register(CallableService("svc", {"noop": lambda p, c: {"x": 1}}))
    workflow = (
        WorkflowBuilder("report", workflow_id="wf-report")
        .task("one", "svc", "noop")
        .task("two", "svc", "noop", depends_on=["one"], condition="x == 2")
        .build()
    )

    execution = await orchestrator.run_workflow(workflow, timeout=5)
    payload = execution.to_dict()

    assert payload["workflow_id"] == "wf-report"
    assert payload["status"] == "completed"
    assert payload["tasks"]["one"]["status"] == "completed"
    assert payload["tasks"]["two"]["status"] == "skipped"
    assert payload["progress"]["total_tasks"] == 2
    assert payload["progress"]["percent"] == 100.0


@pytest.mark.asyncio
async def test_execute_workflow_rejects_non_definition(orchestrator):
    with pytest.raises(TypeError):
        await orchestrator.execute_workflow({"workflow_id": "raw"})
