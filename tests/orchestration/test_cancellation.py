"""Tests for Orchestrator - cancellation, workflow timeout and conditional skips."""

import asyncio

import pytest

from core.domain.enums.execution_status import TaskStatus, WorkflowStatus
from orchestration.builder import WorkflowBuilder
from orchestration.orchestrator import Orchestrator
from orchestration.registry import CallableService


async def _sleepy(parameters, context):
    await asyncio.sleep(parameters.get("seconds", 10))
    return "woke"


@pytest.mark.asyncio
async def test_global_timeout_cancels_workflow(orchestrator, registry, fake_event_bus):
    """A 10s task under a 0.2s workflow timeout ends Cancelled at the timeout."""
    registry.register(CallableService("svc", {"sleep": _sleepy}))
    workflow = (
        WorkflowBuilder("slow")
        .with_timeout(0.2)
        .task("sleeper", "svc", "sleep", parameters={"seconds": 10})
        .task("after", "svc", "sleep", depends_on=["sleeper"])
        .build()
    )

    loop = asyncio.get_running_loop()
    started = loop.time()
    execution = await orchestrator.run_workflow(workflow, timeout=5)
    elapsed = loop.time() - started

    assert execution.status == WorkflowStatus.CANCELLED
    assert execution.error == "Workflow timed out after 0.2s"
    assert elapsed < 2
    assert execution.task_results["sleeper"].status == TaskStatus.CANCELLED
    assert "after" not in execution.task_results
    assert fake_event_bus.names()[-1] == "workflow.cancelled"


@pytest.mark.asyncio
async def test_cancel_running_workflow(orchestrator, registry):
    registry.register(CallableService("svc", {"sleep": _sleepy}))
    workflow = WorkflowBuilder("cancel_me").task("sleeper", "svc", "sleep").build()

    execution_id = await orchestrator.execute_workflow(workflow)
    await asyncio.sleep(0.05)

    assert await orchestrator.cancel_workflow(execution_id) is True

    execution = orchestrator.get_execution_status(execution_id)
    assert execution.status == WorkflowStatus.CANCELLED
    assert execution.task_results["sleeper"].status == TaskStatus.CANCELLED
    assert execution.end_time is not None


@pytest.mark.asyncio
async def test_cancel_interrupts_retry_backoff(orchestrator, registry):
    """A task waiting between retries is marked Cancelled, not Failed."""

    async def failing(parameters, context):
        raise RuntimeError("boom")

    registry.register(CallableService("svc", {"fail": failing}))
    workflow = (
        WorkflowBuilder("backoff")
        .task("t", "svc", "fail", retry_count=5, retry_delay=0.5)
        .build()
    )

    execution_id = await orchestrator.execute_workflow(workflow)
    await asyncio.sleep(0.05)
    assert await orchestrator.cancel_workflow(execution_id) is True

    result = orchestrator.get_execution_status(execution_id).task_results["t"]
    assert result.status == TaskStatus.CANCELLED
    assert result.attempts == 1


@pytest.mark.asyncio
async def test_cancel_is_idempotent_on_terminal_execution(orchestrator, registry):
    registry.register(CallableService("svc", {"noop": lambda p, c: None}))
    workflow = WorkflowBuilder("done").task("t", "svc", "noop").build()

    execution = await orchestrator.run_workflow(workflow, timeout=5)
    assert execution.status == WorkflowStatus.COMPLETED

    assert await orchestrator.cancel_workflow(execution.execution_id) is False
    assert await orchestrator.cancel_workflow("does-not-exist") is False
    after = orchestrator.get_execution_status(execution.execution_id)
    assert after.status == WorkflowStatus.COMPLETED
    assert after.end_time == execution.end_time


@pytest.mark.asyncio
async def test_second_cancel_returns_false(orchestrator, registry):
    registry.register(CallableService("svc", {"sleep": _sleepy}))
    workflow = WorkflowBuilder("cancel_twice").task("sleeper", "svc", "sleep").build()

    execution_id = await orchestrator.execute_workflow(workflow)
    await asyncio.sleep(0.01)

    assert await orchestrator.cancel_workflow(execution_id) is True
    assert await orchestrator.cancel_workflow(execution_id) is False
    assert orchestrator.get_execution_status(execution_id).status == WorkflowStatus.CANCELLED


@pytest.mark.asyncio
async def test_condition_on_missing_key_skips_task(orchestrator, registry, fake_event_bus):
    """Missing ``available`` key: the task goes straight to Skipped."""
    calls: list[str] = []

    async def reserve(parameters, context):
        calls.append("reserve")
        return {"reserved": True}

    registry.register(CallableService("svc", {"reserve": reserve}))
    workflow = (
        WorkflowBuilder("conditional")
        .task("reserve_stock", "svc", "reserve", condition="available == true")
        .build()
    )

    execution = await orchestrator.run_workflow(workflow, timeout=5)

    assert execution.status == WorkflowStatus.COMPLETED
    assert execution.task_results["reserve_stock"].status == TaskStatus.SKIPPED
    assert calls == []
    assert fake_event_bus.names("reserve_stock") == ["task.skipped"]


@pytest.mark.asyncio
async def test_condition_reads_upstream_output(orchestrator, registry):
    registry.register(
        CallableService(
            "svc",
            {
                "check": lambda p, c: {"available": p["stock"] > 0},
                "reserve": lambda p, c: {"reserved": True},
            },
        )
    )
    workflow = (
        WorkflowBuilder("conditional_chain")
        .task("check", "svc", "check", parameters={"stock": 3})
        .task("reserve", "svc", "reserve", depends_on=["check"], condition="available == true")
        .build()
    )

    execution = await orchestrator.run_workflow(workflow, timeout=5)

    assert execution.task_results["reserve"].status == TaskStatus.COMPLETED
    assert execution.context["reserved"] is True


@pytest.mark.asyncio
async def test_dependents_of_skipped_task_stay_pending(orchestrator, registry):
    registry.register(CallableService("svc", {"noop": lambda p, c: None}))
    workflow = (
        WorkflowBuilder("skip_chain")
        .task("gate", "svc", "noop", condition="enabled")
        .task("downstream", "svc", "noop", depends_on=["gate"])
        .build()
    )

    execution = await orchestrator.run_workflow(workflow, {"enabled": False}, timeout=5)

    assert execution.task_results["gate"].status == TaskStatus.SKIPPED
    assert execution.status_of("downstream") == TaskStatus.PENDING
    assert execution.status == WorkflowStatus.FAILED
    assert execution.error == "unsatisfied tasks: downstream"


@pytest.mark.asyncio
async def test_shutdown_cancels_running_executions(registry, fake_event_bus, settings):
    registry.register(CallableService("svc", {"sleep": _sleepy}))
    engine = Orchestrator(registry=registry, event_bus=fake_event_bus, settings=settings)
    workflow = WorkflowBuilder("shutdown").task("sleeper", "svc", "sleep").build()

    first = await engine.execute_workflow(workflow)
    second = await engine.execute_workflow(workflow)
    await asyncio.sleep(0.01)
    await engine.shutdown()

    assert engine.get_execution_status(first).status == WorkflowStatus.CANCELLED
    assert engine.get_execution_status(second).status == WorkflowStatus.CANCELLED
