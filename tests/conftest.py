"""Pytest configuration and fixtures for orchestration tests."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from core.settings import OrchestratorSettings
from orchestration.events import Event
from orchestration.orchestrator import Orchestrator
from orchestration.registry import ServiceRegistry


class FakeEventBus:
    """Fake EventBus for testing."""

    def __init__(self) -> None:
        """Initialize fake event bus."""
        self.events: list[Event] = []

    async def publish(self, event: Event) -> None:
        """Store event."""
        self.events.append(event)

    def subscribe(self, event_name: str, handler: object) -> None:
        """Subscribe handler (no-op for fake)."""
        pass

    def names(self, task_id: str | None = None) -> list[str]:
        """Event names in publish order, optionally for a single task."""
        return [
            event.name
            for event in self.events
            if task_id is None or event.metadata.task_id == task_id
        ]


@pytest.fixture
def settings() -> OrchestratorSettings:
    """Fast, environment-independent engine settings."""
    return OrchestratorSettings(
        log_level="DEBUG",
        max_concurrent_tasks=10,
        default_task_timeout=None,
        default_global_timeout=None,
        max_retry_delay=1.0,
        event_handler_timeout=1.0,
    )


@pytest.fixture
def registry() -> ServiceRegistry:
    return ServiceRegistry()


@pytest.fixture
def fake_event_bus() -> FakeEventBus:
    return FakeEventBus()


@pytest_asyncio.fixture
async def orchestrator(
    registry: ServiceRegistry,
    fake_event_bus: FakeEventBus,
    settings: OrchestratorSettings,
) -> AsyncGenerator[Orchestrator, None]:
    """Orchestrator wired to the fake bus; cancels leftovers on teardown."""
    engine = Orchestrator(registry=registry, event_bus=fake_event_bus, settings=settings)
    yield engine
    await engine.shutdown()
