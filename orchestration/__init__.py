"""Orchestration layer - workflow orchestration with eventing."""

from core.infrastructure.logging import configure_logging
from core.settings import OrchestratorSettings, get_orchestrator_settings

from .builder import WorkflowBuilder
from .bus import EventBusProtocol, InMemoryEventBus
from .conditions import ConditionEvaluator, parse_condition
from .events import Event, EventMetadata
from .exceptions import (
    ConditionSyntaxError,
    ExecutionNotFoundError,
    OrchestrationError,
    ServiceError,
    ServiceNotFoundError,
    TaskTimeoutError,
    WorkflowValidationError,
)
from .hooks import ExecutionHook, LoggingHook, register_hook
from .models import TaskResult, WorkflowExecution
from .orchestrator import Orchestrator
from .registry import CallableService, Service, ServiceRegistry
from .workflow import ErrorHandling, TaskDefinition, WorkflowDefinition

__all__ = [
    "CallableService",
    "ConditionEvaluator",
    "ConditionSyntaxError",
    "ErrorHandling",
    "Event",
    "EventBusProtocol",
    "EventMetadata",
    "ExecutionHook",
    "ExecutionNotFoundError",
    "InMemoryEventBus",
    "LoggingHook",
    "OrchestrationError",
    "Orchestrator",
    "Service",
    "ServiceError",
    "ServiceNotFoundError",
    "ServiceRegistry",
    "TaskDefinition",
    "TaskResult",
    "TaskTimeoutError",
    "WorkflowBuilder",
    "WorkflowDefinition",
    "WorkflowExecution",
    "WorkflowValidationError",
    "create_default_orchestrator",
    "parse_condition",
    "register_hook",
]


def create_default_orchestrator(
    registry: ServiceRegistry | None = None,
    settings: OrchestratorSettings | None = None,
    log_lifecycle: bool = True,
) -> Orchestrator:
    """Create a default orchestrator with in-memory event bus.

    Applies ``settings.log_level`` to the project loggers.

    Args:
        registry: ServiceRegistry instance (an empty one when omitted)
        settings: Engine settings (environment settings when omitted)
        log_lifecycle: Attach a LoggingHook to the event bus

    Returns:
        Orchestrator instance
    """
    settings = settings or get_orchestrator_settings()
    configure_logging(settings.log_level)
    bus = InMemoryEventBus(handler_timeout=settings.event_handler_timeout)
    if log_lifecycle:
        register_hook(bus, LoggingHook())
    return Orchestrator(registry=registry, event_bus=bus, settings=settings)
