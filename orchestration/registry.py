"""Service registry - the service contract and a name-keyed registry."""

import inspect
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from core.infrastructure.logging import get_logger

from .exceptions import ServiceError, ServiceNotFoundError

ServiceMethod = Callable[[Mapping[str, Any], Mapping[str, Any]], Any]


class Service(ABC):
    """
    Contract every downstream service exposes to the engine.

    This is the entire surface the orchestrator requires from business
    logic; transport, persistence and routing are the service's own concern.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Name the service is addressed by."""

    @abstractmethod
    async def execute(
        self, method: str, parameters: Mapping[str, Any], context: Mapping[str, Any]
    ) -> Any:
        """
        Execute a method of the service.

        Args:
            method: Method name from the task definition
            parameters: Task parameters
            context: Snapshot of the execution's shared context

        Returns:
            Result value; a mapping result is merged into the shared context

        Raises:
            Exception: Any error marks the attempt as failed
        """

    async def health_check(self) -> None:
        """
        Check service health.

        Raises:
            Exception: If the service is unhealthy
        """
        return None


class CallableService(Service):
    """Service backed by a mapping of method name to (async or sync) callables.

    Each callable receives ``(parameters, context)``.
    """

    def __init__(self, name: str, methods: Mapping[str, ServiceMethod]) -> None:
        self._name = name
        self._methods = dict(methods)

    @property
    def name(self) -> str:
        return self._name

    @property
    def methods(self) -> tuple[str, ...]:
        return tuple(self._methods)

    async def execute(
        self, method: str, parameters: Mapping[str, Any], context: Mapping[str, Any]
    ) -> Any:
        handler = self._methods.get(method)
        if handler is None:
            raise ServiceError(f"Service '{self._name}' has no method '{method}'")
        outcome = handler(parameters, context)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome


class ServiceRegistry:
    """Name-keyed lookup of services, owned by one orchestrator instance."""

    def __init__(self, services: Mapping[str, Service] | None = None) -> None:
        self._services: dict[str, Service] = {}
        self._logger = get_logger("orchestration.registry")
        for name, service in (services or {}).items():
            self.register(service, name=name)

    def register(self, service: Service, name: str | None = None) -> None:
        """Register a service under ``name`` (defaults to ``service.name``).

        Re-registering a name replaces the previous service.
        """
        key = name or service.name
        if not key:
            raise ValueError("Service name must not be empty")
        if key in self._services:
            self._logger.warning("service_replaced name=%s", key)
        self._services[key] = service
        self._logger.info("service_registered name=%s", key)

    def unregister(self, name: str) -> bool:
        removed = self._services.pop(name, None)
        return removed is not None

    def get(self, name: str) -> Service | None:
        return self._services.get(name)

    def require(self, name: str) -> Service:
        """
        Get a service or raise.

        Raises:
            ServiceNotFoundError: If no service is registered under ``name``
        """
        service = self._services.get(name)
        if service is None:
            raise ServiceNotFoundError(name)
        return service

    def names(self) -> list[str]:
        return sorted(self._services)

    async def check_health(self) -> dict[str, str | None]:
        """Run every service's health check.

        Returns:
            Mapping of service name to ``None`` (healthy) or the error message
        """
        report: dict[str, str | None] = {}
        for name, service in self._services.items():
            try:
                await service.health_check()
            except Exception as exc:
                self._logger.warning("service_unhealthy name=%s error=%s", name, exc)
                report[name] = str(exc) or type(exc).__name__
            else:
                report[name] = None
        return report

    def __contains__(self, name: object) -> bool:
        return name in self._services

    def __len__(self) -> int:
        return len(self._services)

    def __iter__(self) -> Iterator[str]:
        return iter(self._services)
