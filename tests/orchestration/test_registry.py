"""Tests for ServiceRegistry and CallableService."""

import pytest

from orchestration.exceptions import ServiceError, ServiceNotFoundError
from orchestration.registry import CallableService, Service, ServiceRegistry


class FakeService(Service):
    """Fake Service for testing."""

    def __init__(self, name: str, healthy: bool = True) -> None:
        self._name = name
        self._healthy = healthy

    @property
    def name(self) -> str:
        return self._name

    async def execute(self, method, parameters, context):
        return {"method": method}

    async def health_check(self) -> None:
        if not self._healthy:
            raise ConnectionError("backend unreachable")


def test_register_and_lookup():
    registry = ServiceRegistry()
    service = FakeService("inventory")

    registry.register(service)

    assert registry.get("inventory") is service
    assert registry.require("inventory") is service
    assert registry.get("payment") is None
    assert "inventory" in registry
    assert len(registry) == 1
    assert list(registry) == ["inventory"]


def test_register_under_alias_and_replace():
    registry = ServiceRegistry({"stock": FakeService("inventory")})
    replacement = FakeService("inventory-v2")

    registry.register(replacement, name="stock")

    assert registry.get("stock") is replacement
    assert registry.names() == ["stock"]


def test_require_missing_service_raises():
    registry = ServiceRegistry()

    with pytest.raises(ServiceNotFoundError) as excinfo:
        registry.require("email")

    assert str(excinfo.value) == "Service not found: email"


def test_unregister():
    registry = ServiceRegistry()
    registry.register(FakeService("email"))

    assert registry.unregister("email") is True
    assert registry.unregister("email") is False
    assert "email" not in registry


def test_registries_are_independent():
    first = ServiceRegistry()
    second = ServiceRegistry()

    first.register(FakeService("inventory"))

    assert "inventory" not in second


@pytest.mark.asyncio
async def test_check_health_reports_per_service():
    registry = ServiceRegistry()
    registry.register(FakeService("inventory"))
    registry.register(FakeService("payment", healthy=False))

    report = await registry.check_health()

    assert report == {"inventory": None, "payment": "backend unreachable"}


@pytest.mark.asyncio
async def test_callable_service_supports_sync_and_async_handlers():
    async def reserve(parameters, context):
        return {"reserved": parameters["quantity"]}

    service = CallableService(
        "inventory",
        {"reserve": reserve, "check": lambda parameters, context: context["sku"]},
    )

    assert service.methods == ("reserve", "check")
    assert await service.execute("reserve", {"quantity": 2}, {}) == {"reserved": 2}
    assert await service.execute("check", {}, {"sku": "A-1"}) == "A-1"

    with pytest.raises(ServiceError):
        await service.execute("refund", {}, {})
