"""
In-memory Inventory Service.

Keeps stock levels in a dict and hands out reservations. Used by the demo
saga and by tests.
"""
import logging
from collections.abc import Mapping
from typing import Any
from uuid import uuid4

from orchestration.exceptions import ServiceError
from orchestration.registry import Service


logger = logging.getLogger(__name__)


class InventoryService(Service):
    """
    Stock keeping service.

    Methods:
        check:   {"sku", "quantity"} -> {"available", "stock_level"}
        reserve: {"sku", "quantity"} -> {"reservation_id", "reserved_quantity"}
        release: {"reservation_id"} (or ``reservation_id`` from context) -> {"released"}
    """

    def __init__(self, stock: Mapping[str, int] | None = None, name: str = "inventory"):
        """
        Initialize inventory service.

        Args:
            stock: Initial stock level per SKU
            name: Registry name
        """
        self._name = name
        self.stock: dict[str, int] = dict(stock or {})
        self.reservations: dict[str, tuple[str, int]] = {}
        self.calls: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    async def execute(
        self, method: str, parameters: Mapping[str, Any], context: Mapping[str, Any]
    ) -> Any:
        self.calls.append(method)
        if method == "check":
            return self._check(parameters)
        if method == "reserve":
            return self._reserve(parameters)
        if method == "release":
            return self._release(parameters, context)
        raise ServiceError(f"Inventory has no method '{method}'")

    def _check(self, parameters: Mapping[str, Any]) -> dict[str, Any]:
        sku = parameters["sku"]
        quantity = int(parameters.get("quantity", 1))
        level = self.stock.get(sku, 0)
        logger.info("inventory_check sku=%s quantity=%d stock_level=%d", sku, quantity, level)
        return {"available": level >= quantity, "stock_level": level}

    def _reserve(self, parameters: Mapping[str, Any]) -> dict[str, Any]:
        sku = parameters["sku"]
        quantity = int(parameters.get("quantity", 1))
        level = self.stock.get(sku, 0)
        if level < quantity:
            raise ServiceError(
                f"Insufficient stock for {sku}: requested {quantity}, available {level}"
            )

        self.stock[sku] = level - quantity
        reservation_id = f"RSV-{uuid4().hex[:8].upper()}"
        self.reservations[reservation_id] = (sku, quantity)
        logger.info(
            "inventory_reserved sku=%s quantity=%d reservation_id=%s",
            sku,
            quantity,
            reservation_id,
        )
        return {"reservation_id": reservation_id, "reserved_quantity": quantity}

    def _release(
        self, parameters: Mapping[str, Any], context: Mapping[str, Any]
    ) -> dict[str, Any]:
        reservation_id = parameters.get("reservation_id") or context.get("reservation_id")
        reservation = self.reservations.pop(reservation_id, None) if reservation_id else None
        if reservation is None:
            raise ServiceError(f"Unknown reservation: {reservation_id}")

        sku, quantity = reservation
        self.stock[sku] = self.stock.get(sku, 0) + quantity
        logger.warning(
            "inventory_released sku=%s quantity=%d reservation_id=%s",
            sku,
            quantity,
            reservation_id,
        )
        return {"released": True, "released_reservation_id": reservation_id}
