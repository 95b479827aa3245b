"""
In-memory Payment Service.

Simulates a payment gateway, including transient outages, so retry and
compensation paths can be exercised without a real provider.
"""
import asyncio
import logging
from collections.abc import Mapping
from typing import Any
from uuid import uuid4

from orchestration.exceptions import ServiceError
from orchestration.registry import Service


logger = logging.getLogger(__name__)


class PaymentService(Service):
    """
    Mock payment gateway.

    ``transient_failures`` charge attempts fail before the gateway recovers;
    ``decline_above`` declines (permanently) any amount greater than it.
    """

    def __init__(
        self,
        name: str = "payment",
        transient_failures: int = 0,
        decline_above: float | None = None,
        latency: float = 0.0,
    ):
        self._name = name
        self.transient_failures = transient_failures
        self.decline_above = decline_above
        self.latency = latency
        self.charges: dict[str, float] = {}
        self.refunds: list[str] = []
        self.attempts = 0

    @property
    def name(self) -> str:
        return self._name

    async def execute(
        self, method: str, parameters: Mapping[str, Any], context: Mapping[str, Any]
    ) -> Any:
        if self.latency:
            await asyncio.sleep(self.latency)
        if method == "charge":
            return self._charge(parameters, context)
        if method == "refund":
            return self._refund(parameters, context)
        raise ServiceError(f"Payment has no method '{method}'")

    async def health_check(self) -> None:
        if self.transient_failures > 0:
            raise ServiceError("Payment gateway degraded")

    def _charge(self, parameters: Mapping[str, Any], context: Mapping[str, Any]) -> dict[str, Any]:
        self.attempts += 1
        amount = float(parameters.get("amount", context.get("order_total", 0)))

        if self.transient_failures > 0:
            self.transient_failures -= 1
            logger.warning("payment_gateway_unavailable attempt=%d", self.attempts)
            raise ConnectionError("Payment gateway unavailable")

        if self.decline_above is not None and amount > self.decline_above:
            logger.error("payment_declined amount=%.2f limit=%.2f", amount, self.decline_above)
            raise ServiceError(f"Payment declined for amount {amount:.2f}")

        payment_id = f"PAY-{uuid4().hex[:8].upper()}"
        self.charges[payment_id] = amount
        logger.info("payment_charged payment_id=%s amount=%.2f", payment_id, amount)
        return {"payment_id": payment_id, "charged_amount": amount}

    def _refund(self, parameters: Mapping[str, Any], context: Mapping[str, Any]) -> dict[str, Any]:
        payment_id = parameters.get("payment_id") or context.get("payment_id")
        if payment_id not in self.charges:
            raise ServiceError(f"Unknown payment: {payment_id}")
        amount = self.charges.pop(payment_id)
        self.refunds.append(payment_id)
        logger.warning("payment_refunded payment_id=%s amount=%.2f", payment_id, amount)
        return {"refunded_payment_id": payment_id, "refunded_amount": amount}
