"""
Mock Email Service.

Records messages instead of sending them.
"""
import logging
from collections.abc import Mapping
from typing import Any

from orchestration.exceptions import ServiceError
from orchestration.registry import Service


logger = logging.getLogger(__name__)


class EmailService(Service):
    """Email sender that keeps every message in ``sent``."""

    def __init__(self, name: str = "email"):
        self._name = name
        self.sent: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return self._name

    async def execute(
        self, method: str, parameters: Mapping[str, Any], context: Mapping[str, Any]
    ) -> Any:
        if method != "send":
            raise ServiceError(f"Email has no method '{method}'")

        recipient = parameters.get("to") or context.get("customer_email")
        if not recipient:
            raise ServiceError("No recipient for email")

        message = {
            "to": recipient,
            "template": parameters.get("template", "generic"),
            "order_id": context.get("order_id"),
        }
        self.sent.append(message)
        logger.info(
            "email_sent to=%s template=%s order_id=%s",
            recipient,
            message["template"],
            message["order_id"],
        )
        return {"email_sent": True}

    def clear(self) -> None:
        """Clear sent messages (for testing)."""
        self.sent.clear()
