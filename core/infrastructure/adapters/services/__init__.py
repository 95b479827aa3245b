"""In-memory reference services for demos and tests."""

from .email_service import EmailService
from .inventory_service import InventoryService
from .payment_service import PaymentService

__all__ = ["EmailService", "InventoryService", "PaymentService"]
