"""
End-to-End Demo: Order Fulfilment Saga

This demonstrates the complete workflow:
1. Check stock
2. Reserve stock
3. Charge payment (retried on transient gateway errors; a failed charge
   releases the reserved stock)
4. Send confirmation email (only for confirmed orders)

Uses in-memory services (no real inventory, gateway or mail server needed).
"""
import asyncio

from core.infrastructure.adapters.services import EmailService, InventoryService, PaymentService
from orchestration import (
    ErrorHandling,
    ServiceRegistry,
    WorkflowBuilder,
    WorkflowDefinition,
    create_default_orchestrator,
)



def build_order_workflow(sku: str, quantity: int, amount: float) -> WorkflowDefinition:
    """Order saga: reserve stock, charge, notify; release the stock if the charge fails."""
    return (
        WorkflowBuilder("order_fulfilment")
        .with_error_handling(ErrorHandling.COMPENSATE)
        .with_timeout(10)
        .task(
            "check_stock",
            "inventory",
            "check",
            name="Check stock",
            parameters={"sku": sku, "quantity": quantity},
        )
        .task(
            "reserve_stock",
            "inventory",
            "reserve",
            name="Reserve stock",
            parameters={"sku": sku, "quantity": quantity},
            depends_on=["check_stock"],
            condition="available == true",
        )
        .task("release_stock", "inventory", "release", name="Release stock")
        .task(
            "charge_payment",
            "payment",
            "charge",
            name="Charge payment",
            parameters={"amount": amount},
            depends_on=["reserve_stock"],
            retry_count=2,
            retry_delay=0.05,
            retry_backoff=2.0,
            timeout=2,
            compensate_with="release_stock",
        )
        .task(
            "send_confirmation",
            "email",
            "send",
            name="Send confirmation",
            parameters={"template": "order_confirmed"},
            depends_on=["charge_payment"],
            condition="payment_id != null",
        )
        .build()
    )


def print_execution(title: str, execution) -> None:
    print("\n" + "=" * 80)
    print(f"{title}: {execution.status.value.upper()}")
    print("=" * 80)
    if execution.error:
        print(f"   Error: {execution.error}")
    for task_id, result in execution.task_results.items():
        marker = " (compensation)" if result.is_compensation else ""
        print(
            f"   {task_id:<18} {result.status.value:<10} "
            f"attempts={result.attempts} retries={result.retry_count}{marker}"
        )
    print(f"   Progress: {execution.progress()['percent']}%")


async def demo_orders() -> None:
    """Run three orders: a clean one, a flaky gateway, and a declined charge."""
    inventory = InventoryService(stock={"SKU-001": 5})
    payment = PaymentService(transient_failures=0, decline_above=500)
    email = EmailService()

    registry = ServiceRegistry()
    for service in (inventory, payment, email):
        registry.register(service)

    orchestrator = create_default_orchestrator(registry=registry)

    print("📦 Happy path...")
    execution = await orchestrator.run_workflow(
        build_order_workflow("SKU-001", 2, 120.0),
        {"order_id": "ORD-1001", "customer_email": "buyer@example.com"},
    )
    print_execution("Order ORD-1001", execution)

    print("\n🔁 Flaky payment gateway (two transient failures)...")
    payment.transient_failures = 2
    execution = await orchestrator.run_workflow(
        build_order_workflow("SKU-001", 1, 80.0),
        {"order_id": "ORD-1002", "customer_email": "buyer@example.com"},
    )
    print_execution("Order ORD-1002", execution)

    print("\n↩️  Declined payment (stock reservation is released)...")
    execution = await orchestrator.run_workflow(
        build_order_workflow("SKU-001", 1, 999.0),
        {"order_id": "ORD-1003", "customer_email": "buyer@example.com"},
    )
    print_execution("Order ORD-1003", execution)

    print(f"\n📊 Remaining stock: {inventory.stock}")
    print(f"📧 Emails sent: {len(email.sent)}")
    print(f"🩺 Health: {await orchestrator.health_check()}")
    await orchestrator.shutdown()


if __name__ == "__main__":
    asyncio.run(demo_orders())
