"""End-to-end lifecycle over the in-memory store.

Checkout -> payment initiation -> verified callback -> fulfillment -> refund,
then replay both history logs and compare with the projection.
"""

from src.sf_blocking.application.service import BlockingGate
from src.sf_checkout.application.composer import OrderComposer
from src.sf_checkout.domain.models import (
    Cart,
    CartLine,
    CatalogProduct,
    CustomerDetails,
    ShippingOption,
)
from src.sf_common.enums import VerifiedPaymentState
from src.sf_order.application.ledger import OrderLedger
from src.sf_order.domain.state_machine import fold_history
from src.sf_payment.application.reconciliation import ReconciliationEngine
from src.sf_payment.application.refund import RefundWorkflow
from src.sf_payment.application.service import PaymentService
from src.sf_payment.infrastructure.registry import GatewayRegistry
from tests.fakes import (
    FakeBlockedCustomerRepository,
    FakeCatalog,
    FakeGateway,
    FakeIncompleteOrderRepository,
    FakeOrderRepository,
    FakePublisher,
    FakeSession,
)


class TestLifecycleScenario:
    async def test_paid_shipped_refunded(self) -> None:
        db = FakeSession()
        ledger = OrderLedger(repo=FakeOrderRepository(), max_retries=3)
        gateway = FakeGateway("bkash")
        registry = GatewayRegistry([gateway])
        publisher = FakePublisher()
        composer = OrderComposer(
            ledger=ledger,
            catalog=FakeCatalog(
                products=[CatalogProduct("p-1", "Cotton Panjabi", 45000)],
                shipping=[ShippingOption("dhaka", "Inside Dhaka", 10000)],
            ),
            incomplete_repo=FakeIncompleteOrderRepository(),
            blocking=BlockingGate(repo=FakeBlockedCustomerRepository()),
            publisher=publisher,
            registry=registry,
        )
        payments = PaymentService(ledger=ledger, registry=registry)
        engine = ReconciliationEngine(ledger=ledger, registry=registry, publisher=publisher)
        refunds = RefundWorkflow(ledger=ledger)

        # 2 x 450.00 + 100.00 shipping = 1000.00
        order = await composer.create_from_cart(
            Cart(
                customer=CustomerDetails(name="Rahim Uddin", phone="01711000000"),
                lines=[CartLine(product_id="p-1", quantity=2)],
                payment_method="bkash",
                shipping_code="dhaka",
            ),
            db,
        )
        assert order.total == 100000

        initiation = await payments.initiate(order.id, db)
        gateway.script("PAY-1", VerifiedPaymentState.COMPLETED, amount=100000)
        await engine.handle_callback(
            "bkash",
            {**initiation.linkage.to_params(), "reference": "PAY-1", "status": "success"},
            db,
        )
        for target in ("processing", "shipped"):
            await engine.set_fulfillment_status(order.id, target, "staff-1", None, db)
        await refunds.refund(order.id, 100000, "Returned unopened", "staff-1", db)

        final = await ledger.get(order.id, db)
        assert final.status == "shipped"
        assert final.payment_status == "refunded"
        assert final.is_total_consistent

        payment_log = await ledger.history(order.id, "payment", db)
        assert [e.new_status for e in payment_log] == ["pending", "paid", "refunded"]
        assert fold_history("payment", payment_log) == final.payment_status
        status_log = await ledger.history(order.id, "fulfillment", db)
        assert fold_history("fulfillment", status_log) == final.status

        assert [e.event for e in publisher.events] == [
            "order.created",
            "order.status_changed",
            "order.status_changed",
        ]
