"""Tests for ReconciliationEngine: callbacks, manual reconcile, staff status changes."""

from typing import Any

import httpx
import pytest

from src.sf_common.enums import VerifiedPaymentState
from src.sf_common.errors import (
    AdapterError,
    AdminRequiredError,
    GatewayUnavailableError,
    InvalidTransitionError,
    PaymentAmountMismatchError,
    PaymentLinkageError,
    RefundValidationError,
)
from src.sf_order.application.ledger import NewItem, OrderLedger
from src.sf_payment.application.reconciliation import ReconciliationEngine
from src.sf_payment.application.service import PaymentService
from src.sf_payment.infrastructure.adapters.base import HttpPolicy
from src.sf_payment.infrastructure.adapters.sslcommerz import SslCommerzAdapter, SslCommerzConfig
from src.sf_payment.infrastructure.registry import GatewayRegistry
from tests.fakes import (
    FakeGateway,
    FakeOrderRepository,
    FakePublisher,
    FakeSession,
    make_draft,
)

COMPLETED = VerifiedPaymentState.COMPLETED
FAILED = VerifiedPaymentState.FAILED
PENDING = VerifiedPaymentState.PENDING


class Harness:
    def __init__(self, gateway: FakeGateway) -> None:
        self.gateway = gateway
        self.db = FakeSession()
        self.ledger = OrderLedger(repo=FakeOrderRepository(), max_retries=3)
        self.publisher = FakePublisher()
        registry = GatewayRegistry([gateway])
        self.engine = ReconciliationEngine(
            ledger=self.ledger, registry=registry, publisher=self.publisher
        )
        self.payments = PaymentService(ledger=self.ledger, registry=registry)
        self.order_id = ""
        self.nonce = ""

    async def place_order(self) -> None:
        order = await self.ledger.create(make_draft(payment_method=self.gateway.method), self.db)
        await self.db.commit()
        self.order_id = order.id
        initiation = await self.payments.initiate(order.id, self.db)
        self.nonce = initiation.linkage.nonce

    def params(self, reference: str | None = "PAY-1", **overrides: Any) -> dict[str, Any]:
        params: dict[str, Any] = {
            "v": "1",
            "order_id": self.order_id,
            "nonce": self.nonce,
            "status": "success",
        }
        if reference is not None:
            params["reference"] = reference
        params.update(overrides)
        return params

    async def callback(self, **kwargs: Any):  # type: ignore[no-untyped-def]
        return await self.engine.handle_callback(self.gateway.method, self.params(**kwargs), self.db)

    async def payment_log(self) -> list[str]:
        log = await self.ledger.history(self.order_id, "payment", self.db)
        return [e.new_status for e in log]

    async def payment_status(self) -> str:
        return (await self.ledger.get(self.order_id, self.db)).payment_status


@pytest.fixture
async def h() -> Harness:
    harness = Harness(FakeGateway("bkash"))
    await harness.place_order()
    return harness


class TestCallback:
    async def test_verified_completion_marks_paid(self, h: Harness) -> None:
        h.gateway.script("PAY-1", COMPLETED, amount=100000)
        outcome = await h.callback()
        assert outcome.payment_status == "paid"
        assert outcome.verified_state == "COMPLETED"
        assert outcome.entries_written == 1
        assert h.gateway.finalized == ["PAY-1"]
        log = await h.ledger.history(h.order_id, "payment", h.db)
        assert log[-1].changed_by is None
        assert "TXN-1" in (log[-1].notes or "")

    async def test_reported_status_is_not_trusted(self, h: Harness) -> None:
        h.gateway.script("PAY-1", FAILED)
        outcome = await h.callback(status="success")
        assert outcome.payment_status == "failed"

    async def test_duplicate_completion_is_noop(self, h: Harness) -> None:
        h.gateway.script("PAY-1", COMPLETED, amount=100000)
        await h.callback()
        outcome = await h.callback()
        assert outcome.entries_written == 0
        assert await h.payment_log() == ["pending", "paid"]

    async def test_stale_failure_after_paid_is_ignored(self, h: Harness) -> None:
        h.gateway.script("PAY-1", COMPLETED, amount=100000)
        await h.callback()
        h.gateway.script("PAY-1", FAILED)
        outcome = await h.callback()
        assert outcome.payment_status == "paid"
        assert await h.payment_log() == ["pending", "paid"]

    async def test_failed_then_completed_goes_through_pending(self, h: Harness) -> None:
        h.gateway.script("PAY-1", FAILED)
        await h.callback()
        h.gateway.script("PAY-1", COMPLETED, amount=100000)
        outcome = await h.callback()
        assert outcome.entries_written == 2
        assert await h.payment_log() == ["pending", "failed", "pending", "paid"]

    async def test_pending_leaves_status_alone(self, h: Harness) -> None:
        h.gateway.script("PAY-1", PENDING)
        outcome = await h.callback()
        assert outcome.entries_written == 0
        assert await h.payment_status() == "pending"

    async def test_timeout_never_marks_failed(self, h: Harness) -> None:
        h.gateway.results["PAY-1"] = GatewayUnavailableError("bkash", "timeout")
        with pytest.raises(GatewayUnavailableError):
            await h.callback()
        assert await h.payment_status() == "pending"
        assert await h.payment_log() == ["pending"]

    async def test_nonce_mismatch_rejected(self, h: Harness) -> None:
        h.gateway.script("PAY-1", COMPLETED, amount=100000)
        with pytest.raises(PaymentLinkageError):
            await h.callback(nonce="forged")
        assert h.gateway.verified == []
        assert await h.payment_status() == "pending"

    async def test_superseded_attempt_rejected(self, h: Harness) -> None:
        old_nonce = h.nonce
        await h.payments.initiate(h.order_id, h.db)
        h.gateway.script("PAY-1", COMPLETED, amount=100000)
        with pytest.raises(PaymentLinkageError):
            await h.callback(nonce=old_nonce)

    async def test_reference_mismatch_rejected(self, h: Harness) -> None:
        h.gateway.script("PAY-OTHER", COMPLETED, amount=100000)
        with pytest.raises(PaymentLinkageError):
            await h.callback(reference="PAY-OTHER")

    async def test_amount_mismatch_rejected(self, h: Harness) -> None:
        h.gateway.script("PAY-1", COMPLETED, amount=99000)
        with pytest.raises(PaymentAmountMismatchError):
            await h.callback()
        assert await h.payment_status() == "pending"
        assert h.db.rollbacks == 1

    async def test_completion_without_amount_rejected(self, h: Harness) -> None:
        h.gateway.script("PAY-1", COMPLETED, amount=None)
        with pytest.raises(AdapterError):
            await h.callback()

    async def test_callback_without_reference_verifies_nothing(self, h: Harness) -> None:
        outcome = await h.callback(reference=None)
        assert outcome.verified_state is None
        assert h.gateway.verified == []

    async def test_bad_linkage_version(self, h: Harness) -> None:
        with pytest.raises(PaymentLinkageError):
            await h.callback(v="2")


class TestReferenceLearnedAtCallback:
    async def test_reference_recorded(self) -> None:
        h = Harness(FakeGateway("sslcommerz", binds_reference_at_initiation=False))
        await h.place_order()
        assert (await h.ledger.get(h.order_id, h.db)).payment_reference is None

        h.gateway.script("VAL-7", COMPLETED, amount=100000)
        await h.callback(reference="VAL-7")

        stored = await h.ledger.get(h.order_id, h.db)
        assert stored.payment_reference == "VAL-7"
        assert stored.payment_status == "paid"


def _ssl_validator(status: str) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/gwprocess/v4/api.php"):
            return httpx.Response(
                200,
                json={
                    "status": "SUCCESS",
                    "GatewayPageURL": "https://sandbox.sslcommerz.com/pay/SESS-1",
                    "sessionkey": "SESS-1",
                },
            )
        return httpx.Response(200, json={"status": status, "amount": "1000.00"})

    return httpx.MockTransport(handler)


async def _sslcommerz_harness(validator_status: str) -> Harness:
    adapter = SslCommerzAdapter(
        SslCommerzConfig(
            store_id="store",
            store_password="secret",
            callback_url="https://api.shop.test/api/v1/payments/sslcommerz/callback",
            policy=HttpPolicy(retry_backoff=0),
        ),
        transport=_ssl_validator(validator_status),
    )
    h = Harness(adapter)  # type: ignore[arg-type]
    await h.place_order()
    return h


class TestSslCommerzSession:
    async def test_session_key_is_not_stored_as_reference(self) -> None:
        h = await _sslcommerz_harness("INVALID_TRANSACTION")
        assert (await h.ledger.get(h.order_id, h.db)).payment_reference is None

    async def test_reconcile_before_callback_leaves_order_pending(self) -> None:
        h = await _sslcommerz_harness("INVALID_TRANSACTION")
        with pytest.raises(PaymentLinkageError):
            await h.engine.reconcile(h.order_id, "staff-1", h.db)
        assert await h.payment_status() == "pending"
        assert await h.payment_log() == ["pending"]

    async def test_unknown_val_id_never_fails_order(self) -> None:
        h = await _sslcommerz_harness("INVALID_TRANSACTION")
        with pytest.raises(AdapterError):
            await h.callback(reference=None, val_id="VAL-MADE-UP")
        stored = await h.ledger.get(h.order_id, h.db)
        assert stored.payment_status == "pending"
        assert stored.payment_reference is None

    async def test_validated_val_id_marks_paid(self) -> None:
        h = await _sslcommerz_harness("VALID")
        outcome = await h.callback(reference=None, val_id="VAL-1")
        assert outcome.payment_status == "paid"
        assert (await h.ledger.get(h.order_id, h.db)).payment_reference == "VAL-1"


class TestTotalEditedDuringAttempt:
    async def test_customer_pays_new_total_after_reinitiating(self, h: Harness) -> None:
        await h.ledger.append_items(
            h.order_id,
            [NewItem(product_id="p-2", product_name="Attar", quantity=1, unit_price=5000)],
            h.db,
        )
        await h.db.commit()
        h.gateway.script("PAY-1", COMPLETED, amount=100000)
        with pytest.raises(PaymentLinkageError):
            await h.callback()
        assert h.gateway.verified == []

        initiation = await h.payments.initiate(h.order_id, h.db)
        h.nonce = initiation.linkage.nonce
        h.gateway.script("PAY-1", COMPLETED, amount=105000)
        outcome = await h.callback()
        assert outcome.payment_status == "paid"
        assert await h.payment_log() == ["pending", "paid"]


class TestManualReconcile:
    async def test_reconcile_applies_verified_state(self, h: Harness) -> None:
        h.gateway.script("PAY-1", COMPLETED, amount=100000)
        outcome = await h.engine.reconcile(h.order_id, "staff-1", h.db)
        assert outcome.payment_status == "paid"
        log = await h.ledger.history(h.order_id, "payment", h.db)
        assert log[-1].changed_by == "staff-1"
        assert h.gateway.finalized == []

    async def test_reconcile_requires_actor(self, h: Harness) -> None:
        with pytest.raises(AdminRequiredError):
            await h.engine.reconcile(h.order_id, "", h.db)

    async def test_reconcile_without_reference(self) -> None:
        h = Harness(FakeGateway("sslcommerz", binds_reference_at_initiation=False))
        await h.place_order()
        with pytest.raises(PaymentLinkageError):
            await h.engine.reconcile(h.order_id, "staff-1", h.db)


class TestStaffStatusChanges:
    async def test_payment_status_default_note(self, h: Harness) -> None:
        order = await h.engine.set_payment_status(h.order_id, "failed", "staff-1", None, h.db)
        assert order.payment_status == "failed"
        log = await h.ledger.history(h.order_id, "payment", h.db)
        assert log[-1].notes == "Payment status updated by staff"
        assert log[-1].changed_by == "staff-1"

    async def test_refunded_must_use_refund_workflow(self, h: Harness) -> None:
        with pytest.raises(RefundValidationError):
            await h.engine.set_payment_status(h.order_id, "refunded", "staff-1", "x", h.db)

    async def test_invalid_payment_move_rolls_back(self, h: Harness) -> None:
        await h.engine.set_payment_status(h.order_id, "paid", "staff-1", "Cash received", h.db)
        with pytest.raises(InvalidTransitionError):
            await h.engine.set_payment_status(h.order_id, "failed", "staff-1", None, h.db)
        assert await h.payment_status() == "paid"

    async def test_fulfillment_change_publishes_event(self, h: Harness) -> None:
        order = await h.engine.set_fulfillment_status(
            h.order_id, "processing", "staff-1", "Packed", h.db
        )
        assert order.status == "processing"
        assert len(h.publisher.events) == 1
        event = h.publisher.events[0]
        assert event.event == "order.status_changed"
        assert (event.old_status, event.new_status) == ("pending", "processing")

    async def test_publisher_outage_does_not_undo_change(self) -> None:
        h = Harness(FakeGateway("bkash"))
        h.publisher.fail = True
        await h.place_order()
        order = await h.engine.set_fulfillment_status(
            h.order_id, "cancelled", "staff-1", "Customer request", h.db
        )
        assert order.status == "cancelled"
        assert (await h.ledger.get(h.order_id, h.db)).status == "cancelled"

    async def test_payment_change_does_not_publish(self, h: Harness) -> None:
        await h.engine.set_payment_status(h.order_id, "paid", "staff-1", None, h.db)
        assert h.publisher.events == []
