# src/sf_payment/application/reconciliation.py
"""ReconciliationEngine: applies gateway evidence and staff decisions to the ledger.

Webhook path:
  parse callback -> check linkage (method, nonce, reference) -> finalize ->
  verify with the provider -> apply the VERIFIED state, never the callback's.

Verified outcome against current payment_status:

  verified    | pending        | failed              | paid / refunded
  ------------+----------------+---------------------+----------------------
  COMPLETED   | -> paid        | -> pending -> paid  | no-op (duplicate)
  FAILED      | -> failed      | no-op (duplicate)   | ignored (stale)
  PENDING     | no-op          | no-op               | no-op

Gateway timeouts surface as GatewayUnavailableError before anything is
written, so a timeout never moves payment_status.
"""
import hmac
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_common.enums import PaymentStatus, StatusAxis, VerifiedPaymentState
from src.sf_common.errors import (
    AdapterError,
    AdminRequiredError,
    PaymentAmountMismatchError,
    PaymentLinkageError,
    RefundValidationError,
)
from src.sf_order.application.ledger import OrderLedger
from src.sf_order.application.notifications import publish_after_commit
from src.sf_order.domain.events import OrderEvent, OrderEventPublisherProtocol
from src.sf_order.domain.models import Order, StatusHistoryEntry
from src.sf_order.infrastructure.event_publisher import RedisOrderEventPublisher
from src.sf_payment.domain.gateway import PaymentGatewayProtocol
from src.sf_payment.domain.models import CallbackPayload, VerificationResult
from src.sf_payment.infrastructure.registry import GatewayRegistry, get_gateway_registry

logger = logging.getLogger(__name__)

_P = PaymentStatus
_PAYMENT = StatusAxis.PAYMENT.value
_FULFILLMENT = StatusAxis.FULFILLMENT.value
_SETTLED = {_P.PAID.value, _P.REFUNDED.value}


@dataclass(frozen=True)
class ReconcileOutcome:
    order_id: str
    order_number: str
    payment_status: str
    verified_state: str | None
    entries_written: int


class ReconciliationEngine:
    def __init__(
        self,
        ledger: OrderLedger | None = None,
        registry: GatewayRegistry | None = None,
        publisher: OrderEventPublisherProtocol | None = None,
    ) -> None:
        self._ledger = ledger or OrderLedger()
        self._registry = registry
        self._publisher = publisher or RedisOrderEventPublisher()

    @property
    def registry(self) -> GatewayRegistry:
        return self._registry or get_gateway_registry()

    # ------------------------------------------------------------------
    # Gateway-originated
    # ------------------------------------------------------------------

    async def handle_callback(
        self, method: str, params: Mapping[str, Any], db: AsyncSession
    ) -> ReconcileOutcome:
        gateway = self.registry.get(method)
        payload = gateway.parse_callback(params)
        order = await self._ledger.get(payload.linkage.order_id, db)
        _check_linkage(order, gateway, payload)

        if payload.reference is None:
            logger.info(
                "%s callback for %s without a payment reference (reported %s); nothing to verify",
                method, order.order_number, payload.reported_status,
            )
            return _outcome(order, None, 0)

        await gateway.finalize(payload.reference)
        result = await gateway.verify(payload.reference)
        logger.info(
            "%s verified %s for order %s: %s",
            method, payload.reference, order.order_number, result.state,
        )
        return await self._apply_verified(
            order.id, gateway, result, actor=None, note_prefix="Gateway", db=db
        )

    # ------------------------------------------------------------------
    # Administrator-originated
    # ------------------------------------------------------------------

    async def reconcile(self, order_id: str, actor: str, db: AsyncSession) -> ReconcileOutcome:
        """Re-run verification for a stuck order against its recorded reference."""
        _require_actor(actor)
        order = await self._ledger.get(order_id, db)
        gateway = self.registry.get(order.payment_method)
        if not order.payment_reference:
            raise PaymentLinkageError(f"no provider reference recorded for order {order_id}")
        result = await gateway.verify(order.payment_reference)
        logger.info(
            "Manual reconcile of %s by %s: %s reports %s",
            order.order_number, actor, gateway.method, result.state,
        )
        return await self._apply_verified(
            order.id, gateway, result, actor=actor, note_prefix="Reconciled", db=db
        )

    async def set_payment_status(
        self,
        order_id: str,
        new_status: str,
        actor: str,
        note: str | None,
        db: AsyncSession,
    ) -> Order:
        _require_actor(actor)
        if new_status == _P.REFUNDED.value:
            raise RefundValidationError("record refunds through the refund endpoint")
        try:
            order, _ = await self._ledger.apply_transition(
                order_id, _PAYMENT, new_status, actor,
                _note(note, "Payment status updated by staff"), db,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return order

    async def set_fulfillment_status(
        self,
        order_id: str,
        new_status: str,
        actor: str,
        note: str | None,
        db: AsyncSession,
    ) -> Order:
        _require_actor(actor)
        try:
            order, entry = await self._ledger.apply_transition(
                order_id, _FULFILLMENT, new_status, actor,
                _note(note, "Order status updated by staff"), db,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        await self._announce(order, entry)
        return order

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _announce(self, order: Order, entry: StatusHistoryEntry | None) -> None:
        if entry is None or entry.old_status is None:
            return
        await publish_after_commit(
            self._publisher,
            [OrderEvent.status_changed(order, entry.old_status, entry.new_status)],
        )

    async def _apply_verified(
        self,
        order_id: str,
        gateway: PaymentGatewayProtocol,
        result: VerificationResult,
        actor: str | None,
        note_prefix: str,
        db: AsyncSession,
    ) -> ReconcileOutcome:
        try:
            order = await self._ledger.get(order_id, db)
            if result.order_linkage and result.order_linkage not in (order.id, order.order_number):
                raise PaymentLinkageError(
                    f"{gateway.method} reports {result.reference} for {result.order_linkage}, "
                    f"not {order.order_number}"
                )
            if result.state == VerifiedPaymentState.COMPLETED.value:
                _check_amount(order, gateway.method, result)

            if order.payment_reference != result.reference:
                order = await self._ledger.set_payment_linkage(
                    order.id, result.reference, order.payment_nonce, db
                )

            note = _verified_note(note_prefix, gateway.method, result)
            written = 0
            current = order.payment_status
            if result.state == VerifiedPaymentState.COMPLETED.value:
                if current in _SETTLED:
                    logger.info(
                        "Duplicate completion for %s (already %s)", order.order_number, current
                    )
                else:
                    if current == _P.FAILED.value:
                        order, entry = await self._ledger.apply_transition(
                            order.id, _PAYMENT, _P.PENDING.value, actor,
                            f"{note_prefix}: retried payment confirmed by {gateway.method}", db,
                            idempotent=True,
                        )
                        written += entry is not None
                    order, entry = await self._ledger.apply_transition(
                        order.id, _PAYMENT, _P.PAID.value, actor, note, db, idempotent=True
                    )
                    written += entry is not None
            elif result.state == VerifiedPaymentState.FAILED.value:
                if current in _SETTLED:
                    logger.warning(
                        "Ignoring stale failure for %s: payment already %s",
                        order.order_number, current,
                    )
                else:
                    order, entry = await self._ledger.apply_transition(
                        order.id, _PAYMENT, _P.FAILED.value, actor, note, db, idempotent=True
                    )
                    written += entry is not None
            else:
                logger.info(
                    "Payment for %s still pending at %s; left unchanged",
                    order.order_number, gateway.method,
                )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return _outcome(order, result.state, written)


def _check_linkage(order: Order, gateway: PaymentGatewayProtocol, payload: CallbackPayload) -> None:
    if order.payment_method != gateway.method:
        raise PaymentLinkageError(
            f"order {order.order_number} is settled by {order.payment_method}, not {gateway.method}"
        )
    if not order.payment_nonce or not hmac.compare_digest(
        order.payment_nonce.encode(), payload.linkage.nonce.encode()
    ):
        logger.warning("Nonce mismatch on %s callback for %s", gateway.method, order.order_number)
        raise PaymentLinkageError("nonce does not match the latest payment attempt")
    if (
        gateway.binds_reference_at_initiation
        and order.payment_reference
        and payload.reference
        and not hmac.compare_digest(order.payment_reference.encode(), payload.reference.encode())
    ):
        raise PaymentLinkageError("payment reference does not match the order")


def _check_amount(order: Order, method: str, result: VerificationResult) -> None:
    if result.amount is None:
        raise AdapterError(method, "completed payment reported without an amount")
    if result.amount != order.total:
        logger.error(
            "Amount mismatch on %s: order total %d, %s reports %d",
            order.order_number, order.total, method, result.amount,
        )
        raise PaymentAmountMismatchError(order.id, order.total, result.amount)


def _verified_note(prefix: str, method: str, result: VerificationResult) -> str:
    note = f"{prefix}: {method} verified {result.state.lower()}"
    if result.transaction_id:
        note += f" (txn {result.transaction_id})"
    return note


def _note(note: str | None, default: str) -> str:
    return note.strip() if note and note.strip() else default


def _require_actor(actor: str | None) -> None:
    if not actor:
        raise AdminRequiredError()


def _outcome(order: Order, state: str | None, written: int) -> ReconcileOutcome:
    return ReconcileOutcome(
        order_id=order.id,
        order_number=order.order_number,
        payment_status=order.payment_status,
        verified_state=state,
        entries_written=written,
    )
