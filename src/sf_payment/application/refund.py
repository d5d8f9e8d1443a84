"""RefundWorkflow: paid -> refunded, staff only.

Records the financial fact on the ledger. Moving the money back to the
customer happens outside this service; no gateway refund API is called.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_common.enums import PaymentStatus, StatusAxis
from src.sf_common.errors import AdminRequiredError, RefundValidationError
from src.sf_common.money import format_money
from src.sf_order.application.ledger import OrderLedger
from src.sf_order.domain.models import Order

logger = logging.getLogger(__name__)


def refund_note(amount: int, reason: str) -> str:
    return f"Refund of {format_money(amount)}: {reason}"


class RefundWorkflow:
    def __init__(self, ledger: OrderLedger | None = None) -> None:
        self._ledger = ledger or OrderLedger()

    async def refund(
        self,
        order_id: str,
        amount: int,
        reason: str,
        actor: str,
        db: AsyncSession,
    ) -> Order:
        if not actor:
            raise AdminRequiredError()
        reason = (reason or "").strip()
        if not reason:
            raise RefundValidationError("a reason is required")
        try:
            order = await self._ledger.get(order_id, db)
            if order.payment_status != PaymentStatus.PAID.value:
                raise RefundValidationError(
                    f"only paid orders can be refunded, order is {order.payment_status}"
                )
            if amount <= 0 or amount > order.total:
                raise RefundValidationError(
                    f"amount must be between 1 and {order.total}, got {amount}"
                )
            order, _ = await self._ledger.apply_transition(
                order_id,
                StatusAxis.PAYMENT.value,
                PaymentStatus.REFUNDED.value,
                actor,
                refund_note(amount, reason),
                db,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Order %s refunded %s by %s", order.order_number, format_money(amount), actor
        )
        return order
