"""PaymentService: opens a payment attempt for an order.

The provider is called before anything is written: if it refuses or times
out the order is untouched. On success the attempt's nonce (and reference,
when the provider hands one out up front) is recorded on the order, which
invalidates callbacks for any earlier attempt.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_common.enums import OrderStatus, PaymentStatus, StatusAxis
from src.sf_common.errors import PaymentNotInitiableError
from src.sf_common.id_generator import new_nonce
from src.sf_order.application.ledger import OrderLedger
from src.sf_payment.domain.models import CallbackLinkage, PaymentInitiation
from src.sf_payment.infrastructure.registry import GatewayRegistry, get_gateway_registry

logger = logging.getLogger(__name__)

_INITIABLE = {PaymentStatus.PENDING.value, PaymentStatus.FAILED.value}


class PaymentService:
    def __init__(
        self,
        ledger: OrderLedger | None = None,
        registry: GatewayRegistry | None = None,
    ) -> None:
        self._ledger = ledger or OrderLedger()
        self._registry = registry

    @property
    def registry(self) -> GatewayRegistry:
        return self._registry or get_gateway_registry()

    async def initiate(self, order_id: str, db: AsyncSession) -> PaymentInitiation:
        order = await self._ledger.get(order_id, db)
        if order.status == OrderStatus.CANCELLED.value:
            raise PaymentNotInitiableError(order_id, f"{order.payment_status} (order cancelled)")
        if order.payment_status not in _INITIABLE:
            raise PaymentNotInitiableError(order_id, order.payment_status)
        gateway = self.registry.get(order.payment_method)

        linkage = CallbackLinkage(order_id=order.id, nonce=new_nonce())
        initiation = await gateway.initiate(order, linkage)

        try:
            if order.payment_status == PaymentStatus.FAILED.value:
                await self._ledger.apply_transition(
                    order.id,
                    StatusAxis.PAYMENT.value,
                    PaymentStatus.PENDING.value,
                    None,
                    f"Payment retry started via {gateway.method}",
                    db,
                    idempotent=True,
                )
            await self._ledger.set_payment_linkage(order.id, initiation.reference, linkage.nonce, db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Payment attempt opened for %s via %s (redirect=%s)",
            order.order_number, gateway.method, initiation.payment_url is not None,
        )
        return initiation
