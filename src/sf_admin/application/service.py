# src/sf_admin/application/service.py
"""Admin application service: order lookup and pre-shipment corrections.

Status moves, refunds and reconciliation live in sf_payment; this service
covers what the ledger exposes for staff directly. New lines are priced from
the catalog at the moment they are added.
"""
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_checkout.domain.models import CartLine
from src.sf_checkout.domain.repository import CatalogProtocol
from src.sf_checkout.infrastructure.catalog import SqlCatalog
from src.sf_common.enums import StatusAxis
from src.sf_common.errors import AdminRequiredError, ProductUnavailableError
from src.sf_order.application.ledger import NewItem, OrderLedger
from src.sf_order.domain.models import Order, StatusHistoryEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderDetail:
    order: Order
    status_history: list[StatusHistoryEntry]
    payment_history: list[StatusHistoryEntry]


class OrderAdminService:
    def __init__(
        self,
        ledger: OrderLedger | None = None,
        catalog: CatalogProtocol | None = None,
    ) -> None:
        self._ledger = ledger or OrderLedger()
        self._catalog: CatalogProtocol = catalog or SqlCatalog()

    async def get_detail(self, order_id: str, db: AsyncSession) -> OrderDetail:
        order = await self._ledger.get(order_id, db)
        return OrderDetail(
            order=order,
            status_history=await self._ledger.history(order_id, StatusAxis.FULFILLMENT.value, db),
            payment_history=await self._ledger.history(order_id, StatusAxis.PAYMENT.value, db),
        )

    async def add_items(
        self, order_id: str, lines: list[CartLine], actor: str, db: AsyncSession
    ) -> Order:
        async def _edit() -> Order:
            priced: list[NewItem] = []
            for line in lines:
                product = await self._catalog.get_product(line.product_id, line.variant_id, db)
                if product is None:
                    raise ProductUnavailableError(line.product_id)
                priced.append(
                    NewItem(
                        product_id=product.product_id,
                        product_name=product.name,
                        variant_id=product.variant_id,
                        variant_name=product.variant_name,
                        quantity=line.quantity,
                        unit_price=product.unit_price,
                    )
                )
            return await self._ledger.append_items(order_id, priced, db)

        return await self._run(actor, db, _edit, f"added {len(lines)} item(s) to")

    async def remove_item(
        self, order_id: str, item_id: str, actor: str, db: AsyncSession
    ) -> Order:
        return await self._run(
            actor, db,
            lambda: self._ledger.remove_items(order_id, [item_id], db),
            f"removed item {item_id} from",
        )

    async def update_item_quantity(
        self, order_id: str, item_id: str, quantity: int, actor: str, db: AsyncSession
    ) -> Order:
        return await self._run(
            actor, db,
            lambda: self._ledger.update_item_quantity(order_id, item_id, quantity, db),
            f"set quantity {quantity} of item {item_id} on",
        )

    async def update_shipping_fee(
        self, order_id: str, shipping_fee: int, actor: str, db: AsyncSession
    ) -> Order:
        return await self._run(
            actor, db,
            lambda: self._ledger.update_shipping_fee(order_id, shipping_fee, db),
            f"set shipping fee {shipping_fee} on",
        )

    async def _run(
        self,
        actor: str,
        db: AsyncSession,
        edit: Callable[[], Awaitable[Order]],
        action: str,
    ) -> Order:
        if not actor:
            raise AdminRequiredError()
        try:
            order = await edit()
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("%s %s order %s (total now %d)", actor, action, order.order_number, order.total)
        return order
