# src/sf_checkout/application/composer.py
"""OrderComposer: the only way a new order enters the ledger.

Every path (customer checkout, staff manual order, incomplete-order
conversion) runs the same steps inside one transaction:
  1. blocking gate (refusal happens before anything is written),
  2. price every line from the live catalog (snapshot),
  3. allocate a unique order number,
  4. ledger.create (order, items, opening history entries),
  5. conversion only: mark the snapshot converted, or undo everything.
The `order.created` event goes out after commit.
"""
import logging
import random

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.sf_blocking.application.service import BlockingGate
from src.sf_blocking.domain.models import CustomerIdentity
from src.sf_checkout.domain.models import (
    Cart,
    CartLine,
    ConversionEdits,
    CustomerDetails,
    IncompleteOrder,
)
from src.sf_checkout.domain.repository import CatalogProtocol, IncompleteOrderRepositoryProtocol
from src.sf_checkout.infrastructure.catalog import SqlCatalog
from src.sf_checkout.infrastructure.persistence import IncompleteOrderRepository
from src.sf_common.datetime_utils import utc_today
from src.sf_common.enums import IncompleteOrderStatus, OrderSource, PaymentMethod
from src.sf_common.errors import (
    AdminRequiredError,
    EmptyCartError,
    IncompleteOrderNotFoundError,
    IncompleteOrderNotOpenError,
    InvalidOrderEditError,
    OrderNumberExhaustedError,
    ProductUnavailableError,
    ShippingOptionNotFoundError,
)
from src.sf_order.application.ledger import OrderLedger
from src.sf_order.application.notifications import publish_after_commit
from src.sf_order.domain.events import OrderEvent, OrderEventPublisherProtocol
from src.sf_order.domain.models import Order, OrderDraft, OrderItem
from src.sf_order.domain.numbering import generate_order_number, resolve_prefix
from src.sf_order.infrastructure.event_publisher import RedisOrderEventPublisher
from src.sf_payment.infrastructure.registry import GatewayRegistry, get_gateway_registry

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5

CHECKOUT_NOTE = "Order placed at checkout"
MANUAL_NOTE = "Manual order created by staff"
CONVERSION_NOTE = "Converted from incomplete order by CRM"


class OrderComposer:
    def __init__(
        self,
        ledger: OrderLedger | None = None,
        catalog: CatalogProtocol | None = None,
        incomplete_repo: IncompleteOrderRepositoryProtocol | None = None,
        blocking: BlockingGate | None = None,
        publisher: OrderEventPublisherProtocol | None = None,
        registry: GatewayRegistry | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._ledger = ledger or OrderLedger()
        self._catalog: CatalogProtocol = catalog or SqlCatalog()
        self._incomplete: IncompleteOrderRepositoryProtocol = (
            incomplete_repo or IncompleteOrderRepository()
        )
        self._blocking = blocking or BlockingGate()
        self._publisher = publisher or RedisOrderEventPublisher()
        self._registry = registry
        self._rng = rng or random.Random()

    @property
    def registry(self) -> GatewayRegistry:
        return self._registry or get_gateway_registry()

    # ------------------------------------------------------------------
    # Order creation
    # ------------------------------------------------------------------

    async def create_from_cart(self, cart: Cart, db: AsyncSession) -> Order:
        if cart.shipping_fee_override is not None:
            raise InvalidOrderEditError("Customers cannot set the shipping fee")
        order = await self._compose(cart, OrderSource.CHECKOUT.value, CHECKOUT_NOTE, db)
        await self._announce(order)
        return order

    async def create_manual(self, cart: Cart, actor: str, db: AsyncSession) -> Order:
        if not actor:
            raise AdminRequiredError()
        order = await self._compose(cart, OrderSource.ADMIN_MANUAL.value, MANUAL_NOTE, db)
        logger.info("Manual order %s created by %s", order.order_number, actor)
        await self._announce(order)
        return order

    async def convert_from_incomplete(
        self,
        incomplete_id: str,
        edits: ConversionEdits,
        actor: str,
        db: AsyncSession,
    ) -> Order:
        """Create an order from a snapshot and mark the snapshot converted, atomically."""
        if not actor:
            raise AdminRequiredError()
        snapshot = await self._incomplete.get(incomplete_id, db)
        if snapshot is None:
            raise IncompleteOrderNotFoundError(incomplete_id)
        if snapshot.status != IncompleteOrderStatus.OPEN.value:
            raise IncompleteOrderNotOpenError(incomplete_id, snapshot.status)

        cart = _cart_from_snapshot(snapshot, edits)
        order = await self._compose(
            cart,
            OrderSource.CONVERTED_FROM_INCOMPLETE.value,
            CONVERSION_NOTE,
            db,
            converting=snapshot.id,
        )
        logger.info(
            "Incomplete order %s converted to %s by %s", snapshot.id, order.order_number, actor
        )
        await self._announce(order)
        return order

    # ------------------------------------------------------------------
    # Incomplete orders
    # ------------------------------------------------------------------

    async def capture_incomplete(
        self, snapshot: IncompleteOrder, db: AsyncSession
    ) -> IncompleteOrder:
        try:
            saved = await self._incomplete.upsert_open(snapshot, db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.debug("Captured incomplete order %s for session %s", saved.id, saved.session_id)
        return saved

    async def abandon_incomplete(
        self, incomplete_id: str, actor: str, db: AsyncSession
    ) -> IncompleteOrder:
        if not actor:
            raise AdminRequiredError()
        try:
            if not await self._incomplete.mark_abandoned(incomplete_id, db):
                existing = await self._incomplete.get(incomplete_id, db)
                if existing is None:
                    raise IncompleteOrderNotFoundError(incomplete_id)
                raise IncompleteOrderNotOpenError(incomplete_id, existing.status)
            abandoned = await self._incomplete.get(incomplete_id, db)
            if abandoned is None:
                raise IncompleteOrderNotFoundError(incomplete_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Incomplete order %s abandoned by %s", incomplete_id, actor)
        return abandoned

    async def list_incomplete(
        self, db: AsyncSession, status: str = IncompleteOrderStatus.OPEN.value, limit: int = 50
    ) -> list[IncompleteOrder]:
        return await self._incomplete.list_by_status(status, limit, db)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _compose(
        self,
        cart: Cart,
        source: str,
        note: str,
        db: AsyncSession,
        converting: str | None = None,
    ) -> Order:
        customer = cart.customer
        try:
            await self._blocking.ensure_not_blocked(
                CustomerIdentity(
                    email=customer.email,
                    phone=customer.phone,
                    device_id=cart.device_id,
                    ip_address=cart.ip_address,
                ),
                db,
            )
            if not cart.lines:
                raise EmptyCartError()
            self.registry.get(cart.payment_method)
            items = await self._price(cart.lines, db)
            shipping_fee, shipping_method = await self._shipping(cart, db)

            order = await self._create_with_number(
                OrderDraft(
                    order_number="",
                    customer_name=customer.name,
                    customer_phone=customer.phone,
                    customer_email=customer.email,
                    shipping_address=customer.address,
                    shipping_method=shipping_method,
                    shipping_fee=shipping_fee,
                    notes=customer.notes,
                    payment_method=cart.payment_method,
                    order_source=source,
                    items=items,
                ),
                note,
                db,
            )
            if converting is not None:
                if not await self._incomplete.mark_converted(converting, order.id, db):
                    # Lost a race with another conversion / abandonment.
                    current = await self._incomplete.get(converting, db)
                    raise IncompleteOrderNotOpenError(
                        converting, current.status if current else "missing"
                    )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return order

    async def _price(self, lines: list[CartLine], db: AsyncSession) -> list[OrderItem]:
        items: list[OrderItem] = []
        for line in lines:
            if line.quantity <= 0:
                raise InvalidOrderEditError(f"Quantity must be positive, got {line.quantity}")
            product = await self._catalog.get_product(line.product_id, line.variant_id, db)
            if product is None:
                raise ProductUnavailableError(line.product_id)
            items.append(
                OrderItem(
                    id="",  # assigned by the ledger
                    order_id="",
                    product_id=product.product_id,
                    product_name=product.name,
                    variant_id=product.variant_id,
                    variant_name=product.variant_name,
                    quantity=line.quantity,
                    unit_price=product.unit_price,
                )
            )
        return items

    async def _shipping(self, cart: Cart, db: AsyncSession) -> tuple[int, str | None]:
        option = None
        if cart.shipping_code:
            option = await self._catalog.get_shipping_option(cart.shipping_code, db)
            if option is None:
                raise ShippingOptionNotFoundError(cart.shipping_code)
        name = option.name if option else None
        if cart.shipping_fee_override is not None:
            if cart.shipping_fee_override < 0:
                raise InvalidOrderEditError("Shipping fee cannot be negative")
            return cart.shipping_fee_override, name
        return (option.fee if option else 0), name

    async def _create_with_number(self, draft: OrderDraft, note: str, db: AsyncSession) -> Order:
        prefix = resolve_prefix(
            settings.ORDER_NUMBER_USE_DOMAIN_PREFIX,
            settings.ORDER_NUMBER_PREFIX,
            settings.SITE_DOMAIN,
        )
        for _ in range(ORDER_NUMBER_ATTEMPTS):
            draft.order_number = generate_order_number(prefix, utc_today(), self._rng)
            if await self._ledger.order_number_taken(draft.order_number, db):
                logger.info("Order number %s taken, drawing another", draft.order_number)
                continue
            try:
                async with db.begin_nested():
                    return await self._ledger.create(draft, db, actor=None, note=note)
            except IntegrityError:
                # Concurrent checkout drew the same number between check and insert.
                if not await self._ledger.order_number_taken(draft.order_number, db):
                    raise
                logger.info("Order number %s raced, drawing another", draft.order_number)
        raise OrderNumberExhaustedError()

    async def _announce(self, order: Order) -> None:
        await publish_after_commit(self._publisher, [OrderEvent.created(order)])


def _cart_from_snapshot(snapshot: IncompleteOrder, edits: ConversionEdits) -> Cart:
    def pick(edited: str | None, original: str | None) -> str | None:
        value = edited if edited is not None else original
        return value.strip() or None if value else None

    name = pick(edits.customer_name, snapshot.customer_name)
    phone = pick(edits.customer_phone, snapshot.customer_phone)
    if not name or not phone:
        raise InvalidOrderEditError("Customer name and phone are required to convert")

    lines = edits.lines
    if lines is None:
        lines = [
            CartLine(product_id=i.product_id, quantity=i.quantity, variant_id=i.variant_id)
            for i in snapshot.items
        ]
    shipping_code = pick(edits.shipping_code, snapshot.shipping_code)
    fee_override = edits.shipping_fee
    if fee_override is None and shipping_code is None:
        fee_override = snapshot.shipping_fee
    return Cart(
        customer=CustomerDetails(
            name=name,
            phone=phone,
            email=pick(edits.customer_email, snapshot.customer_email),
            address=pick(edits.shipping_address, snapshot.shipping_address),
            notes=pick(edits.notes, snapshot.notes),
        ),
        lines=lines,
        payment_method=pick(edits.payment_method, snapshot.payment_method) or PaymentMethod.COD.value,
        shipping_code=shipping_code,
        shipping_fee_override=fee_override,
    )

