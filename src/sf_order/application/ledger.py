# src/sf_order/application/ledger.py
"""OrderLedger: the only sanctioned mutator of an order's projection.

Every write follows the same shape:
  1. read the order (fresh, with its version),
  2. decide in memory,
  3. inside a SAVEPOINT write side rows (history / items) and then
     compare-and-set the `orders` row against the version read in step 1.

A lost compare-and-set rolls back the savepoint, so the side rows vanish with
it, and the loop starts over from a fresh read. After
`TRANSITION_MAX_RETRIES` lost races ConcurrentModificationError surfaces.

The ledger never commits: the calling application service owns the
transaction.
"""
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.sf_common.enums import PaymentStatus, StatusAxis
from src.sf_common.errors import (
    ConcurrentModificationError,
    InvalidOrderEditError,
    OrderItemNotFoundError,
    OrderNotEditableError,
    OrderNotFoundError,
)
from src.sf_common.id_generator import generate_id
from src.sf_order.domain.models import Order, OrderDraft, OrderItem, StatusHistoryEntry
from src.sf_order.domain.repository import OrderRepositoryProtocol
from src.sf_order.domain.state_machine import INITIAL_STATE, validate_transition
from src.sf_order.infrastructure.persistence import OrderRepository

logger = logging.getLogger(__name__)

_SETTLED_PAYMENT = {PaymentStatus.PAID.value, PaymentStatus.REFUNDED.value}


class _StaleVersion(Exception):
    """Internal signal: compare-and-set lost against a concurrent writer."""


@dataclass
class NewItem:
    """A priced line to add to an existing order (price already snapshotted)."""

    product_id: str
    product_name: str
    quantity: int
    unit_price: int
    variant_id: str | None = None
    variant_name: str | None = None


class OrderLedger:
    def __init__(
        self,
        repo: OrderRepositoryProtocol | None = None,
        max_retries: int | None = None,
    ) -> None:
        self._repo: OrderRepositoryProtocol = repo or OrderRepository()
        self._max_retries = max_retries or settings.TRANSITION_MAX_RETRIES

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, order_id: str, db: AsyncSession) -> Order:
        order = await self._repo.get_by_id(order_id, db)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def history(
        self, order_id: str, axis: str, db: AsyncSession
    ) -> list[StatusHistoryEntry]:
        return await self._repo.list_history(order_id, axis, db)

    async def order_number_taken(self, order_number: str, db: AsyncSession) -> bool:
        return await self._repo.order_number_exists(order_number, db)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        draft: OrderDraft,
        db: AsyncSession,
        actor: str | None = None,
        note: str = "Order created",
    ) -> Order:
        """Insert the order, its items and the opening entry of both logs."""
        if not draft.items:
            raise InvalidOrderEditError("An order needs at least one item")
        order_id = generate_id()
        items = [
            OrderItem(
                id=generate_id(),
                order_id=order_id,
                product_id=item.product_id,
                product_name=item.product_name,
                variant_id=item.variant_id,
                variant_name=item.variant_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
            )
            for item in draft.items
        ]
        for item in items:
            _check_quantity(item.quantity)
        order = Order(
            id=order_id,
            order_number=draft.order_number,
            customer_name=draft.customer_name,
            customer_phone=draft.customer_phone,
            customer_email=draft.customer_email,
            shipping_address=draft.shipping_address,
            shipping_method=draft.shipping_method,
            shipping_fee=draft.shipping_fee,
            notes=draft.notes,
            payment_method=draft.payment_method,
            order_source=draft.order_source,
            items=items,
        )
        await self._repo.insert_order(order, db)
        await self._repo.insert_items(items, db)
        for axis in (StatusAxis.FULFILLMENT.value, StatusAxis.PAYMENT.value):
            await self._repo.append_history(
                StatusHistoryEntry(
                    order_id=order_id,
                    axis=axis,
                    old_status=None,
                    new_status=INITIAL_STATE[axis],
                    changed_by=actor,
                    notes=note,
                ),
                db,
            )
        logger.info("Order %s created (%s, total=%d)", order.order_number, order.order_source, order.total)
        return order

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def apply_transition(
        self,
        order_id: str,
        axis: str,
        new_value: str,
        actor: str | None,
        note: str | None,
        db: AsyncSession,
        *,
        idempotent: bool = False,
    ) -> tuple[Order, StatusHistoryEntry | None]:
        """Validate, write the new value and append the history entry atomically.

        With `idempotent=True` an order already at `new_value` is returned
        untouched and no entry is written (returned entry is None).
        """
        for attempt in range(1, self._max_retries + 1):
            order = await self.get(order_id, db)
            current = order.value_of(axis)
            if idempotent and current == new_value:
                logger.info(
                    "Idempotent %s transition on %s: already %s", axis, order.order_number, current
                )
                return order, None
            validate_transition(axis, current, new_value)

            entry = StatusHistoryEntry(
                order_id=order.id,
                axis=axis,
                old_status=current,
                new_status=new_value,
                changed_by=actor,
                notes=note,
            )

            async def _write(o: Order, session: AsyncSession) -> None:
                o.set_value(axis, new_value)
                await self._repo.append_history(entry, session)

            if await self._try_commit_step(order, db, _write):
                logger.info(
                    "Order %s %s: %s -> %s (actor=%s)",
                    order.order_number, axis, current, new_value, actor or "system",
                )
                return order, entry
            logger.warning(
                "Version conflict on order %s (%s -> %s), attempt %d/%d",
                order_id, current, new_value, attempt, self._max_retries,
            )
        raise ConcurrentModificationError(order_id)

    # ------------------------------------------------------------------
    # Item / fee corrections (before shipment only)
    # ------------------------------------------------------------------

    async def append_items(
        self, order_id: str, new_items: list[NewItem], db: AsyncSession
    ) -> Order:
        if not new_items:
            raise InvalidOrderEditError("No items to add")
        for item in new_items:
            _check_quantity(item.quantity)

        async def _write(order: Order, session: AsyncSession) -> None:
            items = [
                OrderItem(
                    id=generate_id(),
                    order_id=order.id,
                    product_id=n.product_id,
                    product_name=n.product_name,
                    variant_id=n.variant_id,
                    variant_name=n.variant_name,
                    quantity=n.quantity,
                    unit_price=n.unit_price,
                )
                for n in new_items
            ]
            await self._repo.insert_items(items, session)
            order.items.extend(items)

        return await self._edit_items(order_id, db, _write)

    async def remove_items(
        self, order_id: str, item_ids: list[str], db: AsyncSession
    ) -> Order:
        if not item_ids:
            raise InvalidOrderEditError("No items to remove")

        async def _write(order: Order, session: AsyncSession) -> None:
            known = {item.id for item in order.items}
            for item_id in item_ids:
                if item_id not in known:
                    raise OrderItemNotFoundError(item_id)
            if known <= set(item_ids):
                raise InvalidOrderEditError("Cannot remove every item; cancel the order instead")
            await self._repo.delete_items(order.id, list(item_ids), session)
            order.items = [item for item in order.items if item.id not in set(item_ids)]

        return await self._edit_items(order_id, db, _write)

    async def update_item_quantity(
        self, order_id: str, item_id: str, quantity: int, db: AsyncSession
    ) -> Order:
        _check_quantity(quantity)

        async def _write(order: Order, session: AsyncSession) -> None:
            item = next((i for i in order.items if i.id == item_id), None)
            if item is None:
                raise OrderItemNotFoundError(item_id)
            await self._repo.update_item_quantity(item_id, quantity, session)
            item.quantity = quantity

        return await self._edit_items(order_id, db, _write)

    async def update_shipping_fee(
        self, order_id: str, shipping_fee: int, db: AsyncSession
    ) -> Order:
        if shipping_fee < 0:
            raise InvalidOrderEditError("Shipping fee cannot be negative")

        async def _write(order: Order, session: AsyncSession) -> None:
            order.shipping_fee = shipping_fee

        return await self._edit_items(order_id, db, _write)

    # ------------------------------------------------------------------
    # Payment linkage
    # ------------------------------------------------------------------

    async def set_payment_linkage(
        self,
        order_id: str,
        reference: str | None,
        nonce: str | None,
        db: AsyncSession,
    ) -> Order:
        """Record the provider reference and callback nonce of the latest initiation."""

        async def _write(order: Order, session: AsyncSession) -> None:
            order.payment_reference = reference
            order.payment_nonce = nonce

        for _ in range(self._max_retries):
            order = await self.get(order_id, db)
            if await self._try_commit_step(order, db, _write):
                return order
        raise ConcurrentModificationError(order_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _edit_items(
        self,
        order_id: str,
        db: AsyncSession,
        write: Callable[[Order, AsyncSession], Awaitable[None]],
    ) -> Order:
        async def _write_and_reprice(order: Order, session: AsyncSession) -> None:
            charged = order.total
            await write(order, session)
            order.recompute_totals()
            if order.total != charged:
                _release_payment_attempt(order, charged)

        for attempt in range(1, self._max_retries + 1):
            order = await self.get(order_id, db)
            if not order.items_editable:
                raise OrderNotEditableError(order_id, order.status)
            if await self._try_commit_step(order, db, _write_and_reprice):
                return order
            logger.warning(
                "Version conflict editing items of order %s, attempt %d/%d",
                order_id, attempt, self._max_retries,
            )
        raise ConcurrentModificationError(order_id)

    async def _try_commit_step(
        self,
        order: Order,
        db: AsyncSession,
        write: Callable[[Order, AsyncSession], Awaitable[None]],
    ) -> bool:
        """Run `write` and the compare-and-set in one savepoint.

        Returns False when the version moved underneath us; any other error
        propagates after the savepoint is rolled back.
        """
        expected_version = order.version
        try:
            async with db.begin_nested():
                await write(order, db)
                order.recompute_totals()
                if not await self._repo.compare_and_set(order, expected_version, db):
                    raise _StaleVersion()
        except _StaleVersion:
            return False
        order.version = expected_version + 1
        return True


def _check_quantity(quantity: int) -> None:
    if quantity <= 0:
        raise InvalidOrderEditError(f"Quantity must be positive, got {quantity}")


def _release_payment_attempt(order: Order, charged: int) -> None:
    """A new total invalidates whatever amount a gateway was asked to collect."""
    if order.payment_status in _SETTLED_PAYMENT:
        raise InvalidOrderEditError(
            f"Order {order.order_number} is {order.payment_status}; its total cannot change"
        )
    if order.payment_nonce or order.payment_reference:
        logger.info(
            "Total of %s changed %d -> %d; open %s payment attempt released",
            order.order_number, charged, order.total, order.payment_method,
        )
        order.payment_nonce = None
        order.payment_reference = None
