# src/sf_order/infrastructure/persistence.py
"""OrderRepository: raw SQL persistence for the order ledger.

The `orders` row is a projection; `order_status_history` and
`payment_status_history` are append-only. Every projection write goes
through `compare_and_set`, which only succeeds against the version the
caller read.

Transaction ownership: the CALLER (ledger / application service) opens and
commits the transaction.
"""
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_common.enums import StatusAxis
from src.sf_order.domain.models import Order, OrderItem, StatusHistoryEntry

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_INSERT_ORDER_SQL = text("""
    INSERT INTO orders (id, order_number, customer_name, customer_phone,
        customer_email, shipping_address, shipping_method, notes,
        payment_method, order_source, status, payment_status,
        subtotal, shipping_fee, total, version)
    VALUES (:id, :order_number, :customer_name, :customer_phone,
        :customer_email, :shipping_address, :shipping_method, :notes,
        :payment_method, :order_source, :status, :payment_status,
        :subtotal, :shipping_fee, :total, :version)
""")

_INSERT_ITEM_SQL = text("""
    INSERT INTO order_items (id, order_id, product_id, product_name,
        variant_id, variant_name, quantity, unit_price)
    VALUES (:id, :order_id, :product_id, :product_name,
        :variant_id, :variant_name, :quantity, :unit_price)
""")

_COMPARE_AND_SET_SQL = text("""
    UPDATE orders
    SET status = :status,
        payment_status = :payment_status,
        subtotal = :subtotal,
        shipping_fee = :shipping_fee,
        total = :total,
        payment_reference = :payment_reference,
        payment_nonce = :payment_nonce,
        version = version + 1
    WHERE id = :id AND version = :expected_version
    RETURNING version
""")

_SELECT_ORDER_SQL = text("""
    SELECT id, order_number, customer_name, customer_phone, customer_email,
           shipping_address, shipping_method, notes, payment_method,
           order_source, status, payment_status, shipping_fee,
           payment_reference, payment_nonce, version, created_at, updated_at
    FROM orders WHERE id = :id
""")

_SELECT_ITEMS_SQL = text("""
    SELECT id, order_id, product_id, product_name, variant_id, variant_name,
           quantity, unit_price, created_at
    FROM order_items WHERE order_id = :order_id
    ORDER BY id ASC
""")

_ORDER_NUMBER_EXISTS_SQL = text(
    "SELECT 1 FROM orders WHERE order_number = :order_number"
)

_DELETE_ITEMS_SQL = text("""
    DELETE FROM order_items
    WHERE order_id = :order_id
      AND id = ANY(string_to_array(CAST(:item_ids_csv AS TEXT), ','))
""")

_UPDATE_ITEM_QTY_SQL = text(
    "UPDATE order_items SET quantity = :quantity WHERE id = :id"
)

# Table name is chosen from a closed mapping, never from user input.
_HISTORY_TABLES = {
    StatusAxis.FULFILLMENT.value: "order_status_history",
    StatusAxis.PAYMENT.value: "payment_status_history",
}

_INSERT_HISTORY_SQL = {
    axis: text(f"""
        INSERT INTO {table} (order_id, old_status, new_status, changed_by, notes)
        VALUES (:order_id, :old_status, :new_status, :changed_by, :notes)
        RETURNING id, changed_at
    """)
    for axis, table in _HISTORY_TABLES.items()
}

_LIST_HISTORY_SQL = {
    axis: text(f"""
        SELECT id, order_id, old_status, new_status, changed_by, notes, changed_at
        FROM {table}
        WHERE order_id = :order_id
        ORDER BY id ASC
    """)
    for axis, table in _HISTORY_TABLES.items()
}


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_item(row: Any) -> OrderItem:
    return OrderItem(
        id=row.id,
        order_id=row.order_id,
        product_id=row.product_id,
        product_name=row.product_name,
        variant_id=row.variant_id,
        variant_name=row.variant_name,
        quantity=row.quantity,
        unit_price=row.unit_price,
        created_at=row.created_at,
    )


def _row_to_order(row: Any, items: list[OrderItem]) -> Order:
    """Totals are recomputed from the items, never read back from the row."""
    return Order(
        id=row.id,
        order_number=row.order_number,
        customer_name=row.customer_name,
        customer_phone=row.customer_phone,
        customer_email=row.customer_email,
        shipping_address=row.shipping_address,
        shipping_method=row.shipping_method,
        notes=row.notes,
        payment_method=row.payment_method,
        order_source=row.order_source,
        status=row.status,
        payment_status=row.payment_status,
        shipping_fee=row.shipping_fee,
        payment_reference=row.payment_reference,
        payment_nonce=row.payment_nonce,
        version=row.version,
        items=items,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_entry(row: Any, axis: str) -> StatusHistoryEntry:
    return StatusHistoryEntry(
        id=row.id,
        order_id=row.order_id,
        axis=axis,
        old_status=row.old_status,
        new_status=row.new_status,
        changed_by=row.changed_by,
        notes=row.notes,
        changed_at=row.changed_at,
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class OrderRepository:
    """Concrete implementation of OrderRepositoryProtocol using raw SQL."""

    async def insert_order(self, order: Order, db: AsyncSession) -> None:
        await db.execute(
            _INSERT_ORDER_SQL,
            {
                "id": order.id,
                "order_number": order.order_number,
                "customer_name": order.customer_name,
                "customer_phone": order.customer_phone,
                "customer_email": order.customer_email,
                "shipping_address": order.shipping_address,
                "shipping_method": order.shipping_method,
                "notes": order.notes,
                "payment_method": order.payment_method,
                "order_source": order.order_source,
                "status": order.status,
                "payment_status": order.payment_status,
                "subtotal": order.subtotal,
                "shipping_fee": order.shipping_fee,
                "total": order.total,
                "version": order.version,
            },
        )

    async def insert_items(self, items: list[OrderItem], db: AsyncSession) -> None:
        if not items:
            return
        await db.execute(
            _INSERT_ITEM_SQL,
            [
                {
                    "id": item.id,
                    "order_id": item.order_id,
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "variant_id": item.variant_id,
                    "variant_name": item.variant_name,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                }
                for item in items
            ],
        )

    async def get_by_id(self, order_id: str, db: AsyncSession) -> Order | None:
        row = (await db.execute(_SELECT_ORDER_SQL, {"id": order_id})).fetchone()
        if row is None:
            return None
        item_rows = (await db.execute(_SELECT_ITEMS_SQL, {"order_id": order_id})).fetchall()
        return _row_to_order(row, [_row_to_item(r) for r in item_rows])

    async def order_number_exists(self, order_number: str, db: AsyncSession) -> bool:
        result = await db.execute(_ORDER_NUMBER_EXISTS_SQL, {"order_number": order_number})
        return result.scalar_one_or_none() is not None

    async def compare_and_set(
        self, order: Order, expected_version: int, db: AsyncSession
    ) -> bool:
        result = await db.execute(
            _COMPARE_AND_SET_SQL,
            {
                "id": order.id,
                "expected_version": expected_version,
                "status": order.status,
                "payment_status": order.payment_status,
                "subtotal": order.subtotal,
                "shipping_fee": order.shipping_fee,
                "total": order.total,
                "payment_reference": order.payment_reference,
                "payment_nonce": order.payment_nonce,
            },
        )
        return result.fetchone() is not None

    async def delete_items(
        self, order_id: str, item_ids: list[str], db: AsyncSession
    ) -> None:
        await db.execute(
            _DELETE_ITEMS_SQL,
            {"order_id": order_id, "item_ids_csv": ",".join(item_ids)},
        )

    async def update_item_quantity(
        self, item_id: str, quantity: int, db: AsyncSession
    ) -> None:
        await db.execute(_UPDATE_ITEM_QTY_SQL, {"id": item_id, "quantity": quantity})

    async def append_history(self, entry: StatusHistoryEntry, db: AsyncSession) -> None:
        result = await db.execute(
            _INSERT_HISTORY_SQL[entry.axis],
            {
                "order_id": entry.order_id,
                "old_status": entry.old_status,
                "new_status": entry.new_status,
                "changed_by": entry.changed_by,
                "notes": entry.notes,
            },
        )
        row = result.one()
        entry.id = row.id
        entry.changed_at = row.changed_at

    async def list_history(
        self, order_id: str, axis: str, db: AsyncSession
    ) -> list[StatusHistoryEntry]:
        rows = (
            await db.execute(_LIST_HISTORY_SQL[axis], {"order_id": order_id})
        ).fetchall()
        return [_row_to_entry(row, axis) for row in rows]
