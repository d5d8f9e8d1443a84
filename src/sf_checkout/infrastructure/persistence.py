# src/sf_checkout/infrastructure/persistence.py
"""Raw SQL access to incomplete_orders.

One open snapshot per checkout session, enforced by a partial unique index
(`uq_incomplete_orders_open_session`); capture upserts against it.
Status moves use `WHERE status = 'open'` so a snapshot converts or is
abandoned at most once.
"""
import json
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_checkout.domain.models import IncompleteItem, IncompleteOrder

_COLUMNS = """id, session_id, customer_name, customer_phone, customer_email,
              shipping_address, shipping_code, payment_method, notes, items,
              subtotal, shipping_fee, total, status, converted_order_id,
              created_at, updated_at"""

_UPSERT_SQL = text(f"""
    INSERT INTO incomplete_orders (id, session_id, customer_name, customer_phone,
        customer_email, shipping_address, shipping_code, payment_method, notes,
        items, subtotal, shipping_fee, total)
    VALUES (:id, :session_id, :customer_name, :customer_phone,
        :customer_email, :shipping_address, :shipping_code, :payment_method, :notes,
        CAST(:items AS JSONB), :subtotal, :shipping_fee, :total)
    ON CONFLICT (session_id) WHERE status = 'open'
    DO UPDATE SET
        customer_name = EXCLUDED.customer_name,
        customer_phone = EXCLUDED.customer_phone,
        customer_email = EXCLUDED.customer_email,
        shipping_address = EXCLUDED.shipping_address,
        shipping_code = EXCLUDED.shipping_code,
        payment_method = EXCLUDED.payment_method,
        notes = EXCLUDED.notes,
        items = EXCLUDED.items,
        subtotal = EXCLUDED.subtotal,
        shipping_fee = EXCLUDED.shipping_fee,
        total = EXCLUDED.total,
        updated_at = NOW()
    RETURNING {_COLUMNS}
""")

_GET_SQL = text(f"SELECT {_COLUMNS} FROM incomplete_orders WHERE id = :id")

_MARK_CONVERTED_SQL = text("""
    UPDATE incomplete_orders
    SET status = 'converted', converted_order_id = :order_id, updated_at = NOW()
    WHERE id = :id AND status = 'open'
    RETURNING id
""")

_MARK_ABANDONED_SQL = text("""
    UPDATE incomplete_orders
    SET status = 'abandoned', updated_at = NOW()
    WHERE id = :id AND status = 'open'
    RETURNING id
""")

_LIST_BY_STATUS_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM incomplete_orders
    WHERE status = :status
    ORDER BY updated_at DESC
    LIMIT :limit
""")


def _items_to_json(items: list[IncompleteItem]) -> str:
    return json.dumps(
        [
            {
                "product_id": i.product_id,
                "product_name": i.product_name,
                "quantity": i.quantity,
                "unit_price": i.unit_price,
                "variant_id": i.variant_id,
                "variant_name": i.variant_name,
            }
            for i in items
        ]
    )


def _row_to_incomplete(row: Any) -> IncompleteOrder:
    raw_items = json.loads(row.items) if isinstance(row.items, str) else (row.items or [])
    return IncompleteOrder(
        id=row.id,
        session_id=row.session_id,
        customer_name=row.customer_name,
        customer_phone=row.customer_phone,
        customer_email=row.customer_email,
        shipping_address=row.shipping_address,
        shipping_code=row.shipping_code,
        payment_method=row.payment_method,
        notes=row.notes,
        items=[IncompleteItem(**item) for item in raw_items],
        shipping_fee=row.shipping_fee,
        status=row.status,
        converted_order_id=row.converted_order_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class IncompleteOrderRepository:
    async def upsert_open(self, snapshot: IncompleteOrder, db: AsyncSession) -> IncompleteOrder:
        row = (
            await db.execute(
                _UPSERT_SQL,
                {
                    "id": snapshot.id,
                    "session_id": snapshot.session_id,
                    "customer_name": snapshot.customer_name,
                    "customer_phone": snapshot.customer_phone,
                    "customer_email": snapshot.customer_email,
                    "shipping_address": snapshot.shipping_address,
                    "shipping_code": snapshot.shipping_code,
                    "payment_method": snapshot.payment_method,
                    "notes": snapshot.notes,
                    "items": _items_to_json(snapshot.items),
                    "subtotal": snapshot.subtotal,
                    "shipping_fee": snapshot.shipping_fee,
                    "total": snapshot.total,
                },
            )
        ).one()
        return _row_to_incomplete(row)

    async def get(self, incomplete_id: str, db: AsyncSession) -> IncompleteOrder | None:
        row = (await db.execute(_GET_SQL, {"id": incomplete_id})).fetchone()
        return _row_to_incomplete(row) if row else None

    async def mark_converted(
        self, incomplete_id: str, order_id: str, db: AsyncSession
    ) -> bool:
        result = await db.execute(_MARK_CONVERTED_SQL, {"id": incomplete_id, "order_id": order_id})
        return result.fetchone() is not None

    async def mark_abandoned(self, incomplete_id: str, db: AsyncSession) -> bool:
        result = await db.execute(_MARK_ABANDONED_SQL, {"id": incomplete_id})
        return result.fetchone() is not None

    async def list_by_status(
        self, status: str, limit: int, db: AsyncSession
    ) -> list[IncompleteOrder]:
        rows = (await db.execute(_LIST_BY_STATUS_SQL, {"status": status, "limit": limit})).fetchall()
        return [_row_to_incomplete(r) for r in rows]
