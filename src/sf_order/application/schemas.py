# src/sf_order/application/schemas.py
from datetime import datetime

from pydantic import BaseModel, Field

from src.sf_common.enums import OrderStatus, PaymentStatus
from src.sf_common.money import format_money
from src.sf_order.domain.models import Order, OrderItem, StatusHistoryEntry


class OrderItemResponse(BaseModel):
    id: str
    product_id: str
    product_name: str
    variant_id: str | None = None
    variant_name: str | None = None
    quantity: int
    unit_price: int
    line_total: int

    @classmethod
    def from_domain(cls, item: OrderItem) -> "OrderItemResponse":
        return cls(
            id=item.id,
            product_id=item.product_id,
            product_name=item.product_name,
            variant_id=item.variant_id,
            variant_name=item.variant_name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            line_total=item.line_total,
        )


class HistoryEntryResponse(BaseModel):
    id: int | None
    old_status: str | None
    new_status: str
    changed_by: str | None
    notes: str | None
    changed_at: datetime | None

    @classmethod
    def from_domain(cls, entry: StatusHistoryEntry) -> "HistoryEntryResponse":
        return cls(
            id=entry.id,
            old_status=entry.old_status,
            new_status=entry.new_status,
            changed_by=entry.changed_by,
            notes=entry.notes,
            changed_at=entry.changed_at,
        )


class OrderResponse(BaseModel):
    id: str
    order_number: str
    customer_name: str
    customer_phone: str
    customer_email: str | None = None
    shipping_address: str | None = None
    shipping_method: str | None = None
    notes: str | None = None
    payment_method: str
    order_source: str
    status: str
    payment_status: str
    items: list[OrderItemResponse]
    subtotal: int
    shipping_fee: int
    total: int
    total_display: str
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None
    status_history: list[HistoryEntryResponse] | None = None
    payment_history: list[HistoryEntryResponse] | None = None

    @classmethod
    def from_domain(
        cls,
        order: Order,
        status_history: list[StatusHistoryEntry] | None = None,
        payment_history: list[StatusHistoryEntry] | None = None,
    ) -> "OrderResponse":
        return cls(
            id=order.id,
            order_number=order.order_number,
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            customer_email=order.customer_email,
            shipping_address=order.shipping_address,
            shipping_method=order.shipping_method,
            notes=order.notes,
            payment_method=order.payment_method,
            order_source=order.order_source,
            status=order.status,
            payment_status=order.payment_status,
            items=[OrderItemResponse.from_domain(i) for i in order.items],
            subtotal=order.subtotal,
            shipping_fee=order.shipping_fee,
            total=order.total,
            total_display=format_money(order.total),
            version=order.version,
            created_at=order.created_at,
            updated_at=order.updated_at,
            status_history=(
                [HistoryEntryResponse.from_domain(e) for e in status_history]
                if status_history is not None
                else None
            ),
            payment_history=(
                [HistoryEntryResponse.from_domain(e) for e in payment_history]
                if payment_history is not None
                else None
            ),
        )


class OrderStatusRequest(BaseModel):
    status: OrderStatus
    note: str | None = Field(None, max_length=500)


class PaymentStatusRequest(BaseModel):
    payment_status: PaymentStatus
    note: str | None = Field(None, max_length=500)


class ItemLineRequest(BaseModel):
    product_id: str = Field(..., min_length=1)
    variant_id: str | None = None
    quantity: int = Field(..., gt=0)


class AddItemsRequest(BaseModel):
    items: list[ItemLineRequest] = Field(..., min_length=1)


class UpdateItemQuantityRequest(BaseModel):
    quantity: int = Field(..., gt=0)


class ShippingFeeRequest(BaseModel):
    shipping_fee: int = Field(..., ge=0, description="Minor units (poisha)")
