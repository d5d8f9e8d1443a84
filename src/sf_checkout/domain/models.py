"""Checkout domain: carts, catalog lookups and incomplete-order snapshots."""
from dataclasses import dataclass, field
from datetime import datetime

from src.sf_common.enums import IncompleteOrderStatus, PaymentMethod


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int
    variant_id: str | None = None


@dataclass(frozen=True)
class CustomerDetails:
    name: str
    phone: str
    email: str | None = None
    address: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class Cart:
    customer: CustomerDetails
    lines: list[CartLine]
    payment_method: str = PaymentMethod.COD.value
    shipping_code: str | None = None
    device_id: str | None = None
    ip_address: str | None = None
    # Staff may quote a fee directly on manual orders.
    shipping_fee_override: int | None = None


@dataclass(frozen=True)
class CatalogProduct:
    """Live catalog price at the moment of lookup."""

    product_id: str
    name: str
    unit_price: int
    variant_id: str | None = None
    variant_name: str | None = None


@dataclass(frozen=True)
class ShippingOption:
    code: str
    name: str
    fee: int


@dataclass
class IncompleteItem:
    product_id: str
    product_name: str
    quantity: int
    unit_price: int  # as shown to the customer; re-priced on conversion
    variant_id: str | None = None
    variant_name: str | None = None

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass
class IncompleteOrder:
    """Pre-checkout snapshot. Never an order itself; conversion copies it."""

    id: str
    session_id: str
    items: list[IncompleteItem] = field(default_factory=list)
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_email: str | None = None
    shipping_address: str | None = None
    shipping_code: str | None = None
    payment_method: str | None = None
    notes: str | None = None
    shipping_fee: int = 0
    status: str = IncompleteOrderStatus.OPEN.value
    converted_order_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def subtotal(self) -> int:
        return sum(item.line_total for item in self.items)

    @property
    def total(self) -> int:
        return self.subtotal + self.shipping_fee


@dataclass(frozen=True)
class ConversionEdits:
    """Fields staff corrected before converting; None keeps the snapshot value."""

    customer_name: str | None = None
    customer_phone: str | None = None
    customer_email: str | None = None
    shipping_address: str | None = None
    shipping_code: str | None = None
    shipping_fee: int | None = None
    payment_method: str | None = None
    notes: str | None = None
    lines: list[CartLine] | None = None
