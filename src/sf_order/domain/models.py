"""Order ledger domain model: pure dataclasses, no SQLAlchemy dependency."""
from dataclasses import dataclass, field
from datetime import datetime

from src.sf_common.enums import OrderStatus, PaymentStatus, StatusAxis

# Fulfillment states in which line items may still be corrected.
EDITABLE_STATUSES = frozenset({OrderStatus.PENDING.value, OrderStatus.PROCESSING.value})


@dataclass
class OrderItem:
    id: str
    order_id: str
    product_id: str
    product_name: str  # snapshot at order time
    quantity: int
    unit_price: int  # minor units, snapshot at order time, never re-read from catalog
    variant_id: str | None = None
    variant_name: str | None = None
    created_at: datetime | None = None

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass
class Order:
    id: str
    order_number: str
    customer_name: str
    customer_phone: str
    payment_method: str  # PaymentMethod value
    order_source: str  # OrderSource value
    shipping_fee: int = 0
    items: list[OrderItem] = field(default_factory=list)
    customer_email: str | None = None
    shipping_address: str | None = None
    shipping_method: str | None = None
    notes: str | None = None
    status: str = OrderStatus.PENDING.value
    payment_status: str = PaymentStatus.PENDING.value
    # Payment linkage: provider reference + nonce minted at initiation
    payment_reference: str | None = None
    payment_nonce: str | None = None
    version: int = 0
    subtotal: int = field(init=False, default=0)
    total: int = field(init=False, default=0)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.recompute_totals()

    def recompute_totals(self) -> None:
        """total = subtotal + shipping_fee, always derived from the items."""
        self.subtotal = sum(item.line_total for item in self.items)
        self.total = self.subtotal + self.shipping_fee

    @property
    def is_total_consistent(self) -> bool:
        return (
            self.subtotal == sum(item.line_total for item in self.items)
            and self.total == self.subtotal + self.shipping_fee
        )

    @property
    def items_editable(self) -> bool:
        return self.status in EDITABLE_STATUSES

    def value_of(self, axis: str) -> str:
        return self.status if axis == StatusAxis.FULFILLMENT.value else self.payment_status

    def set_value(self, axis: str, value: str) -> None:
        if axis == StatusAxis.FULFILLMENT.value:
            self.status = value
        else:
            self.payment_status = value


@dataclass
class StatusHistoryEntry:
    """Append-only record of one transition on one axis.

    `old_status` is None only for the creation entry; `changed_by` is None for
    system / webhook originated changes.
    """

    order_id: str
    axis: str  # StatusAxis value; selects the history table
    old_status: str | None
    new_status: str
    changed_by: str | None = None
    notes: str | None = None
    id: int | None = None  # BIGSERIAL, assigned on insert; orders the log
    changed_at: datetime | None = None


@dataclass
class OrderDraft:
    """Everything the composer hands to the ledger to open a new order."""

    order_number: str
    customer_name: str
    customer_phone: str
    payment_method: str
    order_source: str
    items: list[OrderItem]
    shipping_fee: int = 0
    customer_email: str | None = None
    shipping_address: str | None = None
    shipping_method: str | None = None
    notes: str | None = None
