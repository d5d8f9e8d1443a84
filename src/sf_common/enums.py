"""Global enums: must match DB CHECK constraints exactly."""

from enum import Enum


class OrderStatus(str, Enum):
    """Fulfillment axis."""

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment axis, independent of OrderStatus."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class StatusAxis(str, Enum):
    FULFILLMENT = "fulfillment"
    PAYMENT = "payment"


class PaymentMethod(str, Enum):
    COD = "cod"
    BKASH = "bkash"
    SSLCOMMERZ = "sslcommerz"
    UDDOKTAPAY = "uddoktapay"


class OrderSource(str, Enum):
    CHECKOUT = "checkout"
    ADMIN_MANUAL = "admin_manual"
    CONVERTED_FROM_INCOMPLETE = "converted_from_incomplete"


class IncompleteOrderStatus(str, Enum):
    OPEN = "open"
    CONVERTED = "converted"
    ABANDONED = "abandoned"


class VerifiedPaymentState(str, Enum):
    """Normalised outcome of a gateway verification query."""

    COMPLETED = "COMPLETED"
    PENDING = "PENDING"
    FAILED = "FAILED"


class OrderEventType(str, Enum):
    CREATED = "order.created"
    STATUS_CHANGED = "order.status_changed"
