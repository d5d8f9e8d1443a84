"""Order events handed to the notification subsystem.

The ledger only announces facts; whether and how a customer is messaged is
decided downstream.
"""
from dataclasses import asdict, dataclass
from typing import Any, Protocol

from src.sf_common.enums import OrderEventType
from src.sf_order.domain.models import Order


@dataclass(frozen=True)
class OrderEvent:
    event: str  # OrderEventType value
    order_id: str
    order_number: str
    old_status: str | None
    new_status: str
    customer_phone: str
    customer_email: str | None
    total: int

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def created(cls, order: Order) -> "OrderEvent":
        return cls._from(OrderEventType.CREATED.value, order, None, order.status)

    @classmethod
    def status_changed(cls, order: Order, old_status: str, new_status: str) -> "OrderEvent":
        return cls._from(OrderEventType.STATUS_CHANGED.value, order, old_status, new_status)

    @classmethod
    def _from(
        cls, event: str, order: Order, old_status: str | None, new_status: str
    ) -> "OrderEvent":
        return cls(
            event=event,
            order_id=order.id,
            order_number=order.order_number,
            old_status=old_status,
            new_status=new_status,
            customer_phone=order.customer_phone,
            customer_email=order.customer_email,
            total=order.total,
        )


class OrderEventPublisherProtocol(Protocol):
    async def publish(self, event: OrderEvent) -> None: ...
