"""Post-commit delivery of order events.

Called only after the ledger transaction committed. A Redis outage must not
undo a committed status change, so delivery failures are logged and dropped.
"""
import logging
from collections.abc import Iterable

from src.sf_order.domain.events import OrderEvent, OrderEventPublisherProtocol

logger = logging.getLogger(__name__)


async def publish_after_commit(
    publisher: OrderEventPublisherProtocol, events: Iterable[OrderEvent]
) -> None:
    for event in events:
        try:
            await publisher.publish(event)
        except Exception:
            logger.exception(
                "Could not publish %s for order %s", event.event, event.order_number
            )
