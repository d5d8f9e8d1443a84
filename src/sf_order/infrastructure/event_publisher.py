"""Publishes order events to Redis pub/sub for the notification subsystem."""
import logging

from config.settings import settings
from src.sf_common.redis_client import publish_json
from src.sf_order.domain.events import OrderEvent

logger = logging.getLogger(__name__)


class RedisOrderEventPublisher:
    def __init__(self, channel: str | None = None) -> None:
        self._channel = channel or settings.ORDER_EVENTS_CHANNEL

    async def publish(self, event: OrderEvent) -> None:
        receivers = await publish_json(self._channel, event.to_payload())
        logger.debug(
            "Published %s for order %s to %d subscriber(s)",
            event.event,
            event.order_number,
            receivers,
        )
