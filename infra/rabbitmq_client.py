"""
RabbitMQ client for queued notification delivery.

Purpose:
- Publish DispatchRequests to the notifications queue (NOTIFICATION_MODE=queue)
- Consume them in the notification worker

Production notes:
- Durable queue + persistent messages; messages are acked after processing
- A message that fails to parse is rejected without requeue
"""
import logging
from typing import Awaitable, Callable, Optional

import aio_pika  # async RabbitMQ client

from models.notification import DispatchRequest

logger = logging.getLogger(__name__)


class RabbitMQClient:
    def __init__(self, url: str, queue_name: str = "notifications"):
        self.url = url
        self.queue_name = queue_name
        self._connection: Optional[aio_pika.abc.AbstractRobustConnection] = None
        self._channel: Optional[aio_pika.abc.AbstractChannel] = None

    async def _ensure_connection(self):
        """
        Lazily connect to RabbitMQ and open a channel.
        """
        if self._connection and not self._connection.is_closed:
            return
        logger.info("[RabbitMQClient] Connecting to %s", self.url)
        self._connection = await aio_pika.connect_robust(self.url)
        self._channel = await self._connection.channel()
        await self._channel.declare_queue(self.queue_name, durable=True)
        logger.info("[RabbitMQClient] Connected and queue '%s' declared", self.queue_name)

    async def publish_dispatch(self, request: DispatchRequest) -> bool:
        await self._ensure_connection()
        assert self._channel is not None
        body = request.model_dump_json(by_alias=True).encode("utf-8")
        await self._channel.default_exchange.publish(
            aio_pika.Message(
                body=body,
                content_type="application/json",
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            ),
            routing_key=self.queue_name,
        )
        logger.info("[RabbitMQClient] Published %s for user=%s", request.event_type, request.user_id)
        return True

    async def consume(self, handler: Callable[[bytes], Awaitable[None]], prefetch: int = 10) -> None:
        """Start consuming; `handler` gets the raw message body."""
        await self._ensure_connection()
        assert self._channel is not None
        await self._channel.set_qos(prefetch_count=prefetch)
        queue = await self._channel.declare_queue(self.queue_name, durable=True)

        async def on_message(message: aio_pika.abc.AbstractIncomingMessage):
            async with message.process(requeue=False):
                await handler(message.body)

        await queue.consume(on_message, no_ack=False)
        logger.info("[RabbitMQClient] Waiting for messages in queue '%s'", self.queue_name)

    async def disconnect(self):
        if self._connection and not self._connection.is_closed:
            await self._connection.close()
        self._connection = None
        self._channel = None
