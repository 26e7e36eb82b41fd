"""
Notification delivery worker.

Purpose:
- Consume queued DispatchRequests from RabbitMQ (NOTIFICATION_MODE=queue)
- Deliver them through the same NotificationDispatcher the API uses inline

Usage:
- python -m workers.notification_worker

Production notes:
- Run multiple worker instances for load distribution
- Messages are acked once handled; malformed messages are dropped (logged)
"""
import asyncio
import json
import logging

import httpx
from pydantic import ValidationError

from config.settings import settings
from core.db import async_session_maker
from core.logging import configure_logging
from infra.rabbitmq_client import RabbitMQClient
from models.notification import DispatchRequest
from services.notification_service import NotificationDispatcher
from tools.senders import build_default_senders

logger = logging.getLogger(__name__)


class NotificationDeliveryWorker:
    """Worker to deliver notifications from RabbitMQ queue."""

    def __init__(self, dispatcher: NotificationDispatcher):
        self.dispatcher = dispatcher
        self.delivered = 0
        self.failed = 0

    async def handle_message(self, body: bytes) -> bool:
        """
        Deliver one queued dispatch request.

        Returns True when every attempted channel succeeded.
        """
        try:
            request = DispatchRequest.model_validate(json.loads(body.decode("utf-8")))
        except (ValueError, ValidationError) as e:
            logger.warning("[worker] Dropping malformed message: %s", e)
            self.failed += 1
            return False

        result = await self.dispatcher.dispatch_request(request)
        if result.overall:
            self.delivered += 1
        else:
            self.failed += 1
            logger.info(
                "[worker] %s for user=%s partially failed: %s",
                request.event_type, request.user_id,
                [(o.channel.value if o.channel else None, o.error) for o in result.per_channel if not o.success],
            )
        return result.overall

    async def run(self, client: RabbitMQClient):
        await client.consume(self.handle_message)
        try:
            while True:
                await asyncio.sleep(10)
                logger.info("[worker] delivered=%d failed=%d", self.delivered, self.failed)
        finally:
            await client.disconnect()


async def main():
    configure_logging()
    if async_session_maker is None:
        raise RuntimeError("DATABASE_URL is disabled; the worker needs a database")

    async with httpx.AsyncClient(timeout=settings.SENDER_TIMEOUT_SECONDS) as http_client:
        dispatcher = NotificationDispatcher(async_session_maker, build_default_senders(http_client))
        worker = NotificationDeliveryWorker(dispatcher)
        client = RabbitMQClient(settings.RABBITMQ_URL, settings.NOTIFICATION_QUEUE)
        logger.info("[worker] Connecting to RabbitMQ at %s", settings.RABBITMQ_URL)
        await worker.run(client)


if __name__ == "__main__":
    asyncio.run(main())
