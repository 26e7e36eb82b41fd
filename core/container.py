# core/container.py
"""
Service registry built once per process and shared through app.state.

Routers reach it with `Depends(get_container)`; tests build their own
container around a throwaway database and fake senders.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

import httpx
from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import settings
from infra.rabbitmq_client import RabbitMQClient
from models.notification import Channel
from services.booking_notifier import BookingNotifier
from services.booking_service import BookingEngine
from services.notification_service import NotificationDispatcher
from services.route_store import RouteStore
from services.seat_index import SeatAvailabilityIndex
from services.user_store import DeviceTokenStore, PreferenceStore, UserStore
from tools.senders import build_default_senders

logger = logging.getLogger(__name__)


class ServiceContainer:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        senders: Optional[Mapping[Channel, Any]] = None,
        notification_mode: Optional[str] = None,
        publisher: Any = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_maker = session_maker
        self._http_client: Optional[httpx.AsyncClient] = None
        if senders is None:
            self._http_client = httpx.AsyncClient(timeout=settings.SENDER_TIMEOUT_SECONDS)
            senders = build_default_senders(self._http_client)

        mode = (notification_mode or settings.NOTIFICATION_MODE).lower()
        if mode == "queue" and publisher is None:
            publisher = RabbitMQClient(settings.RABBITMQ_URL, settings.NOTIFICATION_QUEUE)
        self.publisher = publisher if mode == "queue" else None

        self.users = UserStore(session_maker)
        self.preferences = PreferenceStore(session_maker)
        self.device_tokens = DeviceTokenStore(session_maker)
        self.routes = RouteStore(session_maker)
        self.seat_index = SeatAvailabilityIndex()
        self.dispatcher = NotificationDispatcher(session_maker, senders, self.users, self.preferences)
        self.notifier = BookingNotifier(self.dispatcher, publisher=self.publisher)
        self.bookings = BookingEngine(
            session_maker,
            self.routes,
            self.seat_index,
            notifier=self.notifier,
            clock=clock,
        )
        logger.info("Service container ready (notification mode=%s)", mode)

    async def close(self):
        if self._http_client is not None:
            await self._http_client.aclose()
        if self.publisher is not None:
            await self.publisher.disconnect()


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Service not ready: database is not configured")
    return container
