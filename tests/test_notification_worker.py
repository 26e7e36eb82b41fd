import json
from datetime import date

import pytest

from conftest import seed_route, seed_user
from models.notification import Channel, DispatchRequest
from services.booking_notifier import BookingNotifier
from workers.notification_worker import NotificationDeliveryWorker


class FakePublisher:
    def __init__(self):
        self.published = []

    async def publish_dispatch(self, request):
        self.published.append(request)
        return True


@pytest.mark.asyncio
async def test_worker_delivers_queued_request(container, session_maker, senders):
    await seed_user(session_maker, "u1", email="u1@example.com")
    worker = NotificationDeliveryWorker(container.dispatcher)
    body = DispatchRequest(
        user_id="u1", event_type="GENERAL", channels=[Channel.EMAIL], title="Hi", body="There",
    ).model_dump_json(by_alias=True).encode("utf-8")

    assert await worker.handle_message(body) is True
    assert worker.delivered == 1
    assert senders[Channel.EMAIL].calls[0][0] == "u1@example.com"


@pytest.mark.asyncio
async def test_worker_drops_malformed_message(container):
    worker = NotificationDeliveryWorker(container.dispatcher)
    assert await worker.handle_message(b"not json") is False
    assert await worker.handle_message(json.dumps({"userId": "u1"}).encode()) is False
    assert worker.failed == 2


@pytest.mark.asyncio
async def test_queue_mode_publishes_instead_of_sending(container, senders):
    publisher = FakePublisher()
    container.bookings.notifier = BookingNotifier(container.dispatcher, publisher=publisher)
    await seed_route(container)

    reservation = await container.bookings.create_reservation(
        user_id="u1", route_id="R1", travel_date=date(2025, 11, 10),
        seat_numbers=["1"], passengers=[{"name": "Jane"}],
    )

    assert senders[Channel.EMAIL].calls == []
    [request] = publisher.published
    assert request.event_type == "BOOKING_CONFIRMATION"
    assert request.data["bookingId"] == reservation.bookings[0].id
    assert request.channels == [Channel.EMAIL, Channel.SMS, Channel.PUSH, Channel.IN_APP]
