# services/booking_notifier.py
"""
Turns booking lifecycle changes into notification events.

Inline mode calls the dispatcher directly; queue mode publishes the
DispatchRequest to RabbitMQ and the notification worker delivers it.
"""
import logging
from typing import Any, Optional, Sequence

from models.db_models import Booking, Route
from models.notification import Channel, DispatchRequest, EventType
from services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)

BOOKING_CHANNELS = [Channel.EMAIL, Channel.SMS, Channel.PUSH, Channel.IN_APP]


class BookingNotifier:
    def __init__(self, dispatcher: Optional[NotificationDispatcher] = None, publisher: Any = None):
        self.dispatcher = dispatcher
        self.publisher = publisher

    async def _emit(self, request: DispatchRequest) -> None:
        if self.publisher is not None:
            await self.publisher.publish_dispatch(request)
            logger.info("Queued %s for user=%s", request.event_type, request.user_id)
            return
        if self.dispatcher is None:
            logger.info("No notification backend configured; %s dropped", request.event_type)
            return
        await self.dispatcher.dispatch_request(request)

    async def booking_confirmed(self, user_id: str, route: Route, bookings: Sequence[Booking], total_amount: int) -> None:
        first = bookings[0]
        seats = ", ".join(b.seat_number for b in bookings)
        date_text = first.travel_date.isoformat()
        await self._emit(DispatchRequest(
            user_id=user_id,
            event_type=EventType.BOOKING_CONFIRMATION.value,
            channels=BOOKING_CHANNELS,
            title="Booking Confirmed!",
            body=f"Your ticket for {route.label} on {date_text} has been confirmed. Seat {seats}.",
            data={
                "bookingId": first.id,
                "bookingIds": ",".join(b.id for b in bookings),
                "passengerName": first.passenger_name or "",
                "route": route.label,
                "date": date_text,
                "time": route.departure_time.strftime("%H:%M"),
                "seatNumber": seats,
                "amount": str(total_amount),
                "boardingPoint": first.boarding_stop or route.origin,
            },
        ))

    async def booking_cancelled(self, user_id: str, route: Optional[Route], booking: Booking) -> None:
        label = route.label if route is not None else booking.route_id
        date_text = booking.travel_date.isoformat()
        await self._emit(DispatchRequest(
            user_id=user_id,
            event_type=EventType.BOOKING_CANCELLED.value,
            channels=BOOKING_CHANNELS,
            title="Booking Cancelled",
            body=f"Your booking for {label} on {date_text} (seat {booking.seat_number}) has been cancelled.",
            data={
                "bookingId": booking.id,
                "route": label,
                "date": date_text,
                "seatNumber": booking.seat_number,
                "refundAmount": str(booking.fare),
            },
        ))
