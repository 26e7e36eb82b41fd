"""
Booking lifecycle engine using async SQLAlchemy.

- create_reservation -> validate, claim every requested seat or none, INSERT one
  booking per (seat, passenger), then notify the primary passenger's user
- cancel             -> ownership + status + lead-time checks, then status update
  and seat release in ONE transaction
- confirm            -> PENDING -> CONFIRMED (operator/payment side)
- list_available_seats / list_user_bookings / get_booking -> reads

State machine:
  PENDING -> CONFIRMED, PENDING -> CANCELLED, CONFIRMED -> CANCELLED.
  CANCELLED is terminal. No transition once departure is closer than the lead
  time (CANCELLATION_LEAD_HOURS, default 2h).
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select

from config.settings import settings
from core.errors import (
    AlreadyCancelled,
    BookingNotFound,
    ForbiddenError,
    InvalidStopPair,
    InvalidTransition,
    RouteInactive,
    RouteNotFound,
    SeatCountMismatch,
    TooLateToCancel,
)
from models.db_models import Booking, BookingStatus, Route
from services.booking_notifier import BookingNotifier
from services.route_store import RouteStore
from services.seat_index import SeatAvailabilityIndex, normalize_seat_numbers

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_fare(route: Route, boarding_stop: Optional[str] = None, alighting_stop: Optional[str] = None) -> int:
    """
    Per-seat fare. Full route price unless a boarding/alighting pair is given,
    in which case it is the difference of their cumulative prices from origin.
    """
    if boarding_stop is None and alighting_stop is None:
        return route.price
    if not boarding_stop or not alighting_stop:
        raise InvalidStopPair("Both boarding and alighting stops are required for a partial trip")

    stops = {s.name: s for s in route.stops}
    boarding = stops.get(boarding_stop)
    alighting = stops.get(alighting_stop)
    missing = [name for name, stop in ((boarding_stop, boarding), (alighting_stop, alighting)) if stop is None]
    if missing:
        raise InvalidStopPair(
            f"Stop(s) not on route {route.route_id}: {', '.join(missing)}",
            details={"stops": missing},
        )
    if boarding.order_index >= alighting.order_index:
        raise InvalidStopPair("Boarding stop must come before alighting stop")
    return alighting.price_from_origin - boarding.price_from_origin


def departure_of(route: Optional[Route], travel_date: date) -> datetime:
    """Departure instant (UTC) of a route on a travel date; midnight when the route is gone."""
    departure_time = route.departure_time if route is not None else time(0, 0)
    return datetime.combine(travel_date, departure_time, tzinfo=timezone.utc)


@dataclass
class Reservation:
    bookings: List[Booking]
    fare_per_seat: int
    boarding_stop: Optional[str] = None
    alighting_stop: Optional[str] = None

    @property
    def seat_count(self) -> int:
        return len(self.bookings)

    @property
    def total_amount(self) -> int:
        return self.fare_per_seat * self.seat_count


@dataclass
class SeatAvailability:
    total: int
    available: List[str]
    booked: List[str]
    seat_map: List[Dict[str, object]] = field(default_factory=list)


class BookingEngine:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        route_store: RouteStore,
        seat_index: SeatAvailabilityIndex,
        notifier: Optional[BookingNotifier] = None,
        lead_hours: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_maker = session_maker
        self.route_store = route_store
        self.seat_index = seat_index
        self.notifier = notifier
        self.lead_time = timedelta(hours=settings.CANCELLATION_LEAD_HOURS if lead_hours is None else lead_hours)
        self.clock = clock or _utcnow

    def _window_closed(self, route: Optional[Route], travel_date: date) -> bool:
        return departure_of(route, travel_date) - self.clock() < self.lead_time

    # ---------------- reservations ----------------

    async def create_reservation(
        self,
        user_id: str,
        route_id: str,
        travel_date: date,
        seat_numbers: Sequence,
        passengers: Sequence[dict],
        boarding_stop: Optional[str] = None,
        alighting_stop: Optional[str] = None,
    ) -> Reservation:
        """
        Book every requested seat for the given passengers, or nothing.

        `passengers` are dicts with `name` and optional `phone`, paired with
        `seat_numbers` by position. Raises SeatConflict naming the taken seats.
        """
        if not seat_numbers or len(seat_numbers) != len(passengers):
            raise SeatCountMismatch(
                "Number of seats must match number of passengers",
                details={"seats": len(seat_numbers), "passengers": len(passengers)},
            )

        route = await self.route_store.get_route(route_id)
        if route is None:
            raise RouteNotFound(f"Route {route_id} not found")
        if not route.active:
            raise RouteInactive(f"Route {route_id} is not accepting bookings")

        fare = compute_fare(route, boarding_stop, alighting_stop)
        seats = normalize_seat_numbers(seat_numbers, route.bus.capacity)

        bookings = [
            Booking(
                id=str(uuid.uuid4()),
                user_id=user_id,
                route_id=route_id,
                seat_number=seat,
                travel_date=travel_date,
                boarding_stop=boarding_stop,
                alighting_stop=alighting_stop,
                passenger_name=passenger["name"],
                passenger_phone=passenger.get("phone"),
                fare=fare,
                status=BookingStatus.PENDING.value,
            )
            for seat, passenger in zip(seats, passengers)
        ]

        async with self.session_maker() as session:
            async with self.seat_index.check_and_claim(
                session, route_id, travel_date, seats,
                booking_ids={b.seat_number: b.id for b in bookings},
            ):
                session.add_all(bookings)

        reservation = Reservation(
            bookings=bookings,
            fare_per_seat=fare,
            boarding_stop=boarding_stop,
            alighting_stop=alighting_stop,
        )
        logger.info(
            "Reservation by user=%s route=%s date=%s seats=%s total=%d",
            user_id, route_id, travel_date, seats, reservation.total_amount,
        )

        if self.notifier is not None:
            try:
                await self.notifier.booking_confirmed(user_id, route, bookings, reservation.total_amount)
            except Exception:
                logger.exception("Booking confirmation notification failed for user=%s route=%s", user_id, route_id)
        return reservation

    # ---------------- transitions ----------------

    async def _load(self, booking_id: str) -> Booking:
        async with self.session_maker() as session:
            booking = await session.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found")
        return booking

    async def cancel(self, booking_id: str, requesting_user_id: str) -> Booking:
        booking = await self._load(booking_id)
        if booking.user_id != requesting_user_id:
            raise ForbiddenError("You can only cancel your own bookings")
        if booking.status == BookingStatus.CANCELLED.value:
            raise AlreadyCancelled("Booking is already cancelled")

        route = await self.route_store.get_route(booking.route_id)
        if self._window_closed(route, booking.travel_date):
            hours = self.lead_time.total_seconds() / 3600
            raise TooLateToCancel(f"Cannot cancel booking less than {hours:g} hours before departure")

        async with self.seat_index.claim_scope(booking.route_id, booking.travel_date):
            async with self.session_maker() as session:
                async with session.begin():
                    locked = (await session.execute(
                        select(Booking).where(Booking.id == booking_id).with_for_update()
                    )).scalar_one()
                    # a concurrent cancel may have won between the checks and the lock
                    if locked.status == BookingStatus.CANCELLED.value:
                        raise AlreadyCancelled("Booking is already cancelled")
                    locked.status = BookingStatus.CANCELLED.value
                    locked.updated_at = datetime.utcnow()
                    await self.seat_index.release(
                        session, locked.route_id, locked.travel_date, [locked.seat_number]
                    )

        logger.info("Booking %s cancelled by user=%s (seat %s released)", booking_id, requesting_user_id, locked.seat_number)

        if self.notifier is not None:
            try:
                await self.notifier.booking_cancelled(requesting_user_id, route, locked)
            except Exception:
                logger.exception("Cancellation notification failed for booking=%s", booking_id)
        return locked

    async def confirm(self, booking_id: str) -> Booking:
        booking = await self._load(booking_id)
        if booking.status == BookingStatus.CANCELLED.value:
            raise AlreadyCancelled("Booking is cancelled")
        if booking.status == BookingStatus.CONFIRMED.value:
            raise InvalidTransition("Booking is already confirmed")

        route = await self.route_store.get_route(booking.route_id)
        if self._window_closed(route, booking.travel_date):
            raise InvalidTransition("Booking can no longer change state this close to departure")

        async with self.session_maker() as session:
            async with session.begin():
                locked = (await session.execute(
                    select(Booking).where(Booking.id == booking_id).with_for_update()
                )).scalar_one()
                if locked.status != BookingStatus.PENDING.value:
                    raise InvalidTransition(f"Cannot confirm a {locked.status} booking")
                locked.status = BookingStatus.CONFIRMED.value
                locked.updated_at = datetime.utcnow()
        logger.info("Booking %s confirmed", booking_id)
        return locked

    # ---------------- reads ----------------

    async def list_available_seats(self, route_id: str, travel_date: date) -> SeatAvailability:
        route = await self.route_store.get_route(route_id)
        if route is None:
            raise RouteNotFound(f"Route {route_id} not found")
        async with self.session_maker() as session:
            held = await self.seat_index.list_held(session, route_id, travel_date)

        capacity = route.bus.capacity
        all_seats = [str(n) for n in range(1, capacity + 1)]
        available = [s for s in all_seats if s not in held]
        booked = sorted(held, key=lambda s: int(s) if s.isascii() and s.isdigit() else capacity + 1)
        return SeatAvailability(
            total=capacity,
            available=available,
            booked=booked,
            seat_map=[{"seat_number": s, "is_available": s not in held} for s in all_seats],
        )

    async def list_user_bookings(self, user_id: str) -> List[Booking]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Booking)
                .where(Booking.user_id == user_id)
                .order_by(Booking.created_at.desc(), Booking.seat_number)
            )
            return list(result.scalars().all())

    async def get_booking(self, booking_id: str, user_id: str) -> Booking:
        booking = await self._load(booking_id)
        if booking.user_id != user_id:
            raise ForbiddenError("You can only view your own bookings")
        return booking
