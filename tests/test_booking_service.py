import asyncio
from datetime import date, datetime, time, timedelta, timezone

import pytest
from sqlalchemy import select

from conftest import seed_route, seed_user
from core.errors import (
    AlreadyCancelled,
    ForbiddenError,
    InvalidSeatNumber,
    InvalidStopPair,
    InvalidTransition,
    RouteInactive,
    RouteNotFound,
    SeatConflict,
    SeatCountMismatch,
    TooLateToCancel,
)
from models.db_models import Booking, BookingStatus, NotificationRecord, SeatClaim
from models.notification import Channel

TRAVEL = date(2025, 11, 10)
DEPARTURE = datetime(2025, 11, 10, 8, 0, tzinfo=timezone.utc)


def _passengers(n):
    return [{"name": f"Passenger {i + 1}", "phone": "0772000000"} for i in range(n)]


async def _reserve(container, seats, user_id="u1", **kwargs):
    return await container.bookings.create_reservation(
        user_id=user_id,
        route_id=kwargs.pop("route_id", "R1"),
        travel_date=kwargs.pop("travel_date", TRAVEL),
        seat_numbers=seats,
        passengers=_passengers(len(seats)),
        **kwargs,
    )


# ---------------- pricing ----------------

@pytest.mark.asyncio
async def test_partial_trip_fare_is_difference_of_stop_prices(container):
    await seed_route(container)
    reservation = await _reserve(container, ["1", "2"], boarding_stop="Masaka", alighting_stop="Mbarara")
    assert reservation.fare_per_seat == 7000
    assert reservation.total_amount == 14000
    assert [b.fare for b in reservation.bookings] == [7000, 7000]


@pytest.mark.asyncio
async def test_full_route_fare_without_stops(container):
    await seed_route(container, price=12000)
    reservation = await _reserve(container, ["4"])
    assert reservation.fare_per_seat == 12000
    assert reservation.total_amount == 12000


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "boarding, alighting",
    [("Mbarara", "Masaka"), ("Masaka", "Masaka"), ("Masaka", None), ("Nowhere", "Mbarara")],
)
async def test_bad_stop_pairs_are_rejected(container, boarding, alighting):
    await seed_route(container)
    with pytest.raises(InvalidStopPair):
        await _reserve(container, ["1"], boarding_stop=boarding, alighting_stop=alighting)


# ---------------- validation ----------------

@pytest.mark.asyncio
async def test_seat_passenger_count_mismatch(container):
    await seed_route(container)
    with pytest.raises(SeatCountMismatch):
        await container.bookings.create_reservation(
            user_id="u1", route_id="R1", travel_date=TRAVEL,
            seat_numbers=["1", "2"], passengers=_passengers(1),
        )


@pytest.mark.asyncio
async def test_unknown_and_inactive_routes(container):
    with pytest.raises(RouteNotFound):
        await _reserve(container, ["1"], route_id="NOPE")
    await seed_route(container, route_id="R9", active=False)
    with pytest.raises(RouteInactive):
        await _reserve(container, ["1"], route_id="R9")


@pytest.mark.asyncio
async def test_seat_beyond_capacity_rejected_before_claiming(container, session_maker):
    await seed_route(container, capacity=2)
    with pytest.raises(InvalidSeatNumber):
        await _reserve(container, ["1", "3"])
    async with session_maker() as session:
        assert (await session.execute(select(SeatClaim))).scalars().all() == []


# ---------------- exclusivity ----------------

@pytest.mark.asyncio
async def test_conflict_names_taken_seats_and_books_nothing(container, session_maker):
    await seed_route(container)
    await _reserve(container, ["2"], user_id="first")

    with pytest.raises(SeatConflict) as exc:
        await _reserve(container, ["1", "2"], user_id="second")
    assert exc.value.seats == ["2"]

    async with session_maker() as session:
        bookings = (await session.execute(select(Booking))).scalars().all()
    assert [(b.user_id, b.seat_number) for b in bookings] == [("first", "2")]
    availability = await container.bookings.list_available_seats("R1", TRAVEL)
    assert "1" in availability.available


@pytest.mark.asyncio
async def test_concurrent_overlapping_reservations(container):
    await seed_route(container, capacity=10)
    results = await asyncio.gather(
        _reserve(container, ["1", "2"], user_id="a"),
        _reserve(container, ["2", "3"], user_id="b"),
        _reserve(container, ["3", "4"], user_id="c"),
        return_exceptions=True,
    )
    held = {}
    for result in results:
        if isinstance(result, SeatConflict):
            continue
        assert not isinstance(result, Exception), result
        for booking in result.bookings:
            assert booking.seat_number not in held
            held[booking.seat_number] = booking.user_id

    availability = await container.bookings.list_available_seats("R1", TRAVEL)
    assert sorted(availability.booked, key=int) == sorted(held, key=int)
    assert any(isinstance(r, SeatConflict) for r in results)


# ---------------- cancellation ----------------

@pytest.mark.asyncio
async def test_cancel_releases_seat_and_second_cancel_fails(container, session_maker):
    await seed_route(container)
    booking = (await _reserve(container, ["5"])).bookings[0]

    cancelled = await container.bookings.cancel(booking.id, "u1")
    assert cancelled.status == BookingStatus.CANCELLED.value
    assert "5" in (await container.bookings.list_available_seats("R1", TRAVEL)).available

    with pytest.raises(AlreadyCancelled):
        await container.bookings.cancel(booking.id, "u1")

    async with session_maker() as session:
        claims = (await session.execute(select(SeatClaim).where(SeatClaim.seat_number == "5"))).scalars().all()
    assert len(claims) == 1
    assert claims[0].released_at is not None

    # the seat is bookable again
    rebooked = await _reserve(container, ["5"], user_id="u2")
    assert rebooked.bookings[0].seat_number == "5"


@pytest.mark.asyncio
async def test_cancel_by_other_user_is_forbidden(container):
    await seed_route(container)
    booking = (await _reserve(container, ["6"], user_id="owner")).bookings[0]
    with pytest.raises(ForbiddenError):
        await container.bookings.cancel(booking.id, "intruder")


@pytest.mark.asyncio
async def test_cancel_just_outside_window_succeeds(container, clock):
    await seed_route(container, departure=time(8, 0))
    booking = (await _reserve(container, ["1"])).bookings[0]
    clock.now = DEPARTURE - timedelta(hours=2, seconds=1)
    cancelled = await container.bookings.cancel(booking.id, "u1")
    assert cancelled.status == BookingStatus.CANCELLED.value


@pytest.mark.asyncio
async def test_cancel_inside_window_is_too_late(container, clock):
    await seed_route(container, departure=time(8, 0))
    booking = (await _reserve(container, ["1"])).bookings[0]
    clock.now = DEPARTURE - timedelta(hours=1, minutes=59, seconds=59)
    with pytest.raises(TooLateToCancel):
        await container.bookings.cancel(booking.id, "u1")
    # seat still held
    assert "1" in (await container.bookings.list_available_seats("R1", TRAVEL)).booked


# ---------------- confirmation ----------------

@pytest.mark.asyncio
async def test_confirm_then_cancel(container):
    await seed_route(container)
    booking = (await _reserve(container, ["8"])).bookings[0]

    confirmed = await container.bookings.confirm(booking.id)
    assert confirmed.status == BookingStatus.CONFIRMED.value
    with pytest.raises(InvalidTransition):
        await container.bookings.confirm(booking.id)

    cancelled = await container.bookings.cancel(booking.id, "u1")
    assert cancelled.status == BookingStatus.CANCELLED.value
    with pytest.raises(AlreadyCancelled):
        await container.bookings.confirm(booking.id)


@pytest.mark.asyncio
async def test_confirm_inside_window_rejected(container, clock):
    await seed_route(container)
    booking = (await _reserve(container, ["9"])).bookings[0]
    clock.now = DEPARTURE - timedelta(minutes=30)
    with pytest.raises(InvalidTransition):
        await container.bookings.confirm(booking.id)


# ---------------- notifications ----------------

@pytest.mark.asyncio
async def test_reservation_notifies_primary_user(container, session_maker, senders):
    await seed_user(session_maker, "u1", email="u1@example.com", phone="0772123456", tokens=["tok-1"])
    await seed_route(container)
    await _reserve(container, ["1", "2"])

    recipient, content = senders[Channel.EMAIL].calls[0]
    assert recipient == "u1@example.com"
    assert "Booking Confirmed" in content.subject
    assert senders[Channel.SMS].calls[0][0] == "0772123456"
    assert senders[Channel.PUSH].calls[0][0] == ["tok-1"]

    async with session_maker() as session:
        records = (await session.execute(select(NotificationRecord))).scalars().all()
    assert sorted(r.channel for r in records) == ["EMAIL", "IN_APP", "PUSH", "SMS"]
    assert {r.event_type for r in records} == {"BOOKING_CONFIRMATION"}


@pytest.mark.asyncio
async def test_failing_notifications_do_not_undo_booking(container):
    async def broken(*args, **kwargs):
        raise RuntimeError("dispatcher exploded")

    await seed_route(container)
    container.notifier.booking_confirmed = broken
    reservation = await _reserve(container, ["3"])
    assert reservation.bookings[0].status == BookingStatus.PENDING.value
    assert "3" in (await container.bookings.list_available_seats("R1", TRAVEL)).booked


@pytest.mark.asyncio
async def test_list_user_bookings_and_get_booking(container):
    await seed_route(container)
    await _reserve(container, ["1"], user_id="u1")
    await _reserve(container, ["2"], user_id="u2")

    mine = await container.bookings.list_user_bookings("u1")
    assert [b.seat_number for b in mine] == ["1"]
    assert (await container.bookings.get_booking(mine[0].id, "u1")).id == mine[0].id
    with pytest.raises(ForbiddenError):
        await container.bookings.get_booking(mine[0].id, "u2")
