# api/routes_bookings.py
from datetime import date

from fastapi import APIRouter, Depends, Query

from core.auth import get_current_user, require_roles
from core.container import ServiceContainer, get_container
from core.response import ok
from models.schemas import (
    BookingOut,
    CreateBookingRequest,
    PricingOut,
    SeatAvailabilityOut,
    SeatMapEntry,
)

router = APIRouter()


def _booking(booking) -> dict:
    return BookingOut.model_validate(booking).model_dump(by_alias=True, mode="json")


@router.post("", status_code=201)
async def create_booking(
    req: CreateBookingRequest,
    user: dict = Depends(get_current_user),
    services: ServiceContainer = Depends(get_container),
):
    """Reserve one seat per passenger. All seats are booked or none are."""
    reservation = await services.bookings.create_reservation(
        user_id=user["user_id"],
        route_id=req.route_id,
        travel_date=req.travel_date,
        seat_numbers=req.seat_numbers,
        passengers=[p.model_dump() for p in req.passengers],
        boarding_stop=req.boarding_stop,
        alighting_stop=req.alighting_stop,
    )
    pricing = PricingOut(
        fare_per_seat=reservation.fare_per_seat,
        seat_count=reservation.seat_count,
        total_amount=reservation.total_amount,
        boarding_stop=reservation.boarding_stop,
        alighting_stop=reservation.alighting_stop,
    )
    return ok({
        "bookings": [_booking(b) for b in reservation.bookings],
        "pricing": pricing.model_dump(by_alias=True, mode="json"),
    })


@router.get("/route/{route_id}/seats")
async def seat_availability(
    route_id: str,
    travel_date: date = Query(..., alias="travelDate"),
    services: ServiceContainer = Depends(get_container),
):
    seats = await services.bookings.list_available_seats(route_id, travel_date)
    out = SeatAvailabilityOut(
        total_seats=seats.total,
        available_seats=seats.available,
        booked_seats=seats.booked,
        seat_map=[SeatMapEntry(**entry) for entry in seats.seat_map],
    )
    return ok(out.model_dump(by_alias=True, mode="json"))


@router.get("/my-bookings")
async def my_bookings(
    user: dict = Depends(get_current_user),
    services: ServiceContainer = Depends(get_container),
):
    bookings = await services.bookings.list_user_bookings(user["user_id"])
    return ok([_booking(b) for b in bookings])


@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    user: dict = Depends(get_current_user),
    services: ServiceContainer = Depends(get_container),
):
    booking = await services.bookings.get_booking(booking_id, user["user_id"])
    return ok(_booking(booking))


@router.put("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: str,
    user: dict = Depends(get_current_user),
    services: ServiceContainer = Depends(get_container),
):
    booking = await services.bookings.cancel(booking_id, user["user_id"])
    return ok(_booking(booking))


@router.put("/{booking_id}/confirm")
async def confirm_booking(
    booking_id: str,
    user: dict = Depends(require_roles("admin", "operator")),
    services: ServiceContainer = Depends(get_container),
):
    """Operator/payment confirmation: PENDING -> CONFIRMED."""
    booking = await services.bookings.confirm(booking_id)
    return ok(_booking(booking))
