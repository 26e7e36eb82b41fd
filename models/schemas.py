from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accept and emit camelCase keys; snake_case still accepted on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------------- Bookings ----------------

class PassengerIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)


class CreateBookingRequest(CamelModel):
    route_id: str = Field(..., min_length=1)
    seat_numbers: List[str] = Field(..., min_length=1)
    travel_date: date
    passengers: List[PassengerIn] = Field(..., min_length=1)
    boarding_stop: Optional[str] = None
    alighting_stop: Optional[str] = None

    @field_validator("seat_numbers", mode="before")
    @classmethod
    def _seats_as_strings(cls, value):
        # clients send [1, 2] or ["1", "2"]; keep them as text and validate in the engine
        if isinstance(value, list):
            return [str(v) for v in value]
        return value


class BookingOut(CamelModel):
    id: str
    user_id: str
    route_id: str
    seat_number: str
    travel_date: date
    boarding_stop: Optional[str] = None
    alighting_stop: Optional[str] = None
    passenger_name: str
    passenger_phone: Optional[str] = None
    fare: int
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PricingOut(CamelModel):
    fare_per_seat: int
    seat_count: int
    total_amount: int
    boarding_stop: Optional[str] = None
    alighting_stop: Optional[str] = None


class SeatMapEntry(CamelModel):
    seat_number: str
    is_available: bool


class SeatAvailabilityOut(CamelModel):
    total_seats: int
    available_seats: List[str]
    booked_seats: List[str]
    seat_map: List[SeatMapEntry]


# ---------------- Notifications ----------------

class DispatchPayload(CamelModel):
    """Internal: fan out one event to a user."""
    user_id: str = Field(..., min_length=1)
    event_type: str = Field("GENERAL", min_length=1)
    channels: List[str] = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    data: dict = {}
    recipient: Optional[str] = None
    subject: Optional[str] = None


class BroadcastPayload(CamelModel):
    """Admin: one event to every active user."""
    event_type: str = Field("GENERAL", alias="type")
    channels: List[str] = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    data: dict = {}


class PreferencesUpdate(CamelModel):
    email: Optional[bool] = None
    push: Optional[bool] = None
    sms: Optional[bool] = None
    marketing: Optional[bool] = None


class PreferencesOut(CamelModel):
    email: bool
    push: bool
    sms: bool
    marketing: bool


class RegisterTokenRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=512)
    platform: str = Field(..., pattern="^(ANDROID|IOS|WEB)$")


class NotificationOut(CamelModel):
    id: str
    event_type: str
    channel: str
    title: str
    body: str
    data: Optional[dict] = None
    status: str
    sent_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


# ---------------- Admin ----------------

class StopIn(CamelModel):
    name: str = Field(..., min_length=1)
    order: int = Field(..., ge=0)
    price_from_origin: int = Field(..., ge=0)


class RouteUpsertRequest(CamelModel):
    route_id: str = Field(..., min_length=1, max_length=50)
    origin: str = Field(..., min_length=1)
    destination: str = Field(..., min_length=1)
    price: int = Field(..., ge=0)
    departure_time: time
    active: bool = True
    bus_plate: str = Field(..., min_length=1)
    bus_capacity: int = Field(..., ge=1)
    bus_model: Optional[str] = None
    stops: List[StopIn] = []


class StopOut(CamelModel):
    name: str
    order_index: int
    price_from_origin: int


class RouteOut(CamelModel):
    route_id: str
    origin: str
    destination: str
    price: int
    departure_time: time
    active: bool
    capacity: int
    stops: List[StopOut]
