"""
SQLAlchemy ORM models.

Purpose:
- Define Bus, Route, RouteStop, User, Booking, SeatClaim, NotificationPreference,
  DeviceToken and NotificationRecord tables
- Use SQLAlchemy async-compatible models
- Support migrations via Alembic (alembic/versions/001_initial_schema.py)

Production notes:
- seat_claims carries the only uniqueness rule that matters for correctness:
  one HELD row per (route_id, travel_date, seat_number). held_marker is TRUE
  while HELD and NULL once RELEASED; NULLs never collide in a unique index.
- notification_records is append-only (read_at is the only field updated).
"""

from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Time, JSON, Boolean, Text, ForeignKey, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship
from core.db import Base
from datetime import datetime
import enum
import uuid


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class ClaimStatus(str, enum.Enum):
    HELD = "HELD"
    RELEASED = "RELEASED"


class DeliveryStatus(str, enum.Enum):
    SENT = "SENT"
    FAILED = "FAILED"


def _uuid() -> str:
    return str(uuid.uuid4())


class Bus(Base):
    """
    A vehicle; only capacity matters to seat validation.
    """
    __tablename__ = "buses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plate_number = Column(String(50), unique=True, index=True, nullable=False)
    model = Column(String(100), nullable=True)
    capacity = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    routes = relationship("Route", back_populates="bus")


class Route(Base):
    """
    One schedulable origin -> destination service.

    Columns:
    - route_id: business key (e.g. "R1")
    - price: full-route fare, used when no boarding/alighting pair is given
    - departure_time: time of day; combined with a booking's travel_date to get departure
    - active: inactive routes refuse new reservations
    """
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    route_id = Column(String(50), unique=True, index=True, nullable=False)
    origin = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    price = Column(Integer, nullable=False)
    departure_time = Column(Time, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    bus_id = Column(Integer, ForeignKey("buses.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    bus = relationship("Bus", back_populates="routes", lazy="joined")
    stops = relationship(
        "RouteStop",
        back_populates="route",
        order_by="RouteStop.order_index",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    @property
    def label(self) -> str:
        return f"{self.origin} → {self.destination}"


class RouteStop(Base):
    """
    Intermediate stop with cumulative price from origin.
    order_index strictly increasing and price_from_origin non-decreasing along a route.
    """
    __tablename__ = "route_stops"

    id = Column(Integer, primary_key=True, autoincrement=True)
    route_pk = Column(Integer, ForeignKey("routes.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    order_index = Column(Integer, nullable=False)
    price_from_origin = Column(Integer, nullable=False, default=0)

    route = relationship("Route", back_populates="stops")

    __table_args__ = (
        UniqueConstraint("route_pk", "order_index", name="ux_route_stop_order"),
    )


class User(Base):
    """
    A passenger / operator account; the dispatcher reads email and phone from here.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(100), unique=True, index=True, nullable=False)
    role = Column(String(50), default="user", index=True)  # user, operator, admin
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, unique=True, index=True)
    phone = Column(String(20), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Booking(Base):
    """
    One booking per (passenger, seat). status: PENDING | CONFIRMED | CANCELLED.
    """
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(100), index=True, nullable=False)
    route_id = Column(String(50), index=True, nullable=False)
    seat_number = Column(String(10), nullable=False)
    travel_date = Column(Date, nullable=False)
    boarding_stop = Column(String(255), nullable=True)
    alighting_stop = Column(String(255), nullable=True)
    passenger_name = Column(String(255), nullable=False)
    passenger_phone = Column(String(20), nullable=True)
    fare = Column(Integer, nullable=False)
    status = Column(String(20), default=BookingStatus.PENDING.value, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_bookings_route_date", "route_id", "travel_date"),
    )


class SeatClaim(Base):
    """
    Exclusive hold on a seat for a route and travel date.
    """
    __tablename__ = "seat_claims"

    id = Column(Integer, primary_key=True, autoincrement=True)
    route_id = Column(String(50), nullable=False)
    travel_date = Column(Date, nullable=False)
    seat_number = Column(String(10), nullable=False)
    booking_id = Column(String(36), nullable=True, index=True)
    status = Column(String(20), default=ClaimStatus.HELD.value, nullable=False)
    held_marker = Column(Boolean, nullable=True, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    released_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("route_id", "travel_date", "seat_number", "held_marker", name="ux_seat_claim_held"),
        Index("ix_seat_claims_route_date_status", "route_id", "travel_date", "status"),
    )


class NotificationPreference(Base):
    """
    Per-user channel opt-outs. Absent row == defaults (email/push/sms on, marketing off).
    """
    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(Boolean, default=True, nullable=False)
    push = Column(Boolean, default=True, nullable=False)
    sms = Column(Boolean, default=True, nullable=False)
    marketing = Column(Boolean, default=False, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class DeviceToken(Base):
    """
    Push endpoint registered by a user's device.
    """
    __tablename__ = "device_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(100), index=True, nullable=False)
    token = Column(String(512), unique=True, nullable=False)
    platform = Column(String(20), nullable=False)  # ANDROID, IOS, WEB
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    last_used = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)


class NotificationRecord(Base):
    """
    One row per (event, channel) delivery attempt. IN_APP rows are the user's inbox.
    """
    __tablename__ = "notification_records"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(100), index=True, nullable=False)
    event_type = Column(String(50), nullable=False)
    channel = Column(String(20), nullable=False, index=True)
    recipient = Column(String(512), nullable=True)
    subject = Column(String(255), nullable=True)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False)
    message_id = Column(String(255), nullable=True)
    detail = Column(String(255), nullable=True)  # e.g. "2/3 sent" for push
    error_message = Column(String(1000), nullable=True)
    sent_at = Column(DateTime, nullable=True)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
