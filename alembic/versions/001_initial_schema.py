"""
Initial database schema: buses, routes, route_stops, users, bookings,
seat_claims, notification_preferences, device_tokens, notification_records.

Revision ID: 001
Created: 2025-11-01
"""
from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create initial tables."""
    # Buses table
    op.create_table(
        "buses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("plate_number", sa.String(50), nullable=False),
        sa.Column("model", sa.String(100), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_buses_plate_number", "buses", ["plate_number"], unique=True)

    # Routes table
    op.create_table(
        "routes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("route_id", sa.String(50), nullable=False),
        sa.Column("origin", sa.String(255), nullable=False),
        sa.Column("destination", sa.String(255), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("departure_time", sa.Time(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("bus_id", sa.Integer(), sa.ForeignKey("buses.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_routes_route_id", "routes", ["route_id"], unique=True)
    op.create_index("ix_routes_bus_id", "routes", ["bus_id"])

    # Route stops table
    op.create_table(
        "route_stops",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("route_pk", sa.Integer(), sa.ForeignKey("routes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False),
        sa.Column("price_from_origin", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("route_pk", "order_index", name="ux_route_stop_order"),
    )
    op.create_index("ix_route_stops_route_pk", "route_stops", ["route_pk"])

    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("role", sa.String(50), default="user"),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_user_id", "users", ["user_id"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("route_id", sa.String(50), nullable=False),
        sa.Column("seat_number", sa.String(10), nullable=False),
        sa.Column("travel_date", sa.Date(), nullable=False),
        sa.Column("boarding_stop", sa.String(255), nullable=True),
        sa.Column("alighting_stop", sa.String(255), nullable=True),
        sa.Column("passenger_name", sa.String(255), nullable=False),
        sa.Column("passenger_phone", sa.String(20), nullable=True),
        sa.Column("fare", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(), default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_route_id", "bookings", ["route_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_route_date", "bookings", ["route_id", "travel_date"])

    # Seat claims: one HELD row per (route, date, seat); released rows carry NULL held_marker
    op.create_table(
        "seat_claims",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("route_id", sa.String(50), nullable=False),
        sa.Column("travel_date", sa.Date(), nullable=False),
        sa.Column("seat_number", sa.String(10), nullable=False),
        sa.Column("booking_id", sa.String(36), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="HELD"),
        sa.Column("held_marker", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), default=sa.func.now()),
        sa.Column("released_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("route_id", "travel_date", "seat_number", "held_marker", name="ux_seat_claim_held"),
    )
    op.create_index("ix_seat_claims_booking_id", "seat_claims", ["booking_id"])
    op.create_index("ix_seat_claims_route_date_status", "seat_claims", ["route_id", "travel_date", "status"])

    # Notification preferences table
    op.create_table(
        "notification_preferences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("email", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("push", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sms", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("marketing", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notification_preferences_user_id", "notification_preferences", ["user_id"], unique=True)

    # Device tokens table
    op.create_table(
        "device_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("token", sa.String(512), nullable=False),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_used", sa.DateTime(), default=sa.func.now()),
        sa.Column("created_at", sa.DateTime(), default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token"),
    )
    op.create_index("ix_device_tokens_user_id", "device_tokens", ["user_id"])
    op.create_index("ix_device_tokens_is_active", "device_tokens", ["is_active"])

    # Notification delivery records (append-only; IN_APP rows are the inbox)
    op.create_table(
        "notification_records",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("channel", sa.String(20), nullable=False),
        sa.Column("recipient", sa.String(512), nullable=True),
        sa.Column("subject", sa.String(255), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("message_id", sa.String(255), nullable=True),
        sa.Column("detail", sa.String(255), nullable=True),
        sa.Column("error_message", sa.String(1000), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notification_records_user_id", "notification_records", ["user_id"])
    op.create_index("ix_notification_records_channel", "notification_records", ["channel"])
    op.create_index("ix_notification_records_created_at", "notification_records", ["created_at"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("notification_records")
    op.drop_table("device_tokens")
    op.drop_table("notification_preferences")
    op.drop_table("seat_claims")
    op.drop_table("bookings")
    op.drop_table("users")
    op.drop_table("route_stops")
    op.drop_table("routes")
    op.drop_table("buses")
