"""
Channel content templates.

render() is a pure lookup on (event_type, channel). Event types without a
dedicated template, and dedicated templates whose data keys are missing,
fall back to the generic per-channel rendering of title + body.
"""
import html
import json
import logging
from typing import Callable, Dict, Mapping, Optional, Tuple

from models.notification import Channel, EventType, RenderedContent

logger = logging.getLogger(__name__)

Renderer = Callable[[str, str, Mapping[str, str]], RenderedContent]


# ---------------- generic renderers ----------------

def _generic_email(title: str, body: str, data: Mapping[str, str]) -> RenderedContent:
    extra = ""
    if data:
        extra = "<pre>" + html.escape(json.dumps(dict(data), indent=2)) + "</pre>"
    return RenderedContent(
        title=title,
        body=body,
        subject=title,
        html=f"<h2>{html.escape(title)}</h2><p>{html.escape(body)}</p>{extra}",
        data=dict(data),
    )


def _generic_sms(title: str, body: str, data: Mapping[str, str]) -> RenderedContent:
    return RenderedContent(title=title, body=f"{title}\n\n{body}", data=dict(data))


def _generic_push(title: str, body: str, data: Mapping[str, str]) -> RenderedContent:
    return RenderedContent(title=title, body=body, data=dict(data))


def _generic_in_app(title: str, body: str, data: Mapping[str, str]) -> RenderedContent:
    return RenderedContent(title=title, body=body, data=dict(data))


GENERIC: Dict[Channel, Renderer] = {
    Channel.EMAIL: _generic_email,
    Channel.SMS: _generic_sms,
    Channel.PUSH: _generic_push,
    Channel.IN_APP: _generic_in_app,
}


# ---------------- template builders ----------------

def _sms(template: str) -> Renderer:
    def render(title: str, body: str, data: Mapping[str, str]) -> RenderedContent:
        return RenderedContent(title=title, body=template.format_map(data), data=dict(data))
    return render


def _push(title_template: str, body_template: str) -> Renderer:
    def render(title: str, body: str, data: Mapping[str, str]) -> RenderedContent:
        return RenderedContent(
            title=title_template.format_map(data),
            body=body_template.format_map(data),
            data=dict(data),
        )
    return render


def _email(subject_template: str, lines: Tuple[Tuple[str, str], ...], footer: str = "") -> Renderer:
    """Email with a subject and a label/value table built from `lines`."""
    def render(title: str, body: str, data: Mapping[str, str]) -> RenderedContent:
        rows = [(label, value.format_map(data)) for label, value in lines]
        table = "".join(
            f"<tr><td><strong>{html.escape(label)}</strong></td><td>{html.escape(value)}</td></tr>"
            for label, value in rows
        )
        text = "\n".join(f"{label}: {value}" for label, value in rows)
        if footer:
            text = f"{text}\n\n{footer}"
        return RenderedContent(
            title=title,
            body=f"{body}\n\n{text}",
            subject=subject_template.format_map(data),
            html=(
                f"<h2>{html.escape(title)}</h2><p>{html.escape(body)}</p>"
                f"<table>{table}</table>" + (f"<p>{html.escape(footer)}</p>" if footer else "")
            ),
            data=dict(data),
        )
    return render


# ---------------- dedicated templates ----------------

TEMPLATES: Dict[Tuple[str, Channel], Renderer] = {
    (EventType.BOOKING_CONFIRMATION.value, Channel.EMAIL): _email(
        "Booking Confirmed - {bookingId}",
        (
            ("Booking ID", "{bookingId}"),
            ("Passenger", "{passengerName}"),
            ("Route", "{route}"),
            ("Date", "{date}"),
            ("Departure", "{time}"),
            ("Seat(s)", "{seatNumber}"),
            ("Amount", "UGX {amount}"),
        ),
        footer="Please arrive at the boarding point 30 minutes before departure.",
    ),
    (EventType.BOOKING_CONFIRMATION.value, Channel.SMS): _sms(
        "Booking Confirmed!\n"
        "Booking ID: {bookingId}\n"
        "Route: {route}\n"
        "Date: {date}\n"
        "Seat: {seatNumber}\n"
        "Amount: UGX {amount}\n"
        "Show this SMS as backup ticket."
    ),
    (EventType.BOOKING_CONFIRMATION.value, Channel.PUSH): _push(
        "Booking Confirmed",
        "Seat {seatNumber} on {route}, {date} at {time}",
    ),
    (EventType.BOOKING_CONFIRMATION.value, Channel.IN_APP): _push(
        "Booking Confirmed!",
        "Your ticket for {route} on {date} at {time} is booked. Seat {seatNumber}.",
    ),
    (EventType.BOOKING_CANCELLED.value, Channel.EMAIL): _email(
        "Booking Cancelled - {bookingId}",
        (
            ("Booking ID", "{bookingId}"),
            ("Route", "{route}"),
            ("Date", "{date}"),
            ("Seat", "{seatNumber}"),
            ("Refund", "UGX {refundAmount}"),
        ),
        footer="Refunds are processed within 3-5 business days.",
    ),
    (EventType.BOOKING_CANCELLED.value, Channel.SMS): _sms(
        "Booking Cancelled\n"
        "Booking ID: {bookingId}\n"
        "Route: {route}\n"
        "Refund: UGX {refundAmount}\n"
        "Refund will be processed within 3-5 business days."
    ),
    (EventType.BOOKING_CANCELLED.value, Channel.PUSH): _push(
        "Booking Cancelled",
        "Seat {seatNumber} on {route}, {date} was cancelled.",
    ),
    (EventType.PAYMENT_SUCCESS.value, Channel.EMAIL): _email(
        "Payment Confirmed - {transactionId}",
        (
            ("Booking ID", "{bookingId}"),
            ("Amount", "UGX {amount}"),
            ("Method", "{method}"),
            ("Transaction", "{transactionId}"),
        ),
    ),
    (EventType.PAYMENT_SUCCESS.value, Channel.SMS): _sms(
        "Payment Successful!\n"
        "Booking ID: {bookingId}\n"
        "Amount: UGX {amount}\n"
        "Your ticket is ready."
    ),
    (EventType.PAYMENT_SUCCESS.value, Channel.PUSH): _push(
        "Payment Successful",
        "UGX {amount} received for booking {bookingId}.",
    ),
    (EventType.PAYMENT_FAILED.value, Channel.EMAIL): _email(
        "Payment Failed - Action Required",
        (
            ("Booking ID", "{bookingId}"),
            ("Amount", "UGX {amount}"),
            ("Method", "{method}"),
            ("Reason", "{reason}"),
        ),
        footer="Please try again or contact support.",
    ),
    (EventType.PAYMENT_FAILED.value, Channel.SMS): _sms(
        "Payment Failed\n"
        "Booking ID: {bookingId}\n"
        "Amount: UGX {amount}\n"
        "Please try again or contact support."
    ),
    (EventType.PAYMENT_FAILED.value, Channel.PUSH): _push(
        "Payment Failed",
        "Payment of UGX {amount} for booking {bookingId} could not be processed.",
    ),
    (EventType.TRIP_REMINDER.value, Channel.EMAIL): _email(
        "Trip Reminder - {route}",
        (
            ("Route", "{route}"),
            ("Date", "{date}"),
            ("Departure", "{time}"),
            ("Seat", "{seatNumber}"),
            ("Boarding point", "{boardingPoint}"),
        ),
        footer="Have your ticket ready when boarding.",
    ),
    (EventType.TRIP_REMINDER.value, Channel.SMS): _sms(
        "Trip Reminder\n"
        "Route: {route}\n"
        "Departure: {date} {time}\n"
        "Boarding: {boardingPoint}\n"
        "Seat: {seatNumber}\n"
        "Have your ticket ready!"
    ),
    (EventType.TRIP_REMINDER.value, Channel.PUSH): _push(
        "Trip Reminder",
        "{route} departs {date} at {time}. Seat {seatNumber}.",
    ),
}


def render(
    event_type: str,
    channel: Channel,
    title: str,
    body: str,
    data: Optional[Mapping[str, str]] = None,
) -> RenderedContent:
    """Render content for one channel; never raises for missing template data."""
    data = data or {}
    renderer = TEMPLATES.get((event_type, channel))
    if renderer is not None:
        try:
            return renderer(title, body, data)
        except (KeyError, IndexError, ValueError) as exc:
            logger.info("Template %s/%s missing data (%s); using generic content", event_type, channel.value, exc)
    return GENERIC[channel](title, body, data)
