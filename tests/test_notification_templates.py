from models.notification import Channel, EventType
from services.notification_templates import GENERIC, TEMPLATES, render

BOOKING_DATA = {
    "bookingId": "BK-1",
    "passengerName": "Jane",
    "route": "Kampala → Mbarara",
    "date": "2025-11-10",
    "time": "08:00",
    "seatNumber": "1, 2",
    "amount": "14000",
}


def test_every_templated_event_covers_email_sms_push():
    templated = {event for event, _ in TEMPLATES}
    for event in templated:
        for channel in (Channel.EMAIL, Channel.SMS, Channel.PUSH):
            assert (event, channel) in TEMPLATES


def test_generic_table_covers_all_channels():
    assert set(GENERIC) == set(Channel)


def test_booking_confirmation_sms_uses_data():
    content = render(EventType.BOOKING_CONFIRMATION.value, Channel.SMS, "t", "b", BOOKING_DATA)
    assert "Booking ID: BK-1" in content.body
    assert "Amount: UGX 14000" in content.body


def test_booking_confirmation_email_has_subject_and_html():
    content = render(EventType.BOOKING_CONFIRMATION.value, Channel.EMAIL, "Booking Confirmed!", "Your ticket", BOOKING_DATA)
    assert content.subject == "Booking Confirmed - BK-1"
    assert "<table>" in content.html
    assert "Kampala → Mbarara" in content.html


def test_unknown_event_falls_back_to_generic():
    content = render("SOMETHING_NEW", Channel.SMS, "Heads up", "Bus is late", {})
    assert content.body == "Heads up\n\nBus is late"


def test_missing_template_data_falls_back_to_generic():
    content = render(EventType.PAYMENT_FAILED.value, Channel.PUSH, "Payment Failed", "Try again", {"amount": "5"})
    assert content.title == "Payment Failed"
    assert content.body == "Try again"


def test_generic_email_escapes_html():
    content = render("GENERAL", Channel.EMAIL, "<b>x</b>", "a & b")
    assert "&lt;b&gt;x&lt;/b&gt;" in content.html
    assert "a &amp; b" in content.html
    assert content.subject == "<b>x</b>"
