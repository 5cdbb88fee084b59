"""
HTML email bodies
Plain HTML fragments for booking, receipt and operations emails
"""

from typing import Optional

from markupsafe import escape

BRAND = "Handykonnect"


def _when(value) -> str:
    return value.strftime("%B %d, %Y at %I:%M %p") if value else "TBA"


def _details(rows: list[tuple[str, object]]) -> str:
    items = "".join(f"<li><strong>{escape(label)}:</strong> {escape(value)}</li>" for label, value in rows)
    return f"<ul>{items}</ul>"


def _signoff(line: str = f"Thank you for choosing {BRAND}!") -> str:
    return f"<p>{escape(line)}</p>"


def booking_confirmation_template(booking) -> tuple[str, str]:
    service = booking.service
    subject = f"Booking Confirmation - {service.name}"
    notes = f"<p><strong>Notes:</strong> {escape(booking.notes)}</p>" if booking.notes else ""
    html = (
        "<h1>Booking Confirmed!</h1>"
        f"<p>Dear {escape(booking.client.full_name)},</p>"
        f"<p>Your booking for <strong>{escape(service.name)}</strong> has been received.</p>"
        "<h2>Booking Details:</h2>"
        + _details([
            ("Service", service.name),
            ("Date", _when(booking.scheduled_date)),
            ("Address", booking.address),
            ("Price", f"${service.price:.2f}"),
            ("Duration", f"{service.duration_minutes} minutes"),
        ])
        + notes
        + _signoff()
    )
    return subject, html


def booking_update_template(booking) -> tuple[str, str]:
    service = booking.service
    subject = f"Booking Update - {service.name}"
    html = (
        "<h1>Booking Status Updated</h1>"
        f"<p>Dear {escape(booking.client.full_name)},</p>"
        f"<p>Your booking status has been updated to: <strong>{escape(booking.status)}</strong></p>"
        "<h2>Booking Details:</h2>"
        + _details([
            ("Service", service.name),
            ("Date", _when(booking.scheduled_date)),
            ("Address", booking.address),
        ])
        + _signoff()
    )
    return subject, html


def booking_reminder_template(booking) -> tuple[str, str]:
    service = booking.service
    subject = f"Booking Reminder - {service.name}"
    html = (
        "<h1>Booking Reminder</h1>"
        f"<p>Dear {escape(booking.client.full_name)},</p>"
        "<p>This is a reminder for your upcoming appointment:</p>"
        "<h2>Booking Details:</h2>"
        + _details([
            ("Service", service.name),
            ("Date", _when(booking.scheduled_date)),
            ("Address", booking.address),
        ])
        + _signoff("We look forward to serving you!")
    )
    return subject, html


def payment_receipt_template(payment) -> tuple[str, str]:
    booking = payment.booking
    subject = f"Payment Receipt - {booking.service.name}"
    html = (
        "<h1>Payment Receipt</h1>"
        f"<p>Dear {escape(booking.client.full_name)},</p>"
        "<p>Thank you for your payment. Here are the details:</p>"
        "<h2>Payment Information:</h2>"
        + _details([
            ("Payment ID", payment.id),
            ("Amount", f"${payment.amount:.2f}"),
            ("Method", payment.method),
            ("Status", payment.status),
            ("Date", _when(payment.created_at)),
        ])
        + "<h2>Service Details:</h2>"
        + _details([
            ("Service", booking.service.name),
            ("Scheduled Date", _when(booking.scheduled_date)),
            ("Address", booking.address),
        ])
        + "<p>This serves as your receipt for this transaction.</p>"
        + _signoff()
    )
    return subject, html


def transaction_alert_template(
    alert_type: str,
    status: str,
    customer_name: str,
    customer_email: str,
    transaction_id: str,
    amount: Optional[float] = None,
    service_name: Optional[str] = None,
    booking_date: Optional[str] = None,
) -> tuple[str, str]:
    """Internal operations alert for a payment or booking event."""
    label = "Payment" if alert_type == "payment" else "Booking"
    subject = f"New {label} - {status}"
    rows: list[tuple[str, object]] = [("Status", status)]
    if alert_type == "payment":
        rows.append(("Amount", f"${amount:.2f}" if amount is not None else "n/a"))
    else:
        rows.extend([("Service", service_name or "n/a"), ("Booking Date", booking_date or "n/a")])
    rows.extend([
        ("Customer", f"{customer_name} ({customer_email})"),
        (f"{'Transaction' if alert_type == 'payment' else 'Booking'} ID", transaction_id),
    ])
    html = f"<h2>New {label} Transaction</h2>" + _details(rows)
    return subject, html
