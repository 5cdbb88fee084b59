"""
Email dispatch through Resend.

``send_*`` functions raise NotificationDeliveryError and back the explicit email
endpoints. ``notify_*`` functions are the fire-and-forget variants used by the
lifecycle managers: a failure is logged and never reaches the caller.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import resend
from flask import current_app

from ..email_templates import (
    booking_confirmation_template,
    booking_reminder_template,
    booking_update_template,
    payment_receipt_template,
    transaction_alert_template,
)
from ..errors import NotificationDeliveryError, ValidationError

logger = logging.getLogger(__name__)

BOOKING_EMAIL_TEMPLATES = {
    "confirmation": booking_confirmation_template,
    "update": booking_update_template,
    "reminder": booking_reminder_template,
}


@dataclass(frozen=True)
class TransactionAlert:
    type: str
    status: str
    customer_name: str
    customer_email: str
    transaction_id: str
    amount: Optional[float] = None
    service_name: Optional[str] = None
    booking_date: Optional[str] = None

    @classmethod
    def for_payment(cls, payment) -> "TransactionAlert":
        client = payment.client or payment.booking.client
        return cls(
            type="payment",
            status=payment.status,
            amount=float(payment.amount),
            customer_name=client.full_name,
            customer_email=client.email,
            transaction_id=str(payment.stripe_payment_id or payment.id),
        )

    @classmethod
    def for_booking(cls, booking) -> "TransactionAlert":
        return cls(
            type="booking",
            status=booking.status,
            customer_name=booking.client.full_name,
            customer_email=booking.client.email,
            transaction_id=str(booking.id),
            service_name=booking.service.name if booking.service else None,
            booking_date=booking.scheduled_date.isoformat() if booking.scheduled_date else None,
        )


def send_email(to: str | list[str], subject: str, html: str) -> dict:
    api_key = current_app.config.get("RESEND_API_KEY")
    if not api_key:
        raise NotificationDeliveryError("Email delivery is not configured")

    recipients = [to] if isinstance(to, str) else list(to)
    resend.api_key = api_key
    try:
        response = resend.Emails.send({
            "from": current_app.config.get("EMAIL_FROM_ADDRESS"),
            "to": recipients,
            "subject": subject,
            "html": html,
        })
    except Exception as exc:
        logger.error("Email send error to %s: %s", recipients, exc)
        raise NotificationDeliveryError(f"Failed to send email: {exc}") from exc
    logger.info("Email sent to %s: %s", recipients, subject)
    return response


def send_booking_email(booking, kind: str) -> dict:
    template = BOOKING_EMAIL_TEMPLATES.get(kind)
    if template is None:
        raise ValidationError(
            f"type must be one of: {', '.join(BOOKING_EMAIL_TEMPLATES)}", code="invalid_type"
        )
    subject, html = template(booking)
    return send_email(booking.client.email, subject, html)


def send_payment_receipt(payment) -> dict:
    subject, html = payment_receipt_template(payment)
    return send_email(payment.booking.client.email, subject, html)


def send_transaction_alert(alert: TransactionAlert) -> dict:
    subject, html = transaction_alert_template(
        alert.type,
        alert.status,
        alert.customer_name,
        alert.customer_email,
        alert.transaction_id,
        amount=alert.amount,
        service_name=alert.service_name,
        booking_date=alert.booking_date,
    )
    return send_email(current_app.config.get("TRANSACTION_ALERT_EMAIL"), subject, html)


def notify_booking(booking, kind: str) -> bool:
    try:
        send_booking_email(booking, kind)
    except NotificationDeliveryError as exc:
        logger.warning("Booking %s email for booking %s not delivered: %s", kind, booking.id, exc.message)
        return False
    return True


def notify_payment_receipt(payment) -> bool:
    try:
        send_payment_receipt(payment)
    except NotificationDeliveryError as exc:
        logger.warning("Receipt for payment %s not delivered: %s", payment.id, exc.message)
        return False
    return True


def notify_transaction_alert(alert: TransactionAlert) -> bool:
    try:
        send_transaction_alert(alert)
    except NotificationDeliveryError as exc:
        logger.warning("Transaction alert %s/%s not delivered: %s", alert.type, alert.transaction_id, exc.message)
        return False
    return True
