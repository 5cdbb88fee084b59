"""Payment lifecycle: intent handshake, confirmation, manual channels and refunds.

Payment states: pending -> completed | failed, completed -> refunded. ``failed``
and ``refunded`` are terminal. Completing a payment confirms a pending booking;
refunding one cancels its booking whatever stage it reached.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from flask import current_app

from ..auth import Actor, ensure_admin, ensure_authenticated
from ..database import commit_or_raise
from ..errors import AuthorizationError, InvalidTransition, NotFound, ProcessorError, ValidationError
from ..extensions import db
from ..models import PAYMENT_STATUSES, Booking, Payment
from ..processor import IN_FLIGHT_STATUSES, IntentResult, RefundResult, StripeProcessor
from . import bookings, email

logger = logging.getLogger(__name__)

PAYMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"completed", "failed"}),
    "completed": frozenset({"refunded"}),
    "failed": frozenset(),
    "refunded": frozenset(),
}

MANUAL_METHODS = ("bank", "bitcoin")

CENT = Decimal("0.01")


@dataclass(frozen=True)
class ConfirmResult:
    payment: Payment
    processor_status: str
    already_processed: bool = False


def _processor() -> StripeProcessor:
    return StripeProcessor.from_config(current_app.config)


def _load_booking(booking_id: int, actor: Actor) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFound("Booking not found")
    if booking.client_id != actor.id and not actor.is_admin:
        raise AuthorizationError("You are not authorized to pay for this booking", forbidden=True)
    if booking.status == "cancelled":
        raise ValidationError("Booking has been cancelled", code="invalid_booking")
    if booking.service is None:
        raise ValidationError("Booking has no associated service", code="invalid_booking")
    _ensure_unpaid(booking)
    return booking


def _ensure_unpaid(booking: Booking, payment: Optional[Payment] = None) -> None:
    """A booking carries at most one completed payment."""
    if any(other.status == "completed" and other is not payment for other in booking.payments):
        raise ValidationError("Booking is already paid", code="already_paid")


def _parse_amount(raw: object) -> Decimal:
    try:
        amount = Decimal(str(raw)).quantize(CENT)
    except (InvalidOperation, ValueError):
        raise ValidationError("amount must be a number")
    if not amount.is_finite():
        raise ValidationError("amount must be a number")
    if amount < 0:
        raise ValidationError("amount must not be negative")
    return amount


def create_payment_intent(
    actor: Optional[Actor], booking_id: int, amount: object = None
) -> tuple[Payment, IntentResult]:
    """Open a Stripe intent for the booking and record a pending Payment.

    The charged amount is always the service price. A caller-supplied amount
    is only checked against it.
    """
    actor = ensure_authenticated(actor)
    booking = _load_booking(booking_id, actor)

    expected = Decimal(booking.service.price).quantize(CENT)
    if amount is not None and _parse_amount(amount) != expected:
        logger.warning(
            "Rejected intent for booking %s: caller amount %s does not match service price %s",
            booking.id, amount, expected,
        )
        raise ValidationError("amount does not match the service price", code="amount_mismatch")

    processor = _processor()
    intent = processor.create_intent(
        expected,
        metadata={"booking_id": str(booking.id), "client_id": str(booking.client_id)},
    )

    payment = Payment(
        booking_id=booking.id,
        client_id=booking.client_id,
        amount=expected,
        currency=processor.currency,
        method="card",
        status="pending",
        stripe_payment_id=intent.intent_id,
    )
    db.session.add(payment)
    commit_or_raise("record payment intent")
    logger.info("Payment intent %s created for booking %s", intent.intent_id, booking.id)
    return payment, intent


def _complete(payment: Payment, actor: Actor) -> None:
    """Shared success path for processor and self-attested payments."""
    booking = payment.booking
    _ensure_unpaid(booking, payment)
    payment.status = "completed"
    confirmed = booking.status == "pending"
    if confirmed:
        bookings.transition(booking, "confirmed", actor, bookings.TransitionSource.PAYMENT, commit=False)
    commit_or_raise("complete payment")
    logger.info("Payment %s completed for booking %s", payment.id, booking.id)

    email.notify_payment_receipt(payment)
    email.notify_transaction_alert(email.TransactionAlert.for_payment(payment))
    if confirmed:
        email.notify_booking(booking, "update")


def _fail(payment: Payment) -> None:
    payment.status = "failed"
    commit_or_raise("mark payment failed")
    logger.warning("Payment %s failed for booking %s", payment.id, payment.booking_id)
    email.notify_transaction_alert(email.TransactionAlert.for_payment(payment))


def confirm_payment(actor: Optional[Actor], payment_intent_id: str) -> ConfirmResult:
    """Settle a card payment from the processor's view of the intent.

    Re-confirming an already completed payment changes nothing and sends nothing.
    """
    actor = ensure_authenticated(actor)
    if not payment_intent_id:
        raise ValidationError("payment_intent_id is required")

    payment = Payment.query.filter_by(stripe_payment_id=payment_intent_id).first()
    if payment is None:
        raise NotFound("Payment not found")
    if payment.client_id != actor.id and not actor.is_admin:
        raise AuthorizationError("You are not authorized to confirm this payment", forbidden=True)

    if payment.status == "completed":
        logger.info("Payment intent %s already completed; ignoring repeat confirmation", payment_intent_id)
        return ConfirmResult(payment, "succeeded", already_processed=True)
    if payment.status != "pending":
        raise InvalidTransition("payment", payment.status, "completed")
    if payment.booking.status == "cancelled":
        raise ValidationError("Booking has been cancelled", code="invalid_booking")
    _ensure_unpaid(payment.booking, payment)

    try:
        status = _processor().retrieve_status(payment_intent_id)
    except ProcessorError:
        _fail(payment)
        raise

    if status == "succeeded":
        _complete(payment, actor)
    elif status in IN_FLIGHT_STATUSES:
        logger.info("Payment intent %s still %s", payment_intent_id, status)
    else:
        _fail(payment)
    return ConfirmResult(payment, status)


def record_manual_payment(actor: Optional[Actor], booking_id: int, method: str) -> Payment:
    """Bank transfer / bitcoin: the client attests they sent the money.

    Nothing verifies the transfer; the booking is confirmed on the client's word.
    """
    actor = ensure_authenticated(actor)
    if method not in MANUAL_METHODS:
        raise ValidationError(f"method must be one of: {', '.join(MANUAL_METHODS)}", code="invalid_method")
    booking = _load_booking(booking_id, actor)

    payment = Payment(
        booking_id=booking.id,
        client_id=booking.client_id,
        amount=Decimal(booking.service.price).quantize(CENT),
        currency=current_app.config.get("STRIPE_CURRENCY") or "usd",
        method=method,
        status="pending",
    )
    db.session.add(payment)
    db.session.flush()
    logger.warning(
        "Self-attested %s payment %s for booking %s by profile %s; not independently verified",
        method, payment.id, booking.id, actor.id,
    )
    _complete(payment, actor)
    return payment


def refund(actor: Optional[Actor], payment_id: int) -> tuple[Payment, RefundResult]:
    """Refund through Stripe, then mark the payment refunded and cancel the booking.

    If Stripe refuses, nothing local changes.
    """
    actor = ensure_admin(actor, "Unauthorized - Admin access required")

    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFound("Payment not found")
    if payment.status == "refunded":
        raise InvalidTransition("payment", "refunded", "refunded", "Payment already refunded")
    if payment.status != "completed":
        raise InvalidTransition("payment", payment.status, "refunded")
    if not payment.stripe_payment_id:
        raise ValidationError("No Stripe payment ID found", code="not_refundable")

    result = _processor().refund(payment.stripe_payment_id)

    booking = payment.booking
    was_cancelled = booking.status == "cancelled"
    payment.status = "refunded"
    payment.refund_id = result.refund_id
    bookings.transition(booking, "cancelled", actor, bookings.TransitionSource.REFUND, commit=False)
    commit_or_raise("record refund")
    logger.info("Refund processed successfully for payment %s (%s)", payment.id, result.refund_id)

    if not was_cancelled:
        email.notify_booking(booking, "update")
    email.notify_transaction_alert(email.TransactionAlert.for_payment(payment))
    return payment, result


def update_payment_status(actor: Optional[Actor], payment_id: int, status: str) -> Payment:
    """Admin transaction monitor: settle or fail a pending payment by hand."""
    actor = ensure_admin(actor)
    if status not in PAYMENT_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(PAYMENT_STATUSES)}", code="invalid_status")
    if status == "refunded":
        raise ValidationError("Use /process-refund to refund a payment", code="invalid_status")

    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFound("Payment not found")
    if status not in PAYMENT_TRANSITIONS[payment.status]:
        raise InvalidTransition("payment", payment.status, status)

    if status == "completed":
        if payment.booking.status == "cancelled":
            raise ValidationError("Booking has been cancelled", code="invalid_booking")
        _ensure_unpaid(payment.booking, payment)
        _complete(payment, actor)
    else:
        _fail(payment)
    return payment


def list_payments(actor: Optional[Actor], limit: Optional[int] = None) -> list[Payment]:
    """Payment history: a client's own payments, or every payment for admins."""
    actor = ensure_authenticated(actor)
    query = Payment.query
    if not actor.is_admin:
        query = query.filter(Payment.client_id == actor.id)
    query = query.order_by(Payment.created_at.desc(), Payment.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()
