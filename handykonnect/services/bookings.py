"""Booking lifecycle: creation, legal status transitions and their side effects.

Status moves along pending -> confirmed -> in_progress -> completed. Any
non-terminal booking can be cancelled. A refund cancels unconditionally, even a
completed booking. Concurrent writers are not serialised: the last commit wins.
"""
from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import joinedload, object_session

from ..auth import Actor, ensure_admin, ensure_authenticated
from ..database import commit_or_raise
from ..errors import AuthorizationError, InvalidTransition, NotFound, ValidationError
from ..extensions import db
from ..models import BOOKING_STATUSES, Booking, Service
from . import email

logger = logging.getLogger(__name__)

LEGAL_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"in_progress", "cancelled"}),
    "in_progress": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}


class TransitionSource(str, enum.Enum):
    ADMIN = "admin"
    PAYMENT = "payment"
    REFUND = "refund"


def can_transition(current: str, target: str) -> bool:
    return target in LEGAL_TRANSITIONS.get(current, frozenset())


def allowed_transitions(current: str) -> list[str]:
    """Targets an admin may offer for a booking in ``current``."""
    return sorted(LEGAL_TRANSITIONS.get(current, frozenset()))


def parse_datetime(value: object, field: str = "scheduled_date") -> datetime:
    """Parse an ISO timestamp into naive UTC, the form stored in the database."""
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except (TypeError, ValueError):
            raise ValidationError(f"{field} must be a valid ISO format datetime")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def create_booking(
    actor: Optional[Actor],
    service_id: int,
    scheduled_at: object,
    address: str,
    notes: Optional[str] = None,
) -> Booking:
    actor = ensure_authenticated(actor)

    service = db.session.get(Service, service_id)
    if service is None:
        raise NotFound("Service not found")
    if not service.is_active:
        raise ValidationError("Service is not currently available", code="service_inactive")

    address = (address or "").strip()
    if not address:
        raise ValidationError("address is required")

    booking = Booking(
        client_id=actor.id,
        service_id=service.id,
        scheduled_date=parse_datetime(scheduled_at),
        address=address,
        notes=(notes or "").strip() or None,
        status="pending",
    )
    db.session.add(booking)
    commit_or_raise("create booking")
    logger.info("Booking %s created by profile %s for service %s", booking.id, actor.id, service.id)

    email.notify_booking(booking, "confirmation")
    email.notify_transaction_alert(email.TransactionAlert.for_booking(booking))
    return booking


def get_booking(booking_id: int, actor: Optional[Actor]) -> Booking:
    actor = ensure_authenticated(actor)
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFound("Booking not found")
    if booking.client_id != actor.id and not actor.is_admin:
        raise AuthorizationError("You are not authorized to view this booking", forbidden=True)
    return booking


def list_bookings(actor: Optional[Actor], status: Optional[str] = None, limit: Optional[int] = None) -> list[Booking]:
    """Clients see their own bookings, admins see everyone's. Newest first."""
    actor = ensure_authenticated(actor)
    query = Booking.query.options(joinedload(Booking.service), joinedload(Booking.client))
    if not actor.is_admin:
        query = query.filter(Booking.client_id == actor.id)
    if status:
        if status not in BOOKING_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(BOOKING_STATUSES)}", code="invalid_status")
        query = query.filter(Booking.status == status)
    query = query.order_by(Booking.scheduled_date.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def calendar(actor: Optional[Actor], start: object, end: object) -> list[Booking]:
    """Bookings scheduled in ``[start, end)``, oldest first."""
    actor = ensure_authenticated(actor)
    window_start = parse_datetime(start, "start")
    window_end = parse_datetime(end, "end")
    if window_end <= window_start:
        raise ValidationError("end must be after start")

    query = Booking.query.options(joinedload(Booking.service)).filter(
        Booking.scheduled_date >= window_start,
        Booking.scheduled_date < window_end,
    )
    if not actor.is_admin:
        query = query.filter(Booking.client_id == actor.id)
    return query.order_by(Booking.scheduled_date.asc()).all()


def _check_transition(booking: Booking, target: str, actor: Optional[Actor], source: TransitionSource) -> bool:
    """Validate the move. Returns False when it is a permitted no-op."""
    if target not in BOOKING_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(BOOKING_STATUSES)}", code="invalid_status")

    current = booking.status
    if source is TransitionSource.REFUND:
        if target != "cancelled":
            raise InvalidTransition("booking", current, target, "A refund can only cancel a booking")
        return current != "cancelled"

    if source is TransitionSource.PAYMENT:
        ensure_authenticated(actor)
        if target != "confirmed":
            raise InvalidTransition("booking", current, target, "A payment can only confirm a booking")
    else:
        ensure_admin(actor, "Only admins can change booking status")

    if not can_transition(current, target):
        raise InvalidTransition("booking", current, target)
    return True


def transition(
    booking: Booking,
    target: str,
    actor: Optional[Actor],
    source: TransitionSource = TransitionSource.ADMIN,
    *,
    commit: bool = True,
) -> Booking:
    """Move ``booking`` to ``target`` if the edge is legal for ``source``.

    With ``commit=False`` the caller owns the unit of work and the status-update
    email; the payment lifecycle uses that to write payment and booking together.
    """
    if not _check_transition(booking, target, actor, source):
        return booking

    previous = booking.status
    booking.status = target
    logger.info("Booking %s: %s -> %s (%s)", booking.id, previous, target, source.value)

    if commit:
        commit_or_raise("update booking status", object_session(booking))
        email.notify_booking(booking, "update")
    return booking
