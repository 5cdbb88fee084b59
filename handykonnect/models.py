"""Database models for the Handykonnect backend."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _money(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


BOOKING_STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")
PAYMENT_METHODS = ("card", "bank", "bitcoin")
ROLES = ("client", "admin")


class Profile(db.Model):
    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    role = db.Column(
        db.Enum(*ROLES, name="user_role", native_enum=False, validate_strings=True),
        nullable=False,
        default="client",
        server_default="client",
    )
    password_hash = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    bookings = db.relationship("Booking", back_populates="client", lazy="dynamic")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "role": self.role,
        }


class Service(db.Model):
    """Services offered on the marketplace."""

    __tablename__ = "services"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    image_url = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    reviews = db.relationship(
        "Review", back_populates="service", lazy="dynamic", cascade="all, delete-orphan"
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": _money(self.price),
            "duration_minutes": self.duration_minutes,
            "image_url": self.image_url,
            "is_active": bool(self.is_active),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Booking(db.Model):
    """A scheduled service appointment for a client."""

    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False)
    scheduled_date = db.Column(db.DateTime, nullable=False)
    address = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text)
    status = db.Column(
        db.Enum(*BOOKING_STATUSES, name="booking_status", native_enum=False, validate_strings=True),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    client = db.relationship("Profile", back_populates="bookings")
    service = db.relationship("Service")
    payments = db.relationship("Payment", back_populates="booking", lazy="select")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "client": self.client.to_dict_basic() if self.client else None,
            "service_id": self.service_id,
            "service": {
                "id": self.service.id,
                "name": self.service.name,
                "price": _money(self.service.price),
                "duration_minutes": self.service.duration_minutes,
            } if self.service else None,
            "scheduled_date": _iso(self.scheduled_date),
            "address": self.address,
            "notes": self.notes,
            "status": self.status,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Payment(db.Model):
    """Payment attempts against a booking."""

    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False)
    client_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="usd")
    method = db.Column(
        db.Enum(*PAYMENT_METHODS, name="payment_method", native_enum=False, validate_strings=True),
        nullable=False,
        default="card",
    )
    status = db.Column(
        db.Enum(*PAYMENT_STATUSES, name="payment_status", native_enum=False, validate_strings=True),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    # Track payment gateway identifier (Stripe payment intent id)
    stripe_payment_id = db.Column(db.String(255), nullable=True, unique=True)
    refund_id = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    booking = db.relationship("Booking", back_populates="payments")
    client = db.relationship("Profile")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "client_id": self.client_id,
            "amount": _money(self.amount),
            "currency": self.currency,
            "method": self.method,
            "status": self.status,
            "stripe_payment_id": self.stripe_payment_id,
            "refund_id": self.refund_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Message(db.Model):
    """Support chat messages. Rows are only ever inserted."""

    __tablename__ = "messages"

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.String(64), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False)
    content = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    sender = db.relationship("Profile")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender_id": self.sender_id,
            "sender": {
                "full_name": self.sender.full_name,
                "role": self.sender.role,
            } if self.sender else None,
            "content": self.content,
            "is_read": bool(self.is_read),
            "created_at": _iso(self.created_at),
        }


class AdminInvitation(db.Model):
    __tablename__ = "admin_invitations"

    id = db.Column(db.Integer, primary_key=True)
    invited_email = db.Column(db.String(255), nullable=False, index=True)
    invited_by = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False)
    status = db.Column(
        db.Enum("pending", "accepted", name="invitation_status", native_enum=False, validate_strings=True),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    inviter = db.relationship("Profile")

    def is_expired(self, now: datetime | None = None) -> bool:
        return as_utc(self.expires_at) <= (now or utc_now())

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "invited_email": self.invited_email,
            "invited_by": self.invited_by,
            "status": self.status,
            "expires_at": _iso(self.expires_at),
            "created_at": _iso(self.created_at),
        }


class Review(db.Model):
    __tablename__ = "reviews"

    id = db.Column(db.Integer, primary_key=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False)
    client_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    service = db.relationship("Service", back_populates="reviews")
    client = db.relationship("Profile")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "service_id": self.service_id,
            "rating": self.rating,
            "comment": self.comment,
            "created_at": _iso(self.created_at),
            "client": {"full_name": self.client.full_name} if self.client else None,
        }
