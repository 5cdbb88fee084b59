"""Service catalog management and reviews."""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from ..auth import Actor, ensure_admin
from ..database import commit_or_raise
from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Booking, Review, Service

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "description", "price", "duration_minutes", "image_url", "is_active")


def _clean(payload: Mapping[str, Any], partial: bool) -> dict[str, Any]:
    values: dict[str, Any] = {}

    if "name" in payload or not partial:
        name = (payload.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required")
        values["name"] = name

    if "price" in payload or not partial:
        try:
            price = Decimal(str(payload.get("price"))).quantize(Decimal("0.01"))
        except (InvalidOperation, ValueError):
            raise ValidationError("price must be a number")
        if not price.is_finite():
            raise ValidationError("price must be a number")
        if price < 0:
            raise ValidationError("price must not be negative")
        values["price"] = price

    if "duration_minutes" in payload or not partial:
        try:
            duration = int(payload.get("duration_minutes"))
        except (TypeError, ValueError):
            raise ValidationError("duration_minutes must be an integer")
        if duration <= 0:
            raise ValidationError("duration_minutes must be greater than zero")
        values["duration_minutes"] = duration

    if "description" in payload:
        values["description"] = (payload.get("description") or "").strip() or None
    if "image_url" in payload:
        values["image_url"] = (payload.get("image_url") or "").strip() or None
    if "is_active" in payload:
        values["is_active"] = bool(payload.get("is_active"))
    return values


def list_services(actor: Optional[Actor] = None, include_inactive: bool = False) -> list[Service]:
    query = Service.query
    if not (include_inactive and actor is not None and actor.is_admin):
        query = query.filter(Service.is_active.is_(True))
    return query.order_by(Service.created_at.desc(), Service.id.desc()).all()


def get_service(service_id: int) -> Service:
    service = db.session.get(Service, service_id)
    if service is None:
        raise NotFound("Service not found")
    return service


def create_service(actor: Optional[Actor], payload: Mapping[str, Any]) -> Service:
    ensure_admin(actor)
    service = Service(**_clean(payload, partial=False))
    db.session.add(service)
    commit_or_raise("create service")
    logger.info("Service %s created", service.id)
    return service


def update_service(actor: Optional[Actor], service_id: int, payload: Mapping[str, Any]) -> Service:
    ensure_admin(actor)
    service = get_service(service_id)
    for field, value in _clean(payload, partial=True).items():
        setattr(service, field, value)
    commit_or_raise("update service")
    return service


def toggle_service(actor: Optional[Actor], service_id: int) -> Service:
    ensure_admin(actor)
    service = get_service(service_id)
    service.is_active = not service.is_active
    commit_or_raise("toggle service")
    return service


def delete_service(actor: Optional[Actor], service_id: int) -> None:
    ensure_admin(actor)
    service = get_service(service_id)
    if Booking.query.filter_by(service_id=service.id).first() is not None:
        raise ValidationError(
            "Service has bookings and cannot be deleted; deactivate it instead", code="service_in_use"
        )
    db.session.delete(service)
    commit_or_raise("delete service")
    logger.info("Service %s deleted", service_id)


def list_reviews(service_id: int) -> list[Review]:
    service = get_service(service_id)
    return service.reviews.order_by(Review.created_at.desc()).all()
