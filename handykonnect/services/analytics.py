"""Admin rollups computed in memory over a bounded set of rows."""
from __future__ import annotations

from collections import Counter
from decimal import Decimal
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy.orm import joinedload, selectinload

from ..auth import Actor, ensure_admin
from ..extensions import db
from ..models import Booking, Payment, Profile, Service

MONTHS_SHOWN = 6


def total_revenue(payments: Iterable[Payment]) -> Decimal:
    """Sum of completed payment amounts. Pending, failed and refunded rows count for nothing."""
    return sum((Decimal(p.amount) for p in payments if p.status == "completed"), Decimal("0"))


def dashboard_stats(actor: Optional[Actor]) -> dict[str, object]:
    ensure_admin(actor)
    completed = Payment.query.filter(Payment.status == "completed").all()
    return {
        "total_bookings": db.session.query(Booking.id).count(),
        "total_revenue": float(total_revenue(completed)),
        "total_clients": Profile.query.filter(Profile.role == "client").count(),
        "total_services": db.session.query(Service.id).count(),
    }


def _row_limit(limit: Optional[int]) -> int:
    return limit or current_app.config.get("ANALYTICS_ROW_LIMIT", 50)


def analytics(actor: Optional[Actor], limit: Optional[int] = None) -> dict[str, object]:
    """Monthly bookings and revenue, service popularity and headline figures."""
    ensure_admin(actor)
    rows = (
        Booking.query.options(joinedload(Booking.service), selectinload(Booking.payments))
        .order_by(Booking.scheduled_date.desc())
        .limit(_row_limit(limit))
        .all()
    )

    monthly: dict[tuple[int, int], dict[str, object]] = {}
    popularity: Counter[str] = Counter()
    clients: set[int] = set()
    revenue = Decimal("0")

    for booking in rows:
        key = (booking.scheduled_date.year, booking.scheduled_date.month)
        bucket = monthly.setdefault(key, {
            "month": booking.scheduled_date.strftime("%b %Y"),
            "bookings": 0,
            "revenue": Decimal("0"),
        })
        booking_revenue = total_revenue(booking.payments)
        bucket["bookings"] += 1
        bucket["revenue"] += booking_revenue
        revenue += booking_revenue

        if booking.service is not None:
            popularity[booking.service.name] += 1
        clients.add(booking.client_id)

    months = [
        {**monthly[key], "revenue": float(monthly[key]["revenue"])}
        for key in sorted(monthly)
    ][-MONTHS_SHOWN:]

    return {
        "monthly": months,
        "services": [{"name": name, "count": count} for name, count in popularity.most_common()],
        "stats": {
            "total_revenue": float(revenue),
            "total_bookings": len(rows),
            "active_clients": len(clients),
            "avg_booking_value": float(revenue / (len(rows) or 1)),
        },
    }


def recent_bookings(actor: Optional[Actor], limit: int = 10) -> list[Booking]:
    ensure_admin(actor)
    return (
        Booking.query.options(joinedload(Booking.service), joinedload(Booking.client))
        .order_by(Booking.created_at.desc())
        .limit(limit)
        .all()
    )
