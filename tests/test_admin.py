"""Tests for the admin dashboard and analytics."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from handykonnect.extensions import db
from handykonnect.models import Booking, Payment, Service
from handykonnect.services.analytics import total_revenue


def _add_booking(client_id, service_id, when, payment_status=None, amount="100.00"):
    booking = Booking(client_id=client_id, service_id=service_id, scheduled_date=when, address="1 Test Ln")
    db.session.add(booking)
    db.session.flush()
    if payment_status:
        db.session.add(Payment(
            booking_id=booking.id,
            client_id=client_id,
            amount=Decimal(amount),
            method="card",
            status=payment_status,
        ))
    return booking


def test_total_revenue_counts_completed_only() -> None:
    payments = [
        Payment(amount=Decimal("100.00"), status="completed"),
        Payment(amount=Decimal("40.00"), status="pending"),
        Payment(amount=Decimal("60.00"), status="failed"),
        Payment(amount=Decimal("25.00"), status="refunded"),
        Payment(amount=Decimal("12.50"), status="completed"),
    ]

    assert total_revenue(payments) == Decimal("112.50")


def test_admin_stats(client, app, seed, auth) -> None:
    with app.app_context():
        _add_booking(seed["client_id"], seed["service_id"], datetime(2026, 10, 1, 9), "completed")
        db.session.commit()

    response = client.get("/admin/stats", headers=auth(seed["admin_id"]))

    assert response.status_code == 200
    data = response.get_json()
    assert data["stats"] == {
        "total_bookings": 2,
        "total_revenue": 100.0,
        "total_clients": 2,
        "total_services": 1,
    }
    assert len(data["recent_bookings"]) == 2


def test_admin_stats_forbidden_for_clients(client, seed, auth) -> None:
    response = client.get("/admin/stats", headers=auth(seed["client_id"]))

    assert response.status_code == 403


def test_analytics_rollups(client, app, seed, auth) -> None:
    with app.app_context():
        extra = Service(name="Painting", price=Decimal("300.00"), duration_minutes=240)
        db.session.add(extra)
        db.session.flush()
        _add_booking(seed["client_id"], seed["service_id"], datetime(2026, 9, 5, 9), "completed")
        _add_booking(seed["other_id"], seed["service_id"], datetime(2026, 10, 5, 9), "refunded")
        _add_booking(seed["other_id"], extra.id, datetime(2026, 10, 7, 9), "completed", "300.00")
        db.session.commit()

    response = client.get("/admin/analytics", headers=auth(seed["admin_id"]))

    assert response.status_code == 200
    data = response.get_json()
    assert [row["month"] for row in data["monthly"]] == ["Sep 2026", "Oct 2026", "Nov 2026"]
    assert [row["revenue"] for row in data["monthly"]] == [100.0, 300.0, 0.0]
    assert data["services"][0] == {"name": "General Handyman", "count": 3}
    assert data["stats"]["total_revenue"] == 400.0
    assert data["stats"]["total_bookings"] == 4
    assert data["stats"]["active_clients"] == 2
    assert data["stats"]["avg_booking_value"] == 100.0


def test_analytics_row_limit(client, app, seed, auth) -> None:
    with app.app_context():
        for day in range(1, 6):
            _add_booking(seed["client_id"], seed["service_id"], datetime(2026, 8, day, 9))
        db.session.commit()

    response = client.get("/admin/analytics?limit=2", headers=auth(seed["admin_id"]))
    bad = client.get("/admin/analytics?limit=abc", headers=auth(seed["admin_id"]))

    assert response.get_json()["stats"]["total_bookings"] == 2
    assert bad.status_code == 400
