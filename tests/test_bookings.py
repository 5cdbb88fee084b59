"""Tests for the booking lifecycle."""
from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from handykonnect.auth import Actor
from handykonnect.errors import InvalidTransition
from handykonnect.extensions import db
from handykonnect.models import Booking, Service
from handykonnect.services import bookings


def test_create_booking_201(client, seed, auth, resend_mock) -> None:
    response = client.post(
        "/bookings",
        json={
            "service_id": seed["service_id"],
            "scheduled_date": "2026-12-01T10:00:00Z",
            "address": "1 Main St",
            "notes": "Ring twice",
        },
        headers=auth(seed["client_id"]),
    )

    assert response.status_code == 201
    booking = response.get_json()["booking"]
    assert booking["status"] == "pending"
    assert booking["client_id"] == seed["client_id"]
    assert booking["scheduled_date"] == "2026-12-01T10:00:00"
    # client confirmation plus the operations alert
    assert resend_mock.Emails.send.call_count == 2


def test_create_booking_requires_auth(client, seed) -> None:
    response = client.post(
        "/bookings",
        json={"service_id": seed["service_id"], "scheduled_date": "2026-12-01T10:00:00", "address": "x"},
    )

    assert response.status_code == 401


def test_create_booking_missing_fields_400(client, seed, auth) -> None:
    response = client.post("/bookings", json={"service_id": seed["service_id"]}, headers=auth(seed["client_id"]))

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"


def test_create_booking_bad_date_400(client, seed, auth) -> None:
    response = client.post(
        "/bookings",
        json={"service_id": seed["service_id"], "scheduled_date": "next tuesday", "address": "1 Main St"},
        headers=auth(seed["client_id"]),
    )

    assert response.status_code == 400


def test_create_booking_inactive_service(client, app, seed, auth) -> None:
    with app.app_context():
        db.session.get(Service, seed["service_id"]).is_active = False
        db.session.commit()

    response = client.post(
        "/bookings",
        json={"service_id": seed["service_id"], "scheduled_date": "2026-12-01T10:00:00", "address": "1 Main St"},
        headers=auth(seed["client_id"]),
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "service_inactive"


def test_create_booking_survives_email_failure(client, seed, auth, resend_mock) -> None:
    resend_mock.Emails.send.side_effect = RuntimeError("provider down")

    response = client.post(
        "/bookings",
        json={"service_id": seed["service_id"], "scheduled_date": "2026-12-01T10:00:00", "address": "1 Main St"},
        headers=auth(seed["client_id"]),
    )

    assert response.status_code == 201


def test_list_bookings_scoped_to_client(client, app, seed, auth) -> None:
    with app.app_context():
        booking = db.session.get(Booking, seed["booking_id"])
        db.session.add(Booking(
            client_id=seed["other_id"],
            service_id=seed["service_id"],
            scheduled_date=booking.scheduled_date,
            address="99 Other Rd",
        ))
        db.session.commit()

    mine = client.get("/bookings", headers=auth(seed["client_id"])).get_json()["bookings"]
    everyone = client.get("/bookings", headers=auth(seed["admin_id"])).get_json()["bookings"]

    assert [row["id"] for row in mine] == [seed["booking_id"]]
    assert len(everyone) == 2


def test_get_other_clients_booking_403(client, seed, auth) -> None:
    response = client.get(f"/bookings/{seed['booking_id']}", headers=auth(seed["other_id"]))

    assert response.status_code == 403


def test_get_booking_lists_allowed_transitions(client, seed, auth) -> None:
    response = client.get(f"/bookings/{seed['booking_id']}", headers=auth(seed["client_id"]))

    booking = response.get_json()["booking"]
    assert booking["allowed_transitions"] == ["cancelled", "confirmed"]
    assert booking["payments"] == []


def test_admin_walks_booking_through_lifecycle(client, seed, auth) -> None:
    headers = auth(seed["admin_id"])
    url = f"/bookings/{seed['booking_id']}/status"

    for status in ("confirmed", "in_progress", "completed"):
        response = client.put(url, json={"status": status}, headers=headers)
        assert response.status_code == 200
        assert response.get_json()["booking"]["status"] == status


def test_illegal_transition_409(client, app, seed, auth) -> None:
    response = client.put(
        f"/bookings/{seed['booking_id']}/status",
        json={"status": "completed"},
        headers=auth(seed["admin_id"]),
    )

    assert response.status_code == 409
    assert response.get_json()["error"] == "invalid_transition"
    with app.app_context():
        assert db.session.get(Booking, seed["booking_id"]).status == "pending"


def test_unknown_status_400(client, seed, auth) -> None:
    response = client.put(
        f"/bookings/{seed['booking_id']}/status",
        json={"status": "teleported"},
        headers=auth(seed["admin_id"]),
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_status"


def test_client_cannot_change_status(client, seed, auth) -> None:
    response = client.put(
        f"/bookings/{seed['booking_id']}/status",
        json={"status": "confirmed"},
        headers=auth(seed["client_id"]),
    )

    assert response.status_code == 403


def test_terminal_states_have_no_exits() -> None:
    assert bookings.allowed_transitions("completed") == []
    assert bookings.allowed_transitions("cancelled") == []
    assert bookings.can_transition("in_progress", "cancelled")
    assert not bookings.can_transition("cancelled", "pending")


def test_payment_source_only_confirms(app, seed) -> None:
    actor = Actor(id=seed["client_id"], role="client")
    with app.app_context():
        booking = db.session.get(Booking, seed["booking_id"])
        with pytest.raises(InvalidTransition):
            bookings.transition(booking, "cancelled", actor, bookings.TransitionSource.PAYMENT)


def test_refund_source_cancels_completed_booking(app, seed) -> None:
    admin = Actor(id=seed["admin_id"], role="admin")
    with app.app_context():
        booking = db.session.get(Booking, seed["booking_id"])
        booking.status = "completed"
        db.session.commit()

        bookings.transition(booking, "cancelled", admin, bookings.TransitionSource.REFUND)

        assert db.session.get(Booking, seed["booking_id"]).status == "cancelled"


def test_calendar_window(client, seed, auth) -> None:
    headers = auth(seed["client_id"])

    inside = client.get("/bookings/calendar?start=2026-11-01T00:00:00Z&end=2026-12-01T00:00:00Z", headers=headers)
    outside = client.get("/bookings/calendar?start=2026-12-01T00:00:00Z&end=2027-01-01T00:00:00Z", headers=headers)
    missing = client.get("/bookings/calendar", headers=headers)

    assert [row["id"] for row in inside.get_json()["bookings"]] == [seed["booking_id"]]
    assert outside.get_json()["bookings"] == []
    assert missing.status_code == 400


def test_concurrent_status_writes_last_commit_wins(app, seed) -> None:
    admin = Actor(id=seed["admin_id"], role="admin")
    with app.app_context():
        first = Session(db.engine)
        second = Session(db.engine)
        try:
            booking_a = first.get(Booking, seed["booking_id"])
            booking_b = second.get(Booking, seed["booking_id"])
            assert booking_a.status == booking_b.status == "pending"

            bookings.transition(booking_a, "confirmed", admin)
            # second writer still sees "pending" and its edge is legal from there
            bookings.transition(booking_b, "cancelled", admin)
        finally:
            first.close()
            second.close()

        db.session.expire_all()
        assert db.session.get(Booking, seed["booking_id"]).status == "cancelled"
