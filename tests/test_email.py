"""Tests for the email endpoints and templates."""
from __future__ import annotations

from handykonnect.email_templates import booking_confirmation_template
from handykonnect.extensions import db
from handykonnect.models import Booking


def test_send_booking_email_reminder(client, seed, auth, resend_mock) -> None:
    response = client.post(
        "/send-booking-email",
        json={"bookingId": seed["booking_id"], "type": "reminder"},
        headers=auth(seed["client_id"]),
    )

    assert response.status_code == 200
    assert response.get_json() == {"success": True, "data": {"id": "email_test123"}}
    sent = resend_mock.Emails.send.call_args.args[0]
    assert sent["to"] == ["client@example.com"]
    assert "General Handyman" in sent["subject"]
    assert resend_mock.api_key == "re_test"


def test_send_booking_email_unknown_type_400(client, seed, auth, resend_mock) -> None:
    response = client.post(
        "/send-booking-email",
        json={"bookingId": seed["booking_id"], "type": "birthday"},
        headers=auth(seed["client_id"]),
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_type"
    resend_mock.Emails.send.assert_not_called()


def test_send_booking_email_other_client_403(client, seed, auth) -> None:
    response = client.post(
        "/send-booking-email",
        json={"bookingId": seed["booking_id"], "type": "update"},
        headers=auth(seed["other_id"]),
    )

    assert response.status_code == 403


def test_send_booking_email_provider_failure_502(client, seed, auth, resend_mock) -> None:
    resend_mock.Emails.send.side_effect = RuntimeError("rate limited")

    response = client.post(
        "/send-booking-email",
        json={"bookingId": seed["booking_id"], "type": "confirmation"},
        headers=auth(seed["client_id"]),
    )

    assert response.status_code == 502
    assert response.get_json()["error"] == "email_error"


def test_send_email_without_api_key_502(app, client, seed, auth) -> None:
    app.config["RESEND_API_KEY"] = None

    response = client.post(
        "/send-booking-email",
        json={"bookingId": seed["booking_id"], "type": "confirmation"},
        headers=auth(seed["client_id"]),
    )

    assert response.status_code == 502


def test_send_payment_receipt(client, seed, auth, resend_mock) -> None:
    created = client.post(
        "/manual-payment",
        json={"booking_id": seed["booking_id"], "method": "bank"},
        headers=auth(seed["client_id"]),
    )
    payment_id = created.get_json()["payment"]["id"]
    resend_mock.Emails.send.reset_mock()

    response = client.post("/send-payment-receipt", json={"paymentId": payment_id}, headers=auth(seed["client_id"]))

    assert response.status_code == 200
    assert resend_mock.Emails.send.call_args.args[0]["to"] == ["client@example.com"]


def test_send_transaction_alert_admin_only(client, seed, auth, resend_mock) -> None:
    payload = {
        "type": "payment",
        "status": "completed",
        "customerName": "Casey Client",
        "customerEmail": "client@example.com",
        "transactionId": "pi_123",
        "amount": 100,
    }

    forbidden = client.post("/send-transaction-alert", json=payload, headers=auth(seed["client_id"]))
    sent = client.post("/send-transaction-alert", json=payload, headers=auth(seed["admin_id"]))
    missing = client.post("/send-transaction-alert", json={"type": "payment"}, headers=auth(seed["admin_id"]))

    assert forbidden.status_code == 403
    assert sent.status_code == 200
    assert resend_mock.Emails.send.call_args.args[0]["to"] == ["ops@example.com"]
    assert missing.status_code == 400


def test_templates_escape_user_content(app, seed) -> None:
    with app.app_context():
        booking = db.session.get(Booking, seed["booking_id"])
        booking.notes = "<script>alert(1)</script>"

        subject, html = booking_confirmation_template(booking)

    assert subject == "Booking Confirmation - General Handyman"
    assert "<script>" not in html
    assert "&lt;script&gt;" in html
