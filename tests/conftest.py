"""pytest configuration and shared fixtures."""
from __future__ import annotations

import sys
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Ensure the project root is available on sys.path so tests can import the app package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from handykonnect import create_app  # noqa: E402
from handykonnect.auth import build_token  # noqa: E402
from handykonnect.extensions import db  # noqa: E402
from handykonnect.models import Booking, Profile, Service  # noqa: E402


class FakeStripeError(Exception):
    """Stands in for ``stripe.error.StripeError`` while the module is patched."""

    def __init__(self, message: str = "card_declined", user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
        "STRIPE_SECRET_KEY": "sk_test_fake",
        "STRIPE_PUBLISHABLE_KEY": "pk_test_fake",
        "RESEND_API_KEY": "re_test",
        "TRANSACTION_ALERT_EMAIL": "ops@example.com",
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def resend_mock():
    with patch("handykonnect.services.email.resend") as mock_resend:
        mock_resend.Emails.send.return_value = {"id": "email_test123"}
        yield mock_resend


@pytest.fixture
def stripe_mock():
    """Mock Stripe API calls."""
    with patch("handykonnect.processor.stripe") as mock_stripe:
        mock_intent = MagicMock()
        mock_intent.id = "pi_test123"
        mock_intent.client_secret = "pi_test123_secret_abc"
        mock_intent.status = "succeeded"

        mock_refund = MagicMock()
        mock_refund.id = "re_test123"
        mock_refund.status = "succeeded"

        mock_stripe.PaymentIntent.create.return_value = mock_intent
        mock_stripe.PaymentIntent.retrieve.return_value = mock_intent
        mock_stripe.Refund.create.return_value = mock_refund
        mock_stripe.error.StripeError = FakeStripeError

        yield mock_stripe


@pytest.fixture
def seed(app):
    """A client, an admin, a $100 service and a pending booking for the client."""
    with app.app_context():
        client_profile = Profile(full_name="Casey Client", email="client@example.com", role="client")
        other_client = Profile(full_name="Olive Other", email="other@example.com", role="client")
        admin = Profile(full_name="Ada Admin", email="admin@example.com", role="admin")
        service = Service(
            name="General Handyman",
            description="Two hours of small repairs",
            price=Decimal("100.00"),
            duration_minutes=120,
        )
        db.session.add_all([client_profile, other_client, admin, service])
        db.session.flush()

        booking = Booking(
            client_id=client_profile.id,
            service_id=service.id,
            scheduled_date=datetime(2026, 11, 2, 15, 0),
            address="12 Elm Street",
            status="pending",
        )
        db.session.add(booking)
        db.session.commit()

        return {
            "client_id": client_profile.id,
            "other_id": other_client.id,
            "admin_id": admin.id,
            "service_id": service.id,
            "booking_id": booking.id,
        }


@pytest.fixture
def auth(app):
    """Return Authorization headers for a profile id."""

    def _headers(user_id: int) -> dict[str, str]:
        with app.app_context():
            token = build_token({"user_id": user_id})
        return {"Authorization": f"Bearer {token}"}

    return _headers
