"""Environment-driven configuration for the Handykonnect backend."""
from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")

    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///handykonnect.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Stripe: the secret key never leaves the server, the publishable key is
    # handed to the browser so it can mount the card element.
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY")
    STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", "usd")

    # Resend email delivery
    RESEND_API_KEY = os.getenv("RESEND_API_KEY")
    EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Handykonnect <onboarding@resend.dev>")
    TRANSACTION_ALERT_EMAIL = os.getenv("TRANSACTION_ALERT_EMAIL", "ops@handykonnect.com")

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

    TOKEN_MAX_AGE = _int_env("TOKEN_MAX_AGE", 86400)
    ANALYTICS_ROW_LIMIT = _int_env("ANALYTICS_ROW_LIMIT", 50)
    INVITATION_TTL_DAYS = _int_env("INVITATION_TTL_DAYS", 7)
    REALTIME_KEEPALIVE_SECONDS = _int_env("REALTIME_KEEPALIVE_SECONDS", 15)
