"""Stripe gateway used by the payment lifecycle.

Only this module talks to Stripe. It runs server-side with the secret key;
the browser confirms card details itself using the intent's client secret.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping

import stripe

from .errors import ProcessorError

logger = logging.getLogger(__name__)

# Intent states that are neither success nor failure yet.
IN_FLIGHT_STATUSES = frozenset({"processing", "requires_action", "requires_confirmation", "requires_capture"})


@dataclass(frozen=True)
class IntentResult:
    intent_id: str
    client_secret: str
    status: str


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    status: str


def to_minor_units(amount: Decimal) -> int:
    """Dollars to cents, rounding half up."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripeProcessor:
    def __init__(self, secret_key: str, currency: str = "usd") -> None:
        self.secret_key = secret_key
        self.currency = currency

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> "StripeProcessor":
        secret_key = config.get("STRIPE_SECRET_KEY")
        if not secret_key:
            logger.warning("Stripe secret key not configured")
            raise ProcessorError("Payments are not currently available. Please contact support.")
        return cls(str(secret_key), str(config.get("STRIPE_CURRENCY") or "usd"))

    def create_intent(self, amount: Decimal, metadata: dict[str, str]) -> IntentResult:
        stripe.api_key = self.secret_key
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=self.currency,
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
            )
        except stripe.error.StripeError as exc:
            logger.exception("Stripe API error while creating payment intent", exc_info=exc)
            raise ProcessorError("An error occurred while processing the payment.") from exc
        return IntentResult(intent_id=intent.id, client_secret=intent.client_secret, status=intent.status)

    def retrieve_status(self, intent_id: str) -> str:
        stripe.api_key = self.secret_key
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id)
        except stripe.error.StripeError as exc:
            logger.exception("Stripe API error while retrieving payment intent %s", intent_id, exc_info=exc)
            raise ProcessorError("Failed to retrieve payment intent") from exc
        return intent.status

    def refund(self, intent_id: str) -> RefundResult:
        stripe.api_key = self.secret_key
        try:
            refund = stripe.Refund.create(payment_intent=intent_id)
        except stripe.error.StripeError as exc:
            logger.exception("Stripe API error while refunding %s", intent_id, exc_info=exc)
            raise ProcessorError(f"Refund failed: {getattr(exc, 'user_message', None) or exc}") from exc
        logger.info("Stripe refund created: %s", refund.id)
        return RefundResult(refund_id=refund.id, status=refund.status)
