"""Stripe PaymentIntent client.

The browser confirms the card payment with the returned client secret; the
ledger entry is written only when the client later posts the confirmed
transaction to ``/api/save-payment``.
"""
import logging
import math

import stripe

import config
from errors import GatewayError, InvalidInput

logger = logging.getLogger(__name__)

stripe.max_network_retries = 0


class PaymentGateway:

    def __init__(self, api_key=None, currency=None):
        self.api_key = api_key or config.STRIPE_SECRET_KEY
        self.currency = currency or config.PAYMENT_CURRENCY

    def create_intent(self, amount: float) -> str:
        if amount is None or not math.isfinite(amount) or amount <= 0:
            raise InvalidInput("Amount must be a positive number")
        if not self.api_key:
            raise GatewayError("Payment gateway not configured")
        # smallest currency unit
        cents = int(round(amount * 100))
        try:
            intent = stripe.PaymentIntent.create(
                amount=cents,
                currency=self.currency,
                payment_method_types=["card"],
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.error("PaymentIntent creation failed: %s", e)
            raise GatewayError()
        return intent["client_secret"]


def get_gateway() -> PaymentGateway:
    return PaymentGateway()
