"""Stripe bridge used to pay out approved refund requests."""

import stripe
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from core.config import config as settings
from core.logging import get_logger

logger = get_logger(__name__)

# Initialize Stripe
stripe.api_key = settings.STRIPE_SECRET_KEY


class StripeService:
    """Service for interacting with Stripe API."""

    # ============== Refunds ==============

    @staticmethod
    async def create_refund(
        payment_intent_id: str,
        amount_cents: int = None,
        metadata: dict = None,
        idempotency_key: Optional[str] = None,
    ) -> dict:
        """Create a refund for a payment.

        ``idempotency_key`` lets a retried payout reuse the first refund
        instead of paying twice.
        """
        try:
            refund_params = {"payment_intent": payment_intent_id}
            if amount_cents:
                refund_params["amount"] = amount_cents
            if metadata:
                refund_params["metadata"] = metadata
            if idempotency_key:
                refund_params["idempotency_key"] = idempotency_key

            refund = stripe.Refund.create(**refund_params)
            logger.info(f"Created refund: {refund.id}")

            return {
                "id": refund.id,
                "status": refund.status,
                "amount": refund.amount,
            }
        except stripe.StripeError as e:
            logger.error(f"Failed to create refund: {e}")
            raise

    # ============== Utilities ==============

    @staticmethod
    def to_cents(amount: Decimal) -> int:
        """Convert a currency amount to the smallest unit for Stripe."""
        return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
