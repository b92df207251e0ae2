# app/billing/client.py
from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol

import stripe

from settings import settings
from app.webhooks.errors import WebhookSignatureError

logger = logging.getLogger("memories.billing")


class BillingProviderError(Exception):
    """Outbound call to the billing provider failed."""


class BillingClient(Protocol):
    def construct_event(self, payload: bytes, signature: str | None) -> dict[str, Any]: ...
    def retrieve_subscription(self, subscription_id: str) -> Optional[dict[str, Any]]: ...


def _plain(obj: Any) -> dict[str, Any]:
    # StripeObject -> plain nested dicts
    return json.loads(str(obj))


class StripeBillingClient:
    def __init__(
        self,
        *,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        tolerance_s: int | None = None,
    ):
        self.api_key = (api_key if api_key is not None else settings.STRIPE_SECRET).strip()
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        ).strip()
        self.tolerance_s = int(tolerance_s if tolerance_s is not None else settings.STRIPE_WEBHOOK_TOLERANCE_S)

    def construct_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        Verify the Stripe-Signature header and return the event envelope.

        Raises WebhookSignatureError on any verification problem (missing secret,
        missing header, bad HMAC, stale timestamp) and ValueError on a body that
        is not JSON.
        """
        if not self.webhook_secret:
            raise WebhookSignatureError("STRIPE_WEBHOOK_SECRET is not set")
        if not signature:
            raise WebhookSignatureError("missing Stripe-Signature header")

        try:
            stripe.Webhook.construct_event(
                payload,
                signature,
                self.webhook_secret,
                tolerance=self.tolerance_s,
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(str(e)) from e

        return json.loads(payload.decode("utf-8"))

    def retrieve_subscription(self, subscription_id: str) -> Optional[dict[str, Any]]:
        """Returns None when Stripe no longer knows the subscription."""
        try:
            sub = stripe.Subscription.retrieve(subscription_id, api_key=self.api_key or None)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                return None
            raise BillingProviderError(str(e)) from e
        except stripe.StripeError as e:
            logger.warning("stripe subscription retrieve failed id=%s err=%s", subscription_id, e)
            raise BillingProviderError(str(e)) from e
        return _plain(sub)
