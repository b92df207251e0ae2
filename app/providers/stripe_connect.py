# app/providers/stripe_connect.py
from __future__ import annotations

import logging
from typing import Any

import stripe

from settings import settings
from app.providers.base import PayoutResult

logger = logging.getLogger("memories.providers.stripe_connect")


class StripeConnectAdapter:
    """
    Bank transfer through a connected Stripe account.

    details: {"accountId": "acct_..."}; the reference doubles as the
    idempotency key so a retried attempt id never moves money twice.
    """

    def __init__(self, *, api_key: str | None = None):
        self.api_key = (api_key if api_key is not None else settings.STRIPE_SECRET).strip()

    def process(self, details: dict[str, Any], amount_minor: int, currency: str, *, reference: str) -> PayoutResult:
        account_id = (details.get("accountId") or "").strip()
        if not account_id:
            return PayoutResult.failed("STRIPE_ACCOUNT_ID_MISSING")
        if int(amount_minor) <= 0:
            return PayoutResult.failed("INVALID_AMOUNT")
        if not self.api_key:
            return PayoutResult.failed("STRIPE_SECRET_NOT_SET")

        try:
            transfer = stripe.Transfer.create(
                amount=int(amount_minor),
                currency=(currency or "usd").lower(),
                destination=account_id,
                metadata={"reference": reference},
                idempotency_key=reference,
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.warning("stripe transfer failed reference=%s err=%s", reference, e)
            return PayoutResult.failed(str(e) or e.__class__.__name__)

        return PayoutResult.ok(transfer.id)
