# app/providers/paypal.py
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

import requests

from app.providers.base import PayoutResult, minor_to_decimal
from app.providers.config import PayPalConfig, http_timeout_s, paypal_config
from services.redaction import redact_text

logger = logging.getLogger("memories.providers.paypal")


def _safe_json(resp: requests.Response) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class PayPalPayoutAdapter:
    """
    PayPal wallet rail: OAuth client-credentials token, then one
    POST /v1/payments/payouts batch holding a single item.

    details: {"email": "..."}
    """

    def __init__(self, *, config: Optional[PayPalConfig] = None):
        self.config = config or paypal_config()
        self.timeout_s = http_timeout_s()

    def _access_token(self) -> str:
        resp = requests.post(
            f"{self.config.base_url}/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
            auth=(self.config.client_id, self.config.client_secret),
            timeout=self.timeout_s,
        )
        data = _safe_json(resp)
        token = data.get("access_token")
        if resp.status_code != 200 or not token:
            raise RuntimeError(f"PAYPAL_AUTH_FAILED_HTTP_{resp.status_code}")
        return token

    def process(self, details: dict[str, Any], amount_minor: int, currency: str, *, reference: str) -> PayoutResult:
        email = (details.get("email") or "").strip()
        if not email:
            return PayoutResult.failed("PAYPAL_EMAIL_MISSING")
        if int(amount_minor) <= 0:
            return PayoutResult.failed("INVALID_AMOUNT")

        if self.config.mode != "real":
            logger.info("paypal sandbox payout reference=%s email=%s", reference, redact_text(email))
            return PayoutResult.ok(f"pp_sandbox_{uuid.uuid4().hex}")

        if not (self.config.base_url and self.config.client_id and self.config.client_secret):
            return PayoutResult.failed("PAYPAL_NOT_CONFIGURED")

        body = {
            "sender_batch_header": {
                "sender_batch_id": reference,
                "email_subject": "You have a referral reward",
            },
            "items": [
                {
                    "recipient_type": "EMAIL",
                    "receiver": email,
                    "sender_item_id": reference,
                    "amount": {
                        "value": minor_to_decimal(amount_minor),
                        "currency": (currency or "usd").upper(),
                    },
                }
            ],
        }

        try:
            token = self._access_token()
            resp = requests.post(
                f"{self.config.base_url}/v1/payments/payouts",
                json=body,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {token}",
                },
                timeout=self.timeout_s,
            )
        except (requests.RequestException, RuntimeError) as e:
            logger.warning("paypal payout failed reference=%s err=%s", reference, e)
            return PayoutResult.failed(str(e))

        data = _safe_json(resp)
        if resp.status_code not in (200, 201):
            return PayoutResult.failed(
                f"PAYPAL_HTTP_{resp.status_code}: {data.get('name') or data.get('message') or resp.text[:200]}"
            )

        batch_id = (data.get("batch_header") or {}).get("payout_batch_id")
        if not batch_id:
            return PayoutResult.failed("PAYPAL_BATCH_MISSING_ID")
        return PayoutResult.ok(str(batch_id))
