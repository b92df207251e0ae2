# app/providers/gift_card.py
from __future__ import annotations

import base64
import logging
import uuid
from typing import Any, Optional

from app.providers.base import PayoutResult, minor_to_decimal
from app.providers.config import TangoConfig, http_timeout_s, tango_config
from app.providers.http import HttpClient
from services.redaction import redact_text

logger = logging.getLogger("memories.providers.gift_card")


class TangoGiftCardAdapter:
    """
    Gift card rail (Tango RaaS v2, POST /orders).

    details: {"email": "...", "firstName"?: "...", "lastName"?: "..."}
    In sandbox mode no order is placed and a simulated id is returned.
    """

    def __init__(self, *, config: Optional[TangoConfig] = None, http: Optional[HttpClient] = None):
        self.config = config or tango_config()
        self._http = http

    @property
    def http(self) -> HttpClient:
        if self._http is None:
            self._http = HttpClient(timeout_s=http_timeout_s())
        return self._http

    def _headers(self) -> dict[str, str]:
        raw = f"{self.config.platform_name}:{self.config.platform_key}".encode("utf-8")
        return {
            "Content-Type": "application/json",
            "Authorization": "Basic " + base64.b64encode(raw).decode("ascii"),
        }

    def process(self, details: dict[str, Any], amount_minor: int, currency: str, *, reference: str) -> PayoutResult:
        email = (details.get("email") or "").strip()
        if not email:
            return PayoutResult.failed("GIFT_CARD_EMAIL_MISSING")
        if int(amount_minor) <= 0:
            return PayoutResult.failed("INVALID_AMOUNT")

        if self.config.mode != "real":
            logger.info("gift card sandbox payout reference=%s email=%s", reference, redact_text(email))
            return PayoutResult.ok(f"gc_sandbox_{uuid.uuid4().hex}")

        missing = self.config.missing()
        if missing:
            return PayoutResult.failed("TANGO_NOT_CONFIGURED:" + ",".join(missing))

        body = {
            "accountIdentifier": self.config.account_identifier,
            "customerIdentifier": self.config.customer_identifier,
            "utid": self.config.utid,
            "amount": float(minor_to_decimal(amount_minor)),
            "externalRefID": reference,
            "sendEmail": True,
            "recipient": {
                "email": email,
                "firstName": details.get("firstName") or "Memories",
                "lastName": details.get("lastName") or "Member",
            },
            "sender": {"firstName": "Memories", "lastName": "Rewards"},
        }

        url = f"{self.config.base_url}/orders"
        try:
            resp = self.http.post(url, headers=self._headers(), json_body=body)
        except Exception as e:
            logger.warning("tango order failed reference=%s err=%s", reference, e)
            return PayoutResult.failed(f"TANGO_REQUEST_FAILED: {e}")

        data = resp.json if isinstance(resp.json, dict) else {}
        if not resp.ok:
            msg = data.get("message") or data.get("error")
            return PayoutResult.failed(f"TANGO_HTTP_{resp.status_code}: {msg or resp.text[:200]}")

        order_id = data.get("referenceOrderID")
        if not order_id:
            return PayoutResult.failed("TANGO_ORDER_MISSING_ID")
        return PayoutResult.ok(str(order_id))
