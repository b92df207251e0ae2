

# schemas.py
from __future__ import annotations

from pydantic import BaseModel, Field
from typing import Any, Dict, Optional

from app.payouts.model import PayoutMethodType


# -------- PAYOUT METHODS --------
REQUIRED_DETAIL_KEYS: Dict[PayoutMethodType, str] = {
    PayoutMethodType.PAYPAL: "email",
    PayoutMethodType.GIFT_CARD: "email",
    PayoutMethodType.STRIPE_CONNECT: "accountId",
}


def missing_detail_key(method_type: PayoutMethodType, details: Dict[str, Any]) -> Optional[str]:
    key = REQUIRED_DETAIL_KEYS[method_type]
    value = details.get(key)
    if not isinstance(value, str) or not value.strip():
        return key
    return None


class PayoutMethodCreate(BaseModel):
    type: PayoutMethodType
    details: Dict[str, Any] = Field(default_factory=dict)
    is_default: bool = Field(default=False, alias="setAsDefault")

    model_config = {"populate_by_name": True}


class PayoutMethodUpdate(BaseModel):
    details: Optional[Dict[str, Any]] = None
    is_default: Optional[bool] = Field(default=None, alias="setAsDefault")
    is_active: Optional[bool] = Field(default=None, alias="isActive")

    model_config = {"populate_by_name": True}



# -------- RESPONSE SHAPES --------
def _iso(value):
    return value.isoformat() if value is not None else None


def referral_to_dict(r) -> Dict[str, Any]:
    return {
        "id": str(r.id),
        "referrer_id": str(r.referrer_id),
        "referee_id": str(r.referee_id),
        "status": r.status.value,
        "qualified_at": _iso(r.qualified_at),
        "scheduled_payout_at": _iso(r.scheduled_payout_at),
        "payout_attempts": r.payout_attempts,
        "next_attempt_at": _iso(r.next_attempt_at),
        "created_at": _iso(r.created_at),
    }


def payout_to_dict(p) -> Dict[str, Any]:
    return {
        "id": str(p.id),
        "amount": p.amount,
        "currency": p.currency,
        "status": p.status,
        "referral_id": str(p.referral_id) if p.referral_id else None,
        "payout_method_id": str(p.payout_method_id) if p.payout_method_id else None,
        "provider_payout_id": p.provider_payout_id,
        "failure_reason": p.failure_reason,
        "created_at": _iso(p.created_at),
    }


def payout_method_to_dict(m) -> Dict[str, Any]:
    return {
        "id": str(m.id),
        "type": m.type.value,
        "details": dict(m.details),
        "is_active": m.is_active,
        "is_default": m.is_default,
        "created_at": _iso(m.created_at),
    }
