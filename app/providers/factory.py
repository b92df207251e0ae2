

# app/providers/factory.py
from __future__ import annotations

from typing import Dict, Optional

from app.payouts.model import PayoutMethodType
from app.providers.base import PayoutAdapter

_ADAPTER_CACHE: Dict[PayoutMethodType, PayoutAdapter] = {}


def _normalize(method_type) -> Optional[PayoutMethodType]:
    if isinstance(method_type, PayoutMethodType):
        return method_type
    key = (str(method_type or "")).strip().upper().replace("-", "_").replace(" ", "_")
    try:
        return PayoutMethodType(key)
    except ValueError:
        return None


def get_adapter(method_type) -> Optional[PayoutAdapter]:
    key = _normalize(method_type)
    if key is None:
        return None

    if key in _ADAPTER_CACHE:
        return _ADAPTER_CACHE[key]

    if key == PayoutMethodType.GIFT_CARD:
        from app.providers.gift_card import TangoGiftCardAdapter
        adapter = TangoGiftCardAdapter()

    elif key == PayoutMethodType.PAYPAL:
        from app.providers.paypal import PayPalPayoutAdapter
        adapter = PayPalPayoutAdapter()

    elif key == PayoutMethodType.STRIPE_CONNECT:
        from app.providers.stripe_connect import StripeConnectAdapter
        adapter = StripeConnectAdapter()

    else:
        return None

    _ADAPTER_CACHE[key] = adapter
    return adapter


def build_adapters() -> Dict[PayoutMethodType, PayoutAdapter]:
    """Registry of every rail, keyed by payout method type."""
    return {t: get_adapter(t) for t in PayoutMethodType}


def clear_cache() -> None:
    _ADAPTER_CACHE.clear()
