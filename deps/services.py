

# deps/services.py
from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable

from fastapi import Depends

from app.billing.client import StripeBillingClient
from app.providers.factory import build_adapters
from app.store import PgStore
from app.webhooks.processor import WebhookEventProcessor
from app.workers.payout_worker import PayoutScheduler
from services.payout_admin import PayoutAdminService
from services.reconcile import SubscriptionReconciler


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_clock() -> Callable[[], datetime]:
    return _utcnow


@lru_cache(maxsize=1)
def get_store() -> PgStore:
    return PgStore()


def get_billing_client() -> StripeBillingClient:
    return StripeBillingClient()


def get_adapters():
    return build_adapters()


def get_webhook_processor(
    store=Depends(get_store),
    billing=Depends(get_billing_client),
    now=Depends(get_clock),
) -> WebhookEventProcessor:
    return WebhookEventProcessor(store, billing, now=now)


def get_payout_scheduler(
    store=Depends(get_store),
    adapters=Depends(get_adapters),
    now=Depends(get_clock),
) -> PayoutScheduler:
    return PayoutScheduler(store, adapters, now=now)


def get_payout_admin(
    store=Depends(get_store),
    scheduler=Depends(get_payout_scheduler),
    now=Depends(get_clock),
) -> PayoutAdminService:
    return PayoutAdminService(store, scheduler, now=now)


def get_reconciler(
    store=Depends(get_store),
    billing=Depends(get_billing_client),
    now=Depends(get_clock),
) -> SubscriptionReconciler:
    return SubscriptionReconciler(store, billing, now=now)
