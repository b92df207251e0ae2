from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict

from app.billing.client import BillingProviderError
from app.subscriptions.mode import derive_mode
from app.subscriptions.model import SubscriptionStatus, UserMode
from app.subscriptions.state_machine import SubscriptionStateMachine, apply_mode
from services.observability import log_event

logger = logging.getLogger("memories.reconcile")

SYNC_STATUSES = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAST_DUE,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionReconciler:
    """
    Periodic repair for state webhooks alone cannot fix.

    1. PAST_DUE subscriptions whose grace window elapsed are downgraded to
       RESTRICTED and their grace stamp is cleared.
    2. Optionally every ACTIVE / TRIALING / PAST_DUE row is re-read from
       Stripe and overwritten; a subscription Stripe no longer knows is
       marked CANCELED and its user RESTRICTED.
    """

    def __init__(self, store, billing, *, now: Callable[[], datetime] = _utcnow):
        self.store = store
        self.billing = billing
        self.now = now
        self.state_machine = SubscriptionStateMachine(store, now=now)

    def run(self, *, sync_provider: bool = True) -> Dict[str, int]:
        summary = {"expired_grace_periods": 0, "synced_subscriptions": 0, "errors": 0}
        now = self.now()

        for sub in self.store.list_expired_grace_periods(now):
            try:
                user = self.store.get_user(sub.user_id)
                self.store.clear_grace_period(sub.user_id)
                if user is not None:
                    apply_mode(self.store, user, derive_mode(sub.status, None, now))
                summary["expired_grace_periods"] += 1
                log_event(logger, "reconcile.grace_expired", outcome="restricted", user_id=str(sub.user_id))
            except Exception:
                summary["errors"] += 1
                logger.exception("grace sweep failed user=%s", sub.user_id)

        if sync_provider:
            for sub in self.store.list_subscriptions_by_status(SYNC_STATUSES):
                try:
                    self._sync_one(sub, now)
                    summary["synced_subscriptions"] += 1
                except BillingProviderError as e:
                    summary["errors"] += 1
                    log_event(
                        logger,
                        "reconcile.sync",
                        outcome="provider_error",
                        level=logging.WARNING,
                        subscription_id=sub.provider_subscription_id,
                        error=str(e),
                    )
                except Exception:
                    summary["errors"] += 1
                    logger.exception("subscription sync failed subscription=%s", sub.provider_subscription_id)

        log_event(logger, "reconcile.run", outcome="completed", **summary)
        return summary

    def _sync_one(self, sub, now: datetime) -> None:
        user = self.store.get_user(sub.user_id)
        if user is None:
            return

        provider_sub = self.billing.retrieve_subscription(sub.provider_subscription_id)
        if provider_sub is None:
            self.store.mark_subscription_canceled(user.id, sub.provider_subscription_id, now)
            apply_mode(self.store, user, UserMode.RESTRICTED)
            log_event(
                logger,
                "reconcile.sync",
                outcome="canceled_missing_at_provider",
                user_id=str(user.id),
                subscription_id=sub.provider_subscription_id,
            )
            return

        self.state_machine.upsert_from_provider(provider_sub, user=user)


def run_reconcile(*, sync_provider: bool = True) -> Dict[str, int]:
    from app.billing.client import StripeBillingClient
    from app.store import PgStore

    return SubscriptionReconciler(PgStore(), StripeBillingClient()).run(sync_provider=sync_provider)
