# app/subscriptions/state_machine.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from app.subscriptions.mode import derive_mode
from app.subscriptions.model import (
    Subscription,
    SubscriptionFields,
    SubscriptionStatus,
    User,
    UserMode,
)
from services.observability import log_event

logger = logging.getLogger("memories.subscriptions")

# window a PAST_DUE subscription keeps FULL access after a failed charge
GRACE_PERIOD = timedelta(days=7)

STATUS_MAP: dict[str, SubscriptionStatus] = {
    "incomplete": SubscriptionStatus.INCOMPLETE,
    "incomplete_expired": SubscriptionStatus.INCOMPLETE_EXPIRED,
    "trialing": SubscriptionStatus.TRIALING,
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "unpaid": SubscriptionStatus.UNPAID,
    "paused": SubscriptionStatus.PAUSED,
}


def map_provider_status(raw: Any) -> SubscriptionStatus:
    """Unknown or missing statuses resolve to CANCELED instead of raising."""
    key = (raw or "").strip().lower() if isinstance(raw, str) else ""
    return STATUS_MAP.get(key, SubscriptionStatus.CANCELED)


def _ts(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _ref_id(value: Any) -> Optional[str]:
    # stripe sends either the id or the expanded object
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def _first_item(provider_sub: dict[str, Any]) -> dict[str, Any]:
    items = (provider_sub.get("items") or {}).get("data") or []
    return items[0] if items and isinstance(items[0], dict) else {}


def subscription_fields(provider_sub: dict[str, Any]) -> SubscriptionFields:
    """
    Flatten a Stripe subscription object into the stored snapshot.

    Newer Stripe API versions moved current_period_* onto the subscription
    items, so the first item is used when the top-level keys are absent.
    """
    item = _first_item(provider_sub)
    price = item.get("price") or {}

    period_start = provider_sub.get("current_period_start")
    if period_start is None:
        period_start = item.get("current_period_start")
    period_end = provider_sub.get("current_period_end")
    if period_end is None:
        period_end = item.get("current_period_end")

    return SubscriptionFields(
        provider_subscription_id=provider_sub["id"],
        provider_customer_id=_ref_id(provider_sub.get("customer")) or "",
        status=map_provider_status(provider_sub.get("status")),
        plan=(price.get("id") if isinstance(price, dict) else None) or "unknown",
        current_period_start=_ts(period_start),
        current_period_end=_ts(period_end),
        trial_start=_ts(provider_sub.get("trial_start")),
        trial_end=_ts(provider_sub.get("trial_end")),
        cancel_at_period_end=bool(provider_sub.get("cancel_at_period_end")),
        canceled_at=_ts(provider_sub.get("canceled_at")),
    )


def apply_mode(store, user: User, mode: UserMode) -> bool:
    """Persist the mode only when it differs from what the user already has."""
    if user.mode == mode:
        return False
    store.set_user_mode(user.id, mode)
    log_event(
        logger,
        "user.mode_changed",
        outcome="updated",
        user_id=str(user.id),
        old_mode=user.mode.value,
        new_mode=mode.value,
    )
    return True


class SubscriptionStateMachine:
    def __init__(self, store, *, now: Callable[[], datetime]):
        self.store = store
        self.now = now

    def refresh_mode(self, user: User, subscription: Optional[Subscription]) -> UserMode:
        if subscription is None:
            return user.mode
        mode = derive_mode(subscription.status, subscription.grace_period_ends_at, self.now())
        apply_mode(self.store, user, mode)
        return mode

    def upsert_from_provider(
        self,
        provider_sub: dict[str, Any],
        *,
        user: Optional[User] = None,
    ) -> Optional[Subscription]:
        """
        Overwrite the local snapshot with the provider's current truth and
        re-derive the user's mode. Returns None when no local user owns the
        provider customer.
        """
        fields = subscription_fields(provider_sub)

        if user is None:
            user = self.store.get_user_by_customer_id(fields.provider_customer_id) if fields.provider_customer_id else None
        if user is None:
            log_event(
                logger,
                "subscription.upsert",
                outcome="ignored_unknown_customer",
                customer_id=fields.provider_customer_id,
                subscription_id=fields.provider_subscription_id,
            )
            return None

        subscription = self.store.upsert_subscription(user.id, fields)
        self.refresh_mode(user, subscription)

        log_event(
            logger,
            "subscription.upsert",
            outcome="applied",
            user_id=str(user.id),
            subscription_id=fields.provider_subscription_id,
            status=subscription.status.value,
        )
        return subscription
