# app/referrals/qualification.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from app.referrals.model import Referral, ReferralStatus
from app.referrals.state_machine import PAYOUT_DELAY
from app.subscriptions.model import Subscription, SubscriptionStatus, User
from services.observability import log_event

logger = logging.getLogger("memories.referrals")


class ReferralQualificationEngine:
    """
    Creates the referral for a referred user on their first successful
    payment and starts the payout cool-down once their subscription is ACTIVE.
    """

    def __init__(self, store, *, now: Callable[[], datetime], payout_delay: timedelta = PAYOUT_DELAY):
        self.store = store
        self.now = now
        self.payout_delay = payout_delay

    def on_payment_succeeded(self, user: User, subscription: Optional[Subscription]) -> Optional[Referral]:
        if user.referred_by is None:
            return None

        if user.referred_by == user.id:
            log_event(logger, "referral.qualify", outcome="ignored_self_referral", user_id=str(user.id))
            return None

        referral = self.store.get_or_create_referral(user.referred_by, user.id)

        if referral.status != ReferralStatus.PENDING:
            log_event(
                logger,
                "referral.qualify",
                outcome="already_" + referral.status.value.lower(),
                referral_id=str(referral.id),
            )
            return referral

        if subscription is None or subscription.status != SubscriptionStatus.ACTIVE:
            log_event(
                logger,
                "referral.qualify",
                outcome="pending_subscription_not_active",
                referral_id=str(referral.id),
                subscription_status=subscription.status.value if subscription else None,
            )
            return referral

        qualified_at = self.now()
        scheduled_payout_at = qualified_at + self.payout_delay

        if not self.store.qualify_referral(referral.id, qualified_at, scheduled_payout_at):
            # another delivery qualified it first
            log_event(logger, "referral.qualify", outcome="lost_race", referral_id=str(referral.id))
            return self.store.get_referral(referral.id)

        log_event(
            logger,
            "referral.qualify",
            outcome="qualified",
            referral_id=str(referral.id),
            referrer_id=str(referral.referrer_id),
            scheduled_payout_at=scheduled_payout_at.isoformat(),
        )
        return self.store.get_referral(referral.id)
