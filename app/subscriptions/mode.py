# app/subscriptions/mode.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from app.subscriptions.model import SubscriptionStatus, UserMode


FULL_ACCESS_STATUSES = {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING}


def derive_mode(
    status: SubscriptionStatus,
    grace_period_ends_at: Optional[datetime],
    now: datetime,
) -> UserMode:
    """
    Access tier for a subscription snapshot.

    PAST_DUE keeps FULL only while the grace window is strictly in the future.
    """
    if status in FULL_ACCESS_STATUSES:
        return UserMode.FULL

    if status == SubscriptionStatus.PAST_DUE and grace_period_ends_at is not None and grace_period_ends_at > now:
        return UserMode.FULL

    return UserMode.RESTRICTED
