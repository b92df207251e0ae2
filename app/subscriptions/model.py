from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID


class SubscriptionStatus(str, Enum):
    INCOMPLETE = "INCOMPLETE"
    INCOMPLETE_EXPIRED = "INCOMPLETE_EXPIRED"
    TRIALING = "TRIALING"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"
    UNPAID = "UNPAID"
    PAUSED = "PAUSED"


class UserMode(str, Enum):
    FULL = "FULL"
    RESTRICTED = "RESTRICTED"


@dataclass(frozen=True)
class User:
    id: UUID
    email: str
    name: Optional[str]
    mode: UserMode
    payment_customer_id: Optional[str]
    referred_by: Optional[UUID]


@dataclass(frozen=True)
class SubscriptionFields:
    """Provider snapshot of a subscription; written as a whole on every upsert."""
    provider_subscription_id: str
    provider_customer_id: str
    status: SubscriptionStatus
    plan: str
    current_period_start: Optional[datetime]
    current_period_end: Optional[datetime]
    trial_start: Optional[datetime]
    trial_end: Optional[datetime]
    cancel_at_period_end: bool
    canceled_at: Optional[datetime]


@dataclass(frozen=True)
class Subscription:
    id: UUID
    user_id: UUID
    provider_subscription_id: str
    provider_customer_id: str
    status: SubscriptionStatus
    plan: str
    current_period_start: Optional[datetime]
    current_period_end: Optional[datetime]
    trial_start: Optional[datetime]
    trial_end: Optional[datetime]
    cancel_at_period_end: bool
    canceled_at: Optional[datetime]
    grace_period_ends_at: Optional[datetime]
