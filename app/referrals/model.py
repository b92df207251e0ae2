from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID


class ReferralStatus(str, Enum):
    PENDING = "PENDING"
    QUALIFIED = "QUALIFIED"
    PAID = "PAID"
    CANCELED = "CANCELED"


@dataclass(frozen=True)
class Referral:
    id: UUID
    referrer_id: UUID
    referee_id: UUID
    status: ReferralStatus
    qualified_at: Optional[datetime]
    scheduled_payout_at: Optional[datetime]
    payout_attempts: int
    next_attempt_at: Optional[datetime]
    created_at: datetime
