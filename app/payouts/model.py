from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID


class PayoutMethodType(str, Enum):
    GIFT_CARD = "GIFT_CARD"
    PAYPAL = "PAYPAL"
    STRIPE_CONNECT = "STRIPE_CONNECT"


PAYOUT_COMPLETED = "completed"
PAYOUT_FAILED = "failed"


@dataclass(frozen=True)
class PayoutMethod:
    id: UUID
    user_id: UUID
    type: PayoutMethodType
    details: dict[str, Any]
    is_active: bool
    is_default: bool
    created_at: datetime


@dataclass(frozen=True)
class NewPayout:
    user_id: UUID
    amount: int
    currency: str
    status: str
    payout_method_id: Optional[UUID]
    referral_id: Optional[UUID] = None
    provider_payout_id: Optional[str] = None
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class Payout:
    id: UUID
    user_id: UUID
    amount: int
    currency: str
    status: str
    referral_id: Optional[UUID]
    payout_method_id: Optional[UUID]
    provider_payout_id: Optional[str]
    failure_reason: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class PayoutExportRow:
    id: UUID
    user_email: str
    user_name: Optional[str]
    amount: int
    currency: str
    status: str
    referee_email: Optional[str]
    provider_payout_id: Optional[str]
    created_at: datetime


@dataclass
class PayoutStats:
    total: int = 0
    completed: int = 0
    failed: int = 0
    total_amount: int = 0
