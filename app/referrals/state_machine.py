

# app/referrals/state_machine.py
from __future__ import annotations

from datetime import timedelta

from app.referrals.model import ReferralStatus


# fraud / chargeback cool-down between qualification and payout
PAYOUT_DELAY = timedelta(days=7)


class InvalidTransition(Exception):
    pass


ALLOWED = {
    ReferralStatus.PENDING: {ReferralStatus.QUALIFIED, ReferralStatus.CANCELED},
    ReferralStatus.QUALIFIED: {ReferralStatus.PAID, ReferralStatus.CANCELED},
    ReferralStatus.PAID: set(),
    ReferralStatus.CANCELED: set(),
}


def can_transition(old: ReferralStatus, new: ReferralStatus) -> bool:
    return new in ALLOWED.get(old, set())


def assert_transition(old: ReferralStatus, new: ReferralStatus) -> None:
    if not can_transition(old, new):
        raise InvalidTransition(f"Illegal referral transition: {old.value} -> {new.value}")
