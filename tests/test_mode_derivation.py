from datetime import timedelta

import pytest

from app.subscriptions.mode import derive_mode
from app.subscriptions.model import SubscriptionStatus, UserMode
from tests.conftest import T0


@pytest.mark.parametrize("status", [SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING])
def test_paying_statuses_get_full_access(status):
    assert derive_mode(status, None, T0) == UserMode.FULL


def test_past_due_inside_grace_keeps_full():
    assert derive_mode(SubscriptionStatus.PAST_DUE, T0 + timedelta(days=3), T0) == UserMode.FULL


def test_past_due_at_grace_boundary_is_restricted():
    # the window must be strictly in the future
    assert derive_mode(SubscriptionStatus.PAST_DUE, T0, T0) == UserMode.RESTRICTED


def test_past_due_without_grace_is_restricted():
    assert derive_mode(SubscriptionStatus.PAST_DUE, None, T0) == UserMode.RESTRICTED


@pytest.mark.parametrize(
    "status",
    [
        SubscriptionStatus.CANCELED,
        SubscriptionStatus.UNPAID,
        SubscriptionStatus.PAUSED,
        SubscriptionStatus.INCOMPLETE,
        SubscriptionStatus.INCOMPLETE_EXPIRED,
    ],
)
def test_other_statuses_are_restricted_even_with_grace(status):
    assert derive_mode(status, T0 + timedelta(days=3), T0) == UserMode.RESTRICTED
