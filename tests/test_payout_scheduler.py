from __future__ import annotations

import dataclasses
from datetime import timedelta

import pytest

from app.payouts.model import PayoutMethodType, PAYOUT_COMPLETED, PAYOUT_FAILED
from app.providers.mock import MockAdapter
from app.referrals.model import ReferralStatus
from app.workers.payout_worker import PayoutScheduler, next_attempt_at
from services.metrics import get_counter


@pytest.fixture
def referrer(store):
    return store.add_user("referrer@example.com", name="Referrer")


@pytest.fixture
def referee(store, referrer):
    return store.add_user("referee@example.com", referred_by=referrer.id)


@pytest.fixture
def due_referral(store, clock, referrer, referee):
    return store.add_referral(
        referrer.id,
        referee.id,
        status=ReferralStatus.QUALIFIED,
        qualified_at=clock() - timedelta(days=8),
        scheduled_payout_at=clock() - timedelta(days=1),
    )


def _scheduler(store, clock, adapters, **kwargs):
    opts = dict(amount_cents=1000, currency="usd", max_attempts=3, backoff_seconds=60, lease_seconds=300)
    opts.update(kwargs)
    return PayoutScheduler(store, adapters, now=clock, **opts)


def test_backoff_doubles_per_attempt(clock):
    assert next_attempt_at(clock(), 1, 60) == clock() + timedelta(seconds=60)
    assert next_attempt_at(clock(), 3, 60) == clock() + timedelta(seconds=240)


def test_future_referrals_are_not_selected(store, clock, adapters, referrer, referee):
    store.add_referral(
        referrer.id,
        referee.id,
        status=ReferralStatus.QUALIFIED,
        scheduled_payout_at=clock() + timedelta(days=6),
    )
    store.add_method(referrer.id, PayoutMethodType.PAYPAL, {"email": "r@example.com"})

    result = _scheduler(store, clock, adapters).run()

    assert result == {"processed": 0, "failed": 0, "skipped": 0}
    assert adapters[PayoutMethodType.PAYPAL].calls == []


def test_missing_method_is_skipped_without_payout(store, clock, adapters, due_referral):
    result = _scheduler(store, clock, adapters).run()

    assert result == {"processed": 0, "failed": 0, "skipped": 1}
    assert store.payouts == []
    assert store.get_referral(due_referral.id).status == ReferralStatus.QUALIFIED
    assert store.get_referral(due_referral.id).payout_attempts == 0


def test_success_marks_paid_and_records_one_payout(store, clock, adapters, referrer, due_referral):
    method = store.add_method(referrer.id, PayoutMethodType.GIFT_CARD, {"email": "r@example.com"}, is_default=True)

    result = _scheduler(store, clock, adapters).run()

    assert result == {"processed": 1, "failed": 0, "skipped": 0}
    assert store.get_referral(due_referral.id).status == ReferralStatus.PAID

    [payout] = store.payouts
    assert payout.status == PAYOUT_COMPLETED
    assert payout.amount == 1000
    assert payout.currency == "usd"
    assert payout.user_id == referrer.id
    assert payout.referral_id == due_referral.id
    assert payout.payout_method_id == method.id
    assert payout.provider_payout_id.startswith("mock-")

    [call] = adapters[PayoutMethodType.GIFT_CARD].calls
    assert call["reference"] == f"referral-{due_referral.id}-1"
    assert get_counter("payout_attempts_total", {"method": "GIFT_CARD", "result": "completed"}) == 1


def test_paid_referral_is_not_paid_twice(store, clock, adapters, referrer, due_referral):
    store.add_method(referrer.id, PayoutMethodType.PAYPAL, {"email": "r@example.com"})
    scheduler = _scheduler(store, clock, adapters)

    scheduler.run()
    second = scheduler.run()

    assert second == {"processed": 0, "failed": 0, "skipped": 0}
    assert len(store.payouts) == 1


def test_default_method_wins(store, clock, adapters, referrer, due_referral):
    store.add_method(referrer.id, PayoutMethodType.PAYPAL, {"email": "r@example.com"})
    store.add_method(referrer.id, PayoutMethodType.STRIPE_CONNECT, {"accountId": "acct_1"}, is_default=True)

    _scheduler(store, clock, adapters).run()

    assert len(adapters[PayoutMethodType.STRIPE_CONNECT].calls) == 1
    assert adapters[PayoutMethodType.PAYPAL].calls == []


def test_failure_stays_qualified_with_backoff(store, clock, adapters, referrer, due_referral):
    store.add_method(referrer.id, PayoutMethodType.PAYPAL, {"email": "r@example.com"})
    adapters[PayoutMethodType.PAYPAL] = MockAdapter(succeed=False, error="Gateway timeout")

    result = _scheduler(store, clock, adapters).run()

    assert result == {"processed": 0, "failed": 1, "skipped": 0}
    referral = store.get_referral(due_referral.id)
    assert referral.status == ReferralStatus.QUALIFIED
    assert referral.payout_attempts == 1
    assert referral.next_attempt_at == clock() + timedelta(seconds=60)

    [payout] = store.payouts
    assert payout.status == PAYOUT_FAILED
    assert payout.failure_reason == "Gateway timeout"


def test_backoff_window_is_respected_then_retried(store, clock, adapters, referrer, due_referral):
    store.add_method(referrer.id, PayoutMethodType.PAYPAL, {"email": "r@example.com"})
    flaky = MockAdapter(succeed=False)
    adapters[PayoutMethodType.PAYPAL] = flaky
    scheduler = _scheduler(store, clock, adapters)

    scheduler.run()
    assert scheduler.run() == {"processed": 0, "failed": 0, "skipped": 0}

    clock.advance(seconds=61)
    flaky.succeed = True
    assert scheduler.run() == {"processed": 1, "failed": 0, "skipped": 0}
    assert flaky.calls[-1]["reference"] == f"referral-{due_referral.id}-2"
    assert store.get_referral(due_referral.id).status == ReferralStatus.PAID


def test_exhausted_attempts_are_not_selected(store, clock, adapters, referrer, due_referral):
    store.add_method(referrer.id, PayoutMethodType.PAYPAL, {"email": "r@example.com"})
    store.referrals[due_referral.id] = dataclasses.replace(due_referral, payout_attempts=3)

    assert _scheduler(store, clock, adapters, max_attempts=3).run() == {"processed": 0, "failed": 0, "skipped": 0}


def test_one_crashing_referral_does_not_stop_the_batch(store, clock, adapters, referrer, referee, due_referral):
    other_referrer = store.add_user("other@example.com")
    other_referee = store.add_user("other-referee@example.com", referred_by=other_referrer.id)
    other = store.add_referral(
        other_referrer.id,
        other_referee.id,
        status=ReferralStatus.QUALIFIED,
        scheduled_payout_at=clock() - timedelta(hours=1),
    )
    store.add_method(referrer.id, PayoutMethodType.PAYPAL, {"email": "r@example.com"})
    store.add_method(other_referrer.id, PayoutMethodType.GIFT_CARD, {"email": "o@example.com"})
    adapters[PayoutMethodType.PAYPAL] = MockAdapter(raise_error=RuntimeError("socket closed"))

    result = _scheduler(store, clock, adapters).run()

    assert result == {"processed": 1, "failed": 1, "skipped": 0}
    assert store.get_referral(other.id).status == ReferralStatus.PAID
    assert store.get_referral(due_referral.id).status == ReferralStatus.QUALIFIED


def test_listing_failure_is_fatal(store, clock, adapters):
    store.fail_list_due = RuntimeError("connection refused")

    with pytest.raises(RuntimeError):
        _scheduler(store, clock, adapters).run()


def test_referral_claimed_elsewhere_is_skipped(store, clock, adapters, referrer, due_referral, monkeypatch):
    store.add_method(referrer.id, PayoutMethodType.PAYPAL, {"email": "r@example.com"})
    monkeypatch.setattr(store, "claim_referral", lambda *a: False)

    result = _scheduler(store, clock, adapters).run()

    assert result == {"processed": 0, "failed": 0, "skipped": 1}
    assert adapters[PayoutMethodType.PAYPAL].calls == []


def test_missing_adapter_records_failure(store, clock, referrer, due_referral):
    store.add_method(referrer.id, PayoutMethodType.PAYPAL, {"email": "r@example.com"})

    result = _scheduler(store, clock, {}).run()

    assert result["failed"] == 1
    assert store.payouts[0].failure_reason == "NO_ADAPTER_FOR_PAYPAL"


def test_crashing_adapter_spends_attempts_until_cap(store, clock, adapters, referrer, due_referral):
    store.add_method(referrer.id, PayoutMethodType.PAYPAL, {"email": "r@example.com"})
    crashing = MockAdapter(raise_error=RuntimeError("socket closed"))
    adapters[PayoutMethodType.PAYPAL] = crashing
    scheduler = _scheduler(store, clock, adapters, max_attempts=3, lease_seconds=300)

    for _ in range(10):
        scheduler.run()
        clock.advance(seconds=301)

    assert len(crashing.calls) == 3
    referral = store.get_referral(due_referral.id)
    assert referral.payout_attempts == 3
    assert referral.status == ReferralStatus.QUALIFIED
    assert store.payouts == []


def test_crashed_attempt_gets_backoff(store, clock, adapters, referrer, due_referral):
    store.add_method(referrer.id, PayoutMethodType.PAYPAL, {"email": "r@example.com"})
    adapters[PayoutMethodType.PAYPAL] = MockAdapter(raise_error=RuntimeError("socket closed"))

    result = _scheduler(store, clock, adapters).run()

    assert result == {"processed": 0, "failed": 1, "skipped": 0}
    referral = store.get_referral(due_referral.id)
    assert referral.payout_attempts == 1
    assert referral.next_attempt_at == clock() + timedelta(seconds=60)


def test_bookkeeping_crash_still_counts_attempt(store, clock, adapters, referrer, due_referral, monkeypatch):
    store.add_method(referrer.id, PayoutMethodType.PAYPAL, {"email": "r@example.com"})
    adapters[PayoutMethodType.PAYPAL] = MockAdapter(succeed=False)

    def db_down(*args):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(store, "record_payout_failure", db_down)

    assert _scheduler(store, clock, adapters).run()["failed"] == 1
    assert store.get_referral(due_referral.id).payout_attempts == 1


def test_unrecordable_crash_does_not_stop_the_batch(store, clock, adapters, referrer, due_referral):
    store.add_method(referrer.id, PayoutMethodType.PAYPAL, {"email": "r@example.com"})
    adapters[PayoutMethodType.PAYPAL] = MockAdapter(raise_error=RuntimeError("socket closed"))
    store.fail_attempt_error = RuntimeError("db gone")

    assert _scheduler(store, clock, adapters).run() == {"processed": 0, "failed": 1, "skipped": 0}
