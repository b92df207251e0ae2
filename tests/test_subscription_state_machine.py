from datetime import datetime, timedelta, timezone

from app.subscriptions.model import SubscriptionStatus, UserMode
from app.subscriptions.state_machine import (
    SubscriptionStateMachine,
    map_provider_status,
    subscription_fields,
)
from tests.conftest import stripe_subscription


def test_status_mapping_is_case_insensitive():
    assert map_provider_status("active") == SubscriptionStatus.ACTIVE
    assert map_provider_status("PAST_DUE") == SubscriptionStatus.PAST_DUE
    assert map_provider_status("incomplete_expired") == SubscriptionStatus.INCOMPLETE_EXPIRED


def test_unknown_status_maps_to_canceled():
    assert map_provider_status("something_new") == SubscriptionStatus.CANCELED
    assert map_provider_status(None) == SubscriptionStatus.CANCELED


def test_fields_flatten_provider_object():
    fields = subscription_fields(stripe_subscription(trial_end=1767312000))

    assert fields.provider_subscription_id == "sub_123"
    assert fields.provider_customer_id == "cus_member"
    assert fields.plan == "price_basic"
    assert fields.current_period_start == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert fields.trial_end == datetime(2026, 1, 2, tzinfo=timezone.utc)
    assert fields.trial_start is None
    assert fields.cancel_at_period_end is False


def test_period_falls_back_to_first_item():
    sub = stripe_subscription()
    del sub["current_period_start"]
    del sub["current_period_end"]
    sub["items"] = {
        "data": [
            {"price": {"id": "price_pro"}, "current_period_start": 1767225600, "current_period_end": 1769904000}
        ]
    }

    fields = subscription_fields(sub)

    assert fields.plan == "price_pro"
    assert fields.current_period_start == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert fields.current_period_end == datetime(2026, 2, 1, tzinfo=timezone.utc)


def test_missing_items_give_unknown_plan():
    sub = stripe_subscription(items={"data": []})
    assert subscription_fields(sub).plan == "unknown"


def test_expanded_customer_object_is_accepted():
    sub = stripe_subscription(customer={"id": "cus_member", "object": "customer"})
    assert subscription_fields(sub).provider_customer_id == "cus_member"


def test_upsert_restricts_user_when_canceled(store, clock, member):
    sm = SubscriptionStateMachine(store, now=clock)

    sub = sm.upsert_from_provider(stripe_subscription(status="canceled"))

    assert sub.status == SubscriptionStatus.CANCELED
    assert store.get_user(member.id).mode == UserMode.RESTRICTED


def test_redelivery_is_idempotent(store, clock, member):
    sm = SubscriptionStateMachine(store, now=clock)

    first = sm.upsert_from_provider(stripe_subscription())
    second = sm.upsert_from_provider(stripe_subscription())

    assert first == second
    assert len(store.subscriptions) == 1
    # FULL -> FULL never writes
    assert store.mode_writes == 0


def test_upsert_keeps_local_grace_window(store, clock, member):
    grace = clock() + timedelta(days=5)
    store.add_subscription(member.id, provider_subscription_id="sub_123", status=SubscriptionStatus.PAST_DUE,
                           grace_period_ends_at=grace)
    sm = SubscriptionStateMachine(store, now=clock)

    sub = sm.upsert_from_provider(stripe_subscription(status="past_due"))

    assert sub.grace_period_ends_at == grace
    assert store.get_user(member.id).mode == UserMode.FULL


def test_unknown_customer_is_ignored(store, clock):
    sm = SubscriptionStateMachine(store, now=clock)

    assert sm.upsert_from_provider(stripe_subscription(customer="cus_nobody")) is None
    assert store.subscriptions == {}
