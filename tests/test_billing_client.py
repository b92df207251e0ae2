from __future__ import annotations

import pytest
import stripe

from app.billing.client import BillingProviderError, StripeBillingClient
from app.webhooks.errors import WebhookSignatureError
from tests.conftest import event_body, signed


def test_missing_secret_rejects_everything():
    client = StripeBillingClient(api_key="sk_test", webhook_secret="", tolerance_s=300)
    body = event_body("invoice.paid", {"id": "in_1"})

    with pytest.raises(WebhookSignatureError):
        client.construct_event(body, signed(body)["Stripe-Signature"])


def test_construct_event_returns_plain_envelope():
    client = StripeBillingClient(api_key="sk_test", webhook_secret="whsec_test_secret", tolerance_s=300)
    body = event_body("invoice.paid", {"id": "in_1", "customer": "cus_1"})

    envelope = client.construct_event(body, signed(body)["Stripe-Signature"])

    assert type(envelope) is dict
    assert envelope["data"]["object"]["customer"] == "cus_1"


def test_retrieve_missing_subscription_returns_none(monkeypatch):
    def fake_retrieve(sub_id, **kwargs):
        raise stripe.InvalidRequestError("No such subscription", "id", code="resource_missing")

    monkeypatch.setattr(stripe.Subscription, "retrieve", fake_retrieve)

    assert StripeBillingClient(api_key="sk_test", webhook_secret="x").retrieve_subscription("sub_gone") is None


def test_retrieve_other_errors_raise_provider_error(monkeypatch):
    def fake_retrieve(sub_id, **kwargs):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr(stripe.Subscription, "retrieve", fake_retrieve)

    with pytest.raises(BillingProviderError):
        StripeBillingClient(api_key="sk_test", webhook_secret="x").retrieve_subscription("sub_1")


def test_retrieve_returns_plain_dict(monkeypatch):
    def fake_retrieve(sub_id, **kwargs):
        return stripe.Subscription.construct_from({"id": sub_id, "status": "active", "customer": "cus_1"}, "sk_test")

    monkeypatch.setattr(stripe.Subscription, "retrieve", fake_retrieve)

    sub = StripeBillingClient(api_key="sk_test", webhook_secret="x").retrieve_subscription("sub_1")

    assert sub == {"id": "sub_1", "status": "active", "customer": "cus_1"}
