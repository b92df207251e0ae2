from __future__ import annotations

import os
import sys
import time

import pytest
import stripe


SCRIPT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "scripts"))
if SCRIPT_DIR not in sys.path:
    sys.path.insert(0, SCRIPT_DIR)

from _webhook_signing import canonical_json_bytes, stripe_signature, stripe_signature_header  # noqa: E402


def test_canonical_json_bytes_stable():
    bytes_a = canonical_json_bytes({"b": 1, "a": 2})
    bytes_b = canonical_json_bytes({"a": 2, "b": 1})
    assert bytes_a == bytes_b
    assert bytes_a == b'{"a":2,"b":1}'


def test_signature_header_shape():
    header = stripe_signature("whsec_x", b"{}", timestamp=1700000000)
    t, v1 = header.split(",")
    assert t == "t=1700000000"
    assert v1.startswith("v1=") and len(v1) == 3 + 64


def test_signature_verifies_with_stripe_library():
    body = canonical_json_bytes({"id": "evt_1", "object": "event", "type": "invoice.paid", "data": {"object": {}}})
    header = stripe_signature_header("whsec_local", body)["Stripe-Signature"]

    event = stripe.Webhook.construct_event(body, header, "whsec_local")

    assert event["id"] == "evt_1"


def test_stale_signature_is_rejected_by_stripe_library():
    body = canonical_json_bytes({"id": "evt_1", "object": "event"})
    header = stripe_signature("whsec_local", body, timestamp=int(time.time()) - 3600)

    with pytest.raises(stripe.SignatureVerificationError):
        stripe.Webhook.construct_event(body, header, "whsec_local", tolerance=300)


def test_signed_request_accepted_by_endpoint(client):
    body = canonical_json_bytes({"id": "evt_2", "type": "ping", "data": {"object": {"id": "x"}}})
    headers = stripe_signature_header("whsec_test_secret", body)
    headers["Content-Type"] = "application/json"

    r = client.post("/v1/webhooks/stripe", content=body, headers=headers)

    assert r.status_code == 200, r.text
