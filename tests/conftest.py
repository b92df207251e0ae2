# tests/conftest.py

import json
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app.payouts.model import PayoutMethodType
from app.providers.mock import MockAdapter
from deps.services import get_adapters, get_billing_client, get_clock, get_store
from main import app
from services.metrics import reset_counters
from settings import settings
from tests.fakes import FakeBillingClient, FixedClock, InMemoryStore

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.join(ROOT, "scripts"))

from _webhook_signing import stripe_signature_header  # noqa: E402


WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_EMAIL = "admin@memories.app"
T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------
# Domain doubles
# ---------------------------

@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_counters()
    yield
    reset_counters()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def store(clock) -> InMemoryStore:
    return InMemoryStore(clock)


@pytest.fixture
def billing() -> FakeBillingClient:
    return FakeBillingClient(webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def adapters() -> Dict[PayoutMethodType, MockAdapter]:
    return {t: MockAdapter() for t in PayoutMethodType}


# ---------------------------
# Client + Auth Helpers
# ---------------------------

@pytest.fixture
def client(store, billing, adapters, clock, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_EMAILS", ADMIN_EMAIL)

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_billing_client] = lambda: billing
    app.dependency_overrides[get_adapters] = lambda: adapters
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        # assert 500s instead of pytest re-raising server exceptions
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()


def access_token(sub: str, minutes: int = 60) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def auth_headers(user_id) -> Dict[str, str]:
    return {"Authorization": f"Bearer {access_token(str(user_id))}"}


@pytest.fixture
def admin_user(store):
    return store.add_user(ADMIN_EMAIL, name="Admin")


@pytest.fixture
def admin_headers(admin_user) -> Dict[str, str]:
    return auth_headers(admin_user.id)


@pytest.fixture
def member(store):
    return store.add_user("member@example.com", name="Member", customer_id="cus_member")


@pytest.fixture
def member_headers(member) -> Dict[str, str]:
    return auth_headers(member.id)


# ---------------------------
# Webhook payload helpers
# ---------------------------

def event_body(event_type: str, obj: Dict[str, Any], event_id: str = "evt_test_1") -> bytes:
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}}).encode("utf-8")


def signed(body: bytes, secret: str = WEBHOOK_SECRET) -> Dict[str, str]:
    return stripe_signature_header(secret, body)


def stripe_subscription(
    sub_id: str = "sub_123",
    customer: str = "cus_member",
    status: str = "active",
    **extra: Any,
) -> Dict[str, Any]:
    obj: Dict[str, Any] = {
        "id": sub_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "cancel_at_period_end": False,
        "current_period_start": 1767225600,
        "current_period_end": 1769904000,
        "items": {"data": [{"price": {"id": "price_basic"}}]},
    }
    obj.update(extra)
    return obj


def stripe_invoice(customer: str = "cus_member", subscription: str | None = "sub_123", **extra: Any) -> Dict[str, Any]:
    obj: Dict[str, Any] = {"id": "in_1", "object": "invoice", "customer": customer, "subscription": subscription}
    obj.update(extra)
    return obj
