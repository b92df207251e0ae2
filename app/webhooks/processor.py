# app/webhooks/processor.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from app.billing.client import BillingProviderError
from app.referrals.qualification import ReferralQualificationEngine
from app.subscriptions.model import Subscription, User, UserMode
from app.subscriptions.state_machine import (
    GRACE_PERIOD,
    SubscriptionStateMachine,
    apply_mode,
)
from app.webhooks.errors import WebhookPayloadError, WebhookSignatureError
from services.metrics import increment_webhook_event
from services.observability import log_event

logger = logging.getLogger("memories.webhooks")


SUBSCRIPTION_UPSERT_EVENTS = {"customer.subscription.created", "customer.subscription.updated"}
SUBSCRIPTION_DELETED_EVENTS = {"customer.subscription.deleted"}
PAYMENT_SUCCEEDED_EVENTS = {"invoice.payment_succeeded", "invoice.paid"}
PAYMENT_FAILED_EVENTS = {"invoice.payment_failed"}


@dataclass(frozen=True)
class WebhookOutcome:
    event_id: Optional[str]
    event_type: str
    outcome: str

    @property
    def handled(self) -> bool:
        return not self.outcome.startswith("ignored")


def _ref_id(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def invoice_subscription_id(invoice: dict[str, Any]) -> Optional[str]:
    """Subscription reference of an invoice; newer API versions nest it under parent."""
    ref = _ref_id(invoice.get("subscription"))
    if ref:
        return ref
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return _ref_id(details.get("subscription"))


class WebhookEventProcessor:
    def __init__(
        self,
        store,
        billing,
        *,
        now: Callable[[], datetime],
        state_machine: SubscriptionStateMachine | None = None,
        referrals: ReferralQualificationEngine | None = None,
    ):
        self.store = store
        self.billing = billing
        self.now = now
        self.state_machine = state_machine or SubscriptionStateMachine(store, now=now)
        self.referrals = referrals or ReferralQualificationEngine(store, now=now)

        self._handlers: dict[str, Callable[[dict[str, Any], Optional[str]], str]] = {}
        for t in SUBSCRIPTION_UPSERT_EVENTS:
            self._handlers[t] = self._on_subscription_upsert
        for t in SUBSCRIPTION_DELETED_EVENTS:
            self._handlers[t] = self._on_subscription_deleted
        for t in PAYMENT_SUCCEEDED_EVENTS:
            self._handlers[t] = self._on_payment_succeeded
        for t in PAYMENT_FAILED_EVENTS:
            self._handlers[t] = self._on_payment_failed

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def process(self, payload: bytes, signature: str | None) -> WebhookOutcome:
        """
        Verify and dispatch one delivery.

        Raises WebhookSignatureError (nothing is written) or
        WebhookPayloadError. Handler exceptions propagate to the caller.
        """
        try:
            envelope = self.billing.construct_event(payload, signature)
        except WebhookSignatureError:
            increment_webhook_event("unknown", "bad_signature")
            log_event(logger, "webhook.received", outcome="bad_signature", level=logging.WARNING)
            raise
        except ValueError as e:
            increment_webhook_event("unknown", "bad_payload")
            raise WebhookPayloadError("payload is not valid JSON") from e

        event_id, event_type, obj = self._unpack(envelope)

        handler = self._handlers.get(event_type)
        if handler is None:
            outcome = "ignored_event_type"
        else:
            outcome = handler(obj, event_id)

        increment_webhook_event(event_type, outcome)
        log_event(
            logger,
            "webhook.processed",
            outcome=outcome,
            correlation_id=event_id,
            event_type=event_type,
        )
        return WebhookOutcome(event_id=event_id, event_type=event_type, outcome=outcome)

    @staticmethod
    def _unpack(envelope: Any) -> tuple[Optional[str], str, dict[str, Any]]:
        if not isinstance(envelope, dict):
            raise WebhookPayloadError("event envelope must be an object")
        event_type = envelope.get("type")
        if not isinstance(event_type, str) or not event_type:
            raise WebhookPayloadError("event type missing")
        data = envelope.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        if not isinstance(obj, dict):
            raise WebhookPayloadError("event data.object missing")
        return envelope.get("id"), event_type, obj

    def _resolve_user(self, obj: dict[str, Any], event: str, event_id: Optional[str]) -> Optional[User]:
        customer_id = _ref_id(obj.get("customer"))
        user = self.store.get_user_by_customer_id(customer_id) if customer_id else None
        if user is None:
            log_event(
                logger,
                event,
                outcome="ignored_unknown_customer",
                correlation_id=event_id,
                customer_id=customer_id,
            )
        return user

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_subscription_upsert(self, sub: dict[str, Any], event_id: Optional[str]) -> str:
        if not sub.get("id"):
            raise WebhookPayloadError("subscription id missing")
        subscription = self.state_machine.upsert_from_provider(sub)
        return "applied" if subscription is not None else "ignored_unknown_customer"

    def _on_subscription_deleted(self, sub: dict[str, Any], event_id: Optional[str]) -> str:
        user = self._resolve_user(sub, "subscription.deleted", event_id)
        if user is None:
            return "ignored_unknown_customer"

        canceled = self.store.mark_subscription_canceled(user.id, sub.get("id") or "", self.now())
        if canceled is None:
            log_event(
                logger,
                "subscription.deleted",
                outcome="ignored_no_subscription",
                correlation_id=event_id,
                user_id=str(user.id),
                subscription_id=sub.get("id"),
            )
            return "ignored_no_subscription"

        # deletion is terminal; no grace window
        apply_mode(self.store, user, UserMode.RESTRICTED)
        return "canceled"

    def _on_payment_succeeded(self, invoice: dict[str, Any], event_id: Optional[str]) -> str:
        user = self._resolve_user(invoice, "invoice.payment_succeeded", event_id)
        if user is None:
            return "ignored_unknown_customer"

        subscription: Optional[Subscription] = self.store.get_subscription(user.id)
        sub_ref = invoice_subscription_id(invoice)

        if subscription is None and sub_ref:
            # self-heal a missed customer.subscription.created
            try:
                provider_sub = self.billing.retrieve_subscription(sub_ref)
            except BillingProviderError as e:
                log_event(
                    logger,
                    "invoice.payment_succeeded",
                    outcome="subscription_fetch_failed",
                    level=logging.WARNING,
                    correlation_id=event_id,
                    subscription_id=sub_ref,
                    error=str(e),
                )
                provider_sub = None
            if provider_sub is not None:
                subscription = self.state_machine.upsert_from_provider(provider_sub, user=user)
                user = self.store.get_user(user.id) or user
        elif subscription is not None:
            subscription = self.store.mark_subscription_active(user.id) or subscription

        # a settled invoice grants access whatever status the snapshot carries
        if apply_mode(self.store, user, UserMode.FULL):
            user = self.store.get_user(user.id) or user

        self.referrals.on_payment_succeeded(user, subscription)
        return "paid"

    def _on_payment_failed(self, invoice: dict[str, Any], event_id: Optional[str]) -> str:
        user = self._resolve_user(invoice, "invoice.payment_failed", event_id)
        if user is None:
            return "ignored_unknown_customer"

        if self.store.get_subscription(user.id) is None:
            log_event(
                logger,
                "invoice.payment_failed",
                outcome="ignored_no_subscription",
                correlation_id=event_id,
                user_id=str(user.id),
            )
            return "ignored_no_subscription"

        grace_until = self.now() + GRACE_PERIOD
        subscription = self.store.mark_subscription_past_due(user.id, grace_until)
        self.state_machine.refresh_mode(user, subscription)
        return "past_due"
