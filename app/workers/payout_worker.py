# app/workers/payout_worker.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Mapping, Optional

from settings import settings
from app.payouts.model import (
    NewPayout,
    PayoutMethodType,
    PAYOUT_COMPLETED,
    PAYOUT_FAILED,
)
from app.providers.base import PayoutAdapter, PayoutResult
from app.referrals.model import Referral
from services.metrics import increment_payout_attempt, increment_scheduler_run
from services.observability import log_event

logger = logging.getLogger("memories.payouts")

PROCESSED = "processed"
FAILED = "failed"
SKIPPED = "skipped"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def next_attempt_at(now: datetime, attempt: int, backoff_seconds: int) -> datetime:
    # backoff, 2x, 4x, 8x ...
    delay = backoff_seconds * (2 ** max(0, attempt - 1))
    return now + timedelta(seconds=delay)


class PayoutScheduler:
    """
    Pays out every QUALIFIED referral whose cool-down has elapsed.

    Safe to run repeatedly and concurrently: each referral is claimed with a
    lease on next_attempt_at before its adapter is called, and the final
    QUALIFIED -> PAID move is a compare-and-swap.
    """

    def __init__(
        self,
        store,
        adapters: Mapping[PayoutMethodType, PayoutAdapter],
        *,
        now: Callable[[], datetime] = _now,
        amount_cents: Optional[int] = None,
        currency: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[int] = None,
        lease_seconds: Optional[int] = None,
    ):
        self.store = store
        self.adapters = adapters
        self.now = now
        self.amount_cents = int(amount_cents if amount_cents is not None else settings.REFERRAL_PAYOUT_AMOUNT_CENTS)
        self.currency = (currency or settings.REFERRAL_PAYOUT_CURRENCY).lower()
        self.max_attempts = int(max_attempts if max_attempts is not None else settings.PAYOUT_MAX_ATTEMPTS)
        self.backoff_seconds = int(
            backoff_seconds if backoff_seconds is not None else settings.PAYOUT_BACKOFF_SECONDS
        )
        self.lease_seconds = int(lease_seconds if lease_seconds is not None else settings.PAYOUT_CLAIM_LEASE_SECONDS)

    def run(self) -> Dict[str, int]:
        now = self.now()
        # failure to list the batch is fatal for this run
        due = self.store.list_due_referrals(now, self.max_attempts)

        counters = {PROCESSED: 0, FAILED: 0, SKIPPED: 0}
        for referral in due:
            try:
                result = self._process_one(referral, now)
            except Exception as e:
                logger.exception("payout referral=%s crashed", referral.id)
                log_event(
                    logger,
                    "payout.attempt",
                    outcome="error",
                    level=logging.ERROR,
                    referral_id=str(referral.id),
                    error=str(e),
                )
                result = FAILED
            counters[result] += 1

        increment_scheduler_run("ok")
        log_event(logger, "payout.run", outcome="completed", due=len(due), **counters)
        return counters

    def _process_one(self, referral: Referral, now: datetime) -> str:
        methods = self.store.list_payout_methods(referral.referrer_id, active_only=True)
        if not methods:
            log_event(
                logger,
                "payout.attempt",
                outcome="skipped_no_method",
                referral_id=str(referral.id),
                referrer_id=str(referral.referrer_id),
            )
            return SKIPPED
        method = methods[0]

        lease_until = now + timedelta(seconds=self.lease_seconds)
        if not self.store.claim_referral(referral.id, now, lease_until):
            log_event(logger, "payout.attempt", outcome="skipped_claimed", referral_id=str(referral.id))
            return SKIPPED

        attempt = referral.payout_attempts + 1
        try:
            return self._attempt(referral, method, now, attempt)
        except Exception:
            # claimed but crashed: still spend the attempt so the cap applies
            self._record_crash(referral, now, attempt)
            raise

    def _record_crash(self, referral: Referral, now: datetime, attempt: int) -> None:
        retry_at = next_attempt_at(now, attempt, self.backoff_seconds)
        try:
            self.store.record_attempt_error(referral.id, retry_at)
        except Exception:
            logger.exception("payout referral=%s could not record crashed attempt", referral.id)

    def _attempt(self, referral: Referral, method, now: datetime, attempt: int) -> str:
        reference = f"referral-{referral.id}-{attempt}"

        adapter = self.adapters.get(method.type)
        if adapter is None:
            result = PayoutResult.failed(f"NO_ADAPTER_FOR_{method.type.value}")
        else:
            result = adapter.process(method.details, self.amount_cents, self.currency, reference=reference)

        if result.success:
            payout, advanced = self.store.record_payout_success(
                referral.id,
                NewPayout(
                    user_id=referral.referrer_id,
                    amount=self.amount_cents,
                    currency=self.currency,
                    status=PAYOUT_COMPLETED,
                    payout_method_id=method.id,
                    referral_id=referral.id,
                    provider_payout_id=result.transaction_id,
                ),
            )
            increment_payout_attempt(method.type.value, "completed")
            log_event(
                logger,
                "payout.attempt",
                outcome="completed" if advanced else "completed_referral_not_qualified",
                level=logging.INFO if advanced else logging.WARNING,
                referral_id=str(referral.id),
                payout_id=str(payout.id),
                method=method.type.value,
                attempt=attempt,
            )
            return PROCESSED

        retry_at = next_attempt_at(now, attempt, self.backoff_seconds)
        payout = self.store.record_payout_failure(
            referral.id,
            NewPayout(
                user_id=referral.referrer_id,
                amount=self.amount_cents,
                currency=self.currency,
                status=PAYOUT_FAILED,
                payout_method_id=method.id,
                referral_id=referral.id,
                failure_reason=result.error or "UNKNOWN_ERROR",
            ),
            retry_at,
        )
        increment_payout_attempt(method.type.value, "failed")
        log_event(
            logger,
            "payout.attempt",
            outcome="failed" if attempt < self.max_attempts else "failed_exhausted",
            level=logging.WARNING,
            referral_id=str(referral.id),
            payout_id=str(payout.id),
            method=method.type.value,
            attempt=attempt,
            error=result.error,
            next_attempt_at=retry_at.isoformat(),
        )
        return FAILED


def build_scheduler() -> PayoutScheduler:
    from app.providers.factory import build_adapters
    from app.store import PgStore

    return PayoutScheduler(PgStore(), build_adapters())


def process_once() -> Dict[str, int]:
    return build_scheduler().run()

